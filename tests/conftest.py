"""Shared fixtures for the tnascert-deploy test suite."""

import json
import os
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from tnascert_deploy.config import DeployConfig  # noqa: E402
from tnascert_deploy.protocol.client import ApiClient, ApiError, Job  # noqa: E402

API_KEY = "1-" + "a" * 64
BASENAME = "tnas-cert-deploy"

# Reference point used by the registry scenarios: 2025-01-01 certificate epoch
SCENARIO_EPOCH = 101683628


# ---------------------------------------------------------------------------
# Fake API client
# ---------------------------------------------------------------------------


class FakeClient(ApiClient):
    """In-memory stand-in for the TrueNAS API.

    Calls are recorded in ``calls`` as ``(method, params)``. Jobs complete
    synchronously unless their method is listed in ``hanging_jobs``.
    ``job_errors`` and ``fail_methods`` map ``method`` or ``method:<first
    param>`` to an error message.
    """

    def __init__(
        self,
        certificates: list[tuple[int, str]] | None = None,
        apps: list[str] | None = None,
        app_configs: dict[str, dict[str, Any]] | None = None,
        ui_certificate: int | None = None,
        ftp_certificate: int | None = None,
        api_key: str = API_KEY,
    ):
        self.certificates = list(certificates or [])
        self.apps = list(apps or [])
        self.app_configs = app_configs or {}
        self.ui_certificate = ui_certificate
        self.ftp_certificate = ftp_certificate
        self.api_key = api_key
        self.calls: list[tuple[str, Any]] = []
        self.job_errors: dict[str, str] = {}
        self.fail_methods: dict[str, str] = {}
        self.hanging_jobs: set[str] = set()
        self.progress_reports: list[tuple[float, str, str]] = []
        self.subscribed = False
        self.closed = False
        self.next_job_id = 100
        self.next_certificate_id = 10

    # -- helpers -----------------------------------------------------------

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def calls_to(self, method: str) -> list[Any]:
        return [params for called, params in self.calls if called == method]

    def _lookup(self, table: dict[str, str], method: str, params: Any) -> str | None:
        if isinstance(params, list) and params and isinstance(params[0], (int, str)):
            specific = table.get(f"{method}:{params[0]}")
            if specific is not None:
                return specific
        return table.get(method)

    # -- ApiClient ---------------------------------------------------------

    def login(self, username: str, password: str, api_key: str) -> None:
        self.calls.append(("login", [api_key]))
        if api_key != self.api_key:
            raise ApiError("invalid api key")

    def call(self, method: str, timeout: float, params: list[Any]) -> bytes:
        self.calls.append((method, params))
        failure = self._lookup(self.fail_methods, method, params)
        if failure is not None:
            raise ApiError(failure)
        envelope = {"jsonrpc": "2.0", "id": len(self.calls), "result": self._result(method, params)}
        return json.dumps(envelope).encode()

    def _result(self, method: str, params: list[Any]) -> Any:
        if method == "app.certificate_choices":
            return [{"id": cid, "name": name} for cid, name in self.certificates]
        if method == "app.query":
            return [{"id": name, "name": name, "state": "RUNNING"} for name in self.apps]
        if method == "app.config":
            return self.app_configs.get(params[0], {})
        if method == "system.general.config":
            if self.ui_certificate is None:
                return {"ui_certificate": None}
            return {"ui_certificate": {"id": self.ui_certificate, "name": "current"}}
        if method == "ftp.config":
            return {"ssltls_certificate": self.ftp_certificate}
        if method == "system.general.update":
            self.ui_certificate = params[0]["ui_certificate"]
            return {"ui_certificate": self.ui_certificate}
        if method == "ftp.update":
            self.ftp_certificate = params[0]["ssltls_certificate"]
            return {"ssltls_certificate": self.ftp_certificate}
        return None

    def call_with_job(self, method, params, callback=None) -> Job:
        self.calls.append((method, params))
        failure = self._lookup(self.fail_methods, method, params)
        if failure is not None:
            raise ApiError(failure)

        job = Job(self.next_job_id, method)
        self.next_job_id += 1
        if method in self.hanging_jobs:
            return job

        error = self._lookup(self.job_errors, method, params) or ""
        if not error:
            self._apply_job(method, params)

        if callback is not None:
            callback(50.0, "RUNNING", "working")
            self.progress_reports.append((50.0, "RUNNING", "working"))
        job.report_progress(50.0, "working")
        job.report_progress(100.0, "done")
        job.finish(error)
        return job

    def _apply_job(self, method: str, params: list[Any]) -> None:
        if method == "certificate.create":
            self.certificates.append((self.next_certificate_id, params[0]["name"]))
            self.next_certificate_id += 1
        elif method == "certificate.delete":
            self.certificates = [(cid, name) for cid, name in self.certificates if cid != params[0]]
        elif method == "app.update":
            app_name, update = params
            self.app_configs.setdefault(app_name, {})["network"] = dict(update["values"]["network"])

    def subscribe_to_jobs(self) -> None:
        self.calls.append(("core.subscribe", ["core.get_jobs"]))
        failure = self.fail_methods.get("core.subscribe")
        if failure is not None:
            raise ApiError(failure)
        self.subscribed = True

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Certificate material
# ---------------------------------------------------------------------------


def _write_key_pair(directory: Path, common_name: str, passphrase: bytes | None = None) -> tuple[Path, Path]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=90))
        .sign(key, hashes.SHA256())
    )

    directory.mkdir(parents=True, exist_ok=True)
    cert_path = directory / "fullchain.pem"
    key_path = directory / "privkey.pem"
    cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(passphrase) if passphrase else serialization.NoEncryption(),
        )
    )
    return cert_path, key_path


@pytest.fixture()
def key_pair(tmp_path: Path) -> tuple[Path, Path]:
    """Matching self-signed certificate and private key on disk."""
    return _write_key_pair(tmp_path / "tls", "nas.example.com")


@pytest.fixture()
def other_key_pair(tmp_path: Path) -> tuple[Path, Path]:
    """A second, unrelated key pair."""
    return _write_key_pair(tmp_path / "other", "other.example.com")


@pytest.fixture()
def encrypted_key_pair(tmp_path: Path) -> tuple[Path, Path]:
    """Matching pair whose private key is passphrase-protected."""
    return _write_key_pair(tmp_path / "encrypted", "nas.example.com", passphrase=b"correct horse")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_config(key_pair):
    """Factory for a valid DeployConfig with per-test overrides."""
    cert_path, key_path = key_pair

    def _make(**overrides) -> DeployConfig:
        values = {
            "connect_host": "nas.example.com",
            "api_key": API_KEY,
            "full_chain_path": cert_path,
            "private_key_path": key_path,
            "cert_basename": BASENAME,
            "timeout_seconds": 1,
        }
        values.update(overrides)
        return DeployConfig(**values)

    return _make


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep TNASCERT_* variables and stray .env files out of the tests."""
    for name in list(os.environ):
        if name.startswith("TNASCERT_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
