"""Certificate material helpers.

Certificates deployed by this tool are named ``<basename>-<YYYY-MM-DD>-<epoch>``.
The trailing epoch is the authoritative creation time.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from tnascert_deploy.exceptions import FileReadError

MIN_NAME_SEGMENTS = 4


@dataclass(frozen=True)
class PemMaterial:
    """PEM text of the full chain and private key."""

    certificate: str
    private_key: str


def _read_text(path: Path, what: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise FileReadError(f"could not load the PEM encoded {what} from {path}: {error}") from error


def read_pem_material(certificate_path: Path, private_key_path: Path) -> PemMaterial:
    """Read the full chain and private key.

    Raises:
        FileReadError: either file is missing or unreadable
    """
    return PemMaterial(
        certificate=_read_text(Path(certificate_path), "certificate"),
        private_key=_read_text(Path(private_key_path), "private key"),
    )


def verify_certificate_key_pair(certificate_path: Path, private_key_path: Path) -> x509.Certificate:
    """Check that the leaf certificate and private key load and belong together.

    Args:
        certificate_path: Full chain, leaf certificate first
        private_key_path: Unencrypted PEM private key

    Returns:
        The parsed leaf certificate

    Raises:
        FileReadError: a file cannot be read
        ValueError: the material does not parse, the key is encrypted, or the
            keys do not match
    """
    material = read_pem_material(certificate_path, private_key_path)

    certificate = x509.load_pem_x509_certificate(material.certificate.encode())
    try:
        private_key = serialization.load_pem_private_key(material.private_key.encode(), password=None)
    except TypeError as error:
        # raised for passphrase-protected keys
        raise ValueError(f"unable to load the private key, {error}") from error

    public_format = serialization.PublicFormat.SubjectPublicKeyInfo
    certificate_public = certificate.public_key().public_bytes(serialization.Encoding.DER, public_format)
    key_public = private_key.public_key().public_bytes(serialization.Encoding.DER, public_format)

    if certificate_public != key_public:
        raise ValueError("the private key does not match the certificate")

    return certificate


def generate_certificate_name(basename: str, now: datetime) -> str:
    """Build the name for a certificate created at *now*."""
    return f"{basename}-{now:%Y-%m-%d}-{int(now.timestamp())}"


def parse_certificate_epoch(name: str) -> int | None:
    """Return the epoch suffix of *name*, or None if the name is malformed."""
    segments = name.split("-")
    if len(segments) < MIN_NAME_SEGMENTS:
        return None
    suffix = segments[-1]
    if not (suffix.isascii() and suffix.isdigit()):
        return None
    return int(suffix)
