"""Certificate deployment workflow.

One ``CertificateDeployer`` handles one run: log in, decide whether a new
certificate is needed, create it, activate it on the configured services,
and prune the certificates it supersedes. Every step runs sequentially on
the caller's connection.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from tnascert_deploy.config import DeployConfig
from tnascert_deploy.deploy.activation import (
    activate_apps,
    activate_ftp,
    activate_ui,
    apps_needing_update,
    current_ftp_certificate,
    current_ui_certificate,
)
from tnascert_deploy.deploy.registry import STALENESS_WINDOW_SECONDS, CertificateRegistry
from tnascert_deploy.exceptions import (
    CertificateCreateError,
    DeployError,
    JobError,
    PruneError,
    RestartError,
    ServerConnectionError,
)
from tnascert_deploy.protocol.client import ApiClient, ApiError
from tnascert_deploy.protocol.constants import (
    CREATE_TYPE_IMPORTED,
    METHOD_CERTIFICATE_CREATE,
    METHOD_CERTIFICATE_DELETE,
    METHOD_UI_RESTART,
)
from tnascert_deploy.protocol.jobs import JobMonitor, log_job_progress
from tnascert_deploy.security.keypair import PemMaterial, generate_certificate_name, read_pem_material

logger = logging.getLogger(__name__)

TARGET_UI = "ui"
TARGET_FTP = "ftp"
TARGET_APP = "app"


@dataclass
class DeployResult:
    """Outcome of one deployment run."""

    certificate_name: str | None = None
    certificate_id: int | None = None
    created: bool = False
    noop: bool = False
    activated: list[str] = field(default_factory=list)
    updated_apps: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    delete_failures: list[str] = field(default_factory=list)
    restarted: bool = False


class CertificateDeployer:
    """Deploys the configured certificate and manages its lifecycle."""

    def __init__(
        self,
        client: ApiClient,
        config: DeployConfig,
        clock: Callable[[], float] = time.time,
        certificate_name: str | None = None,
    ):
        self.client = client
        self.config = config
        self.registry = CertificateRegistry(config.cert_basename)
        self.monitor = JobMonitor(config.timeout_seconds)
        self._clock = clock
        self._certificate_name = certificate_name
        # tracked here as well so a run subscribes once whatever the client does
        self._subscribed = False

    def run(self) -> DeployResult:
        """Run the deployment workflow.

        Raises:
            DeployError: any fatal step failure; pruning failures are only
                logged and reported in the result
        """
        result = DeployResult()

        self.login()
        material = read_pem_material(self.config.full_chain_path, self.config.private_key_path)
        self.registry.load(self.client, self.config.timeout_seconds, self.config.debug)

        now = self._clock()
        recent = self.registry.find_most_recent(now)

        if recent is None:
            name = self._certificate_name or generate_certificate_name(
                self.config.cert_basename, datetime.fromtimestamp(now)
            )
            logger.info("Installing certificate: %s", name)
            self.create_certificate(name, material)
            self.registry.load(self.client, self.config.timeout_seconds, self.config.debug)
            certificate_id = self.registry.lookup(name)
            logger.info("Certificate %s deployed successfully with id %d", name, certificate_id)
            result.created = True
            targets = self.enabled_targets()
        else:
            name, certificate_id = recent
            logger.info(
                "Certificate %s (id %d) is less than %d minutes old, reusing it",
                name,
                certificate_id,
                STALENESS_WINDOW_SECONDS // 60,
            )
            targets = self.targets_needing_update(certificate_id)

        result.certificate_name = name
        result.certificate_id = certificate_id

        if not targets and not result.created:
            logger.info("All configured services already use %s, nothing to do", name)
            result.noop = True

        ui_activated = self._activate(name, certificate_id, targets, result)

        if not ui_activated:
            logger.info("%s was not activated as the UI certificate, no certificates will be deleted", name)
            return result

        if self.config.delete_old_certs:
            self.prune(name, result)
        else:
            logger.info("Deletion of old certificates is disabled")

        self.restart_ui()
        result.restarted = True
        return result

    def login(self) -> None:
        """Authenticate with the configured API key."""
        if not self.config.api_key:
            raise ServerConnectionError("login failure, no api key")
        try:
            self.client.login("", "", self.config.api_key)
        except ApiError as error:
            raise ServerConnectionError(f"login failed, {error}") from error
        logger.info("Successfully logged in")

    def create_certificate(self, name: str, material: PemMaterial) -> None:
        """Import *material* under *name* and wait for the job to finish."""
        logger.debug("Create the certificate: %s", name)
        self._ensure_job_subscription()

        params = [
            {
                "name": name,
                "certificate": material.certificate,
                "privatekey": material.private_key,
                "create_type": CREATE_TYPE_IMPORTED,
            }
        ]
        try:
            job = self.client.call_with_job(METHOD_CERTIFICATE_CREATE, params, log_job_progress)
        except ApiError as error:
            raise CertificateCreateError(f"failed to create the certificate job, {error}") from error

        logger.info("Started the certificate creation job with ID: %d", job.id)
        self.monitor.wait(job)

    def prune(self, active_name: str, result: DeployResult | None = None) -> DeployResult:
        """Delete every registry entry except *active_name*, best-effort."""
        if result is None:
            result = DeployResult()

        try:
            self._ensure_job_subscription()
        except DeployError as error:
            logger.error("Certificate deletion skipped, %s", error)
            return result

        for name, certificate_id in self.registry.items():
            if name == active_name:
                logger.info("Skipping deletion of certificate %s", name)
                continue

            try:
                job = self.client.call_with_job(METHOD_CERTIFICATE_DELETE, [certificate_id], log_job_progress)
                logger.info("Deleting old certificate %s with job ID: %d", name, job.id)
                self.monitor.wait(job)
            except (ApiError, JobError) as error:
                failure = PruneError(f"deleting certificate {name} (id {certificate_id}) failed, {error}")
                logger.error("Certificate deletion failed, %s", failure)
                result.delete_failures.append(name)
                continue

            logger.info("Certificate %s was deleted", name)
            result.deleted.append(name)

        return result

    def restart_ui(self) -> None:
        try:
            self.client.call(METHOD_UI_RESTART, self.config.timeout_seconds, [])
        except ApiError as error:
            raise RestartError(f"failed to restart the UI, {error}") from error
        logger.info("The UI has been restarted")

    def enabled_targets(self) -> list[str]:
        """Activation targets switched on in the configuration."""
        targets = []
        if self.config.add_as_ui_certificate:
            targets.append(TARGET_UI)
        if self.config.add_as_ftp_certificate:
            targets.append(TARGET_FTP)
        if self.config.add_as_app_certificate:
            targets.append(TARGET_APP)
        return targets

    def targets_needing_update(self, certificate_id: int) -> list[str]:
        """Enabled targets not already using *certificate_id*."""
        targets = []
        if self.config.add_as_ui_certificate and current_ui_certificate(self.client, self.config) != certificate_id:
            targets.append(TARGET_UI)
        if self.config.add_as_ftp_certificate and current_ftp_certificate(self.client, self.config) != certificate_id:
            targets.append(TARGET_FTP)
        if self.config.add_as_app_certificate:
            stale = apps_needing_update(self.client, self.config, certificate_id)
            if stale:
                logger.info("Apps not using certificate id %d: %s", certificate_id, ", ".join(stale))
                targets.append(TARGET_APP)
        return targets

    def _activate(self, name: str, certificate_id: int, targets: list[str], result: DeployResult) -> bool:
        ui_activated = False

        if TARGET_UI in targets:
            ui_activated = activate_ui(self.client, self.config, certificate_id)
            result.activated.append(TARGET_UI)

        if TARGET_FTP in targets:
            activate_ftp(self.client, self.config, certificate_id)
            result.activated.append(TARGET_FTP)
            logger.info("%s is now the active FTP service certificate", name)

        if TARGET_APP in targets:
            self._ensure_job_subscription()
            result.updated_apps = activate_apps(self.client, self.config, certificate_id, self.monitor)
            result.activated.append(TARGET_APP)
            logger.info("%s is now the active app(s) certificate", name)

        return ui_activated

    def _ensure_job_subscription(self) -> None:
        if self._subscribed:
            return
        try:
            self.client.subscribe_to_jobs()
        except ApiError as error:
            raise ServerConnectionError(f"unable to subscribe to job notifications, {error}") from error
        self._subscribed = True
