"""Certificate deployment runner.

Usage::

    tnascert-deploy
    tnascert-deploy -c /etc/tnas-cert.ini nas01
    python -m tnascert_deploy.service --debug
"""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version

from tnascert_deploy.config import CONFIG_FILE, DEFAULT_SECTION, ConfigError, DeployConfig, load_config
from tnascert_deploy.deploy.orchestrator import CertificateDeployer, DeployResult
from tnascert_deploy.exceptions import DeployError, ServerConnectionError
from tnascert_deploy.protocol.client import ApiClient, ApiError
from tnascert_deploy.protocol.websocket import TrueNASClient
from tnascert_deploy.security.keypair import verify_certificate_key_pair

logger = logging.getLogger(__name__)


def _get_version() -> str:
    try:
        return version("tnascert-deploy")
    except PackageNotFoundError:
        return "1.2.0"


class DeployService:
    """Runs one deployment against the configured server."""

    def __init__(self, config: DeployConfig):
        self.config = config

    def _setup_logging(self):
        """Configure logging."""
        logging.basicConfig(
            level=getattr(logging, self.config.effective_log_level),
            format="%(asctime)s %(name)s %(message)s",
            stream=sys.stdout,
            force=True,
        )

    def _connect(self) -> ApiClient:
        try:
            return TrueNASClient.connect(
                self.config.server_url,
                tls_skip_verify=self.config.tls_skip_verify,
                timeout=self.config.timeout_seconds,
            )
        except ApiError as error:
            raise ServerConnectionError(f"failed to connect to the server, {error}") from error

    def run(self) -> DeployResult:
        """Verify the key pair, connect and deploy."""
        self._setup_logging()

        try:
            verify_certificate_key_pair(self.config.full_chain_path, self.config.private_key_path)
        except ValueError as error:
            raise DeployError(f"verifying the certificate key pair, {error}") from error
        logger.info("Verified the certificate key pair")

        client = self._connect()
        try:
            if self.config.debug:
                logger.debug("Client is type: %s", type(client).__name__)
            return CertificateDeployer(client, self.config).run()
        finally:
            try:
                client.close()
            except (ApiError, OSError) as error:
                logger.warning("Failed to close the client connection, %s", error)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tnascert-deploy",
        description="Deploy a TLS certificate to a TrueNAS server",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=CONFIG_FILE,
        metavar="PATH",
        help="Full path to the configuration file.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging, including raw server responses.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "section",
        nargs="?",
        default=DEFAULT_SECTION,
        help="INI section to deploy (default: %(default)s).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    args = _build_parser().parse_args(argv)

    # Plain stderr logging until the configuration is loaded
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config, args.section)
    except ConfigError as error:
        logger.error("Error loading config, %s", error)
        sys.exit(1)

    if args.debug and not config.debug:
        config = config.model_copy(update={"debug": True})

    try:
        result = DeployService(config).run()
    except DeployError as error:
        logger.error("Installing the certificate failed, %s", error)
        sys.exit(1)

    if result.noop:
        logger.info("Certificate %s is current, no changes were made", result.certificate_name)
    else:
        logger.info("Certificate %s (id %s) deployment finished", result.certificate_name, result.certificate_id)


if __name__ == "__main__":
    main()
