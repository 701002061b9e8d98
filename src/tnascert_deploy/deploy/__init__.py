"""Certificate deployment workflow."""

from tnascert_deploy.deploy.orchestrator import CertificateDeployer, DeployResult
from tnascert_deploy.deploy.registry import STALENESS_WINDOW_SECONDS, CertificateRegistry

__all__ = [
    "STALENESS_WINDOW_SECONDS",
    "CertificateDeployer",
    "CertificateRegistry",
    "DeployResult",
]
