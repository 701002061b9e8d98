"""TrueNAS API client capability and job tracking."""

from tnascert_deploy.protocol.client import ApiClient, ApiError, Job, JobEvent
from tnascert_deploy.protocol.jobs import JobMonitor
from tnascert_deploy.protocol.websocket import TrueNASClient

__all__ = [
    "ApiClient",
    "ApiError",
    "Job",
    "JobEvent",
    "JobMonitor",
    "TrueNASClient",
]
