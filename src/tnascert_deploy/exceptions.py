"""Errors raised while deploying a certificate."""


class DeployError(Exception):
    """Base class for failures that abort or degrade a deployment run."""


class ServerConnectionError(DeployError):
    """The server could not be reached or the login was rejected."""


class RegistryLoadError(DeployError):
    """The certificate list could not be fetched or decoded."""


class FileReadError(DeployError):
    """The certificate chain or private key could not be read."""


class CertificateCreateError(DeployError):
    """The certificate create job could not be started."""


class JobError(DeployError):
    """A server-side job did not complete successfully."""

    def __init__(self, message: str, job_id: int | None = None):
        super().__init__(message)
        self.job_id = job_id


class JobFailure(JobError):
    """The server reported the job as failed."""


class JobTimeout(JobError):
    """No terminal notification arrived before the deadline."""


class CertificateLookupError(DeployError, LookupError):
    """An expected certificate is missing from the reloaded registry."""


class ActivationError(DeployError):
    """Assigning the certificate to a service failed."""


class PruneError(DeployError):
    """Deleting a superseded certificate failed."""


class RestartError(DeployError):
    """The UI restart call failed."""
