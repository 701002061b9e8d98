"""Registry of certificates owned by this tool for one deployment run."""

import logging

from tnascert_deploy.api.schemas import parse_certificate_choices
from tnascert_deploy.exceptions import CertificateLookupError, RegistryLoadError
from tnascert_deploy.protocol.client import ApiClient, ApiError
from tnascert_deploy.protocol.constants import METHOD_CERTIFICATE_CHOICES
from tnascert_deploy.security.keypair import parse_certificate_epoch

logger = logging.getLogger(__name__)

STALENESS_WINDOW_SECONDS = 30 * 60


class CertificateRegistry:
    """Certificate name to identifier mapping built from server state.

    Only names starting with the configured basename are kept. Loading
    merges into the existing mapping and never removes entries; the first
    identifier seen for a name wins.
    """

    def __init__(self, basename: str):
        self.basename = basename
        self._certificates: dict[str, int] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._certificates

    def __len__(self) -> int:
        return len(self._certificates)

    def items(self) -> list[tuple[str, int]]:
        """Snapshot of (name, identifier) pairs in insertion order."""
        return list(self._certificates.items())

    def get(self, name: str) -> int | None:
        return self._certificates.get(name)

    def lookup(self, name: str) -> int:
        """Return the identifier of *name*; raises CertificateLookupError if absent."""
        try:
            return self._certificates[name]
        except KeyError:
            raise CertificateLookupError(f"certificate {name} not found in the certificate list") from None

    def add(self, name: str, certificate_id: int) -> bool:
        """Record a certificate; returns False if filtered out or already known."""
        if not name.startswith(self.basename) or name in self._certificates:
            return False
        self._certificates[name] = certificate_id
        return True

    def load(self, client: ApiClient, timeout: float, debug: bool = False) -> int:
        """Merge the server's certificate list into the registry.

        Returns:
            Number of certificates added by this load

        Raises:
            RegistryLoadError: the list could not be fetched or decoded
        """
        try:
            response = client.call(METHOD_CERTIFICATE_CHOICES, timeout, [])
        except ApiError as error:
            raise RegistryLoadError(f"failed to get the certificate list from the server, {error}") from error

        if debug:
            logger.debug("Certificate list response: %s", response)

        try:
            choices = parse_certificate_choices(response)
        except ValueError as error:
            raise RegistryLoadError(f"failed to decode the certificate list, {error}") from error

        added = 0
        for choice in choices:
            if self.add(choice.name, choice.id):
                added += 1
                logger.debug("Certificate list, name: %s, id: %d", choice.name, choice.id)

        logger.info("Loaded %d certificate(s) matching %s", len(self), self.basename)
        return added

    def find_most_recent(self, now: float, window: float = STALENESS_WINDOW_SECONDS) -> tuple[str, int] | None:
        """Return the newest certificate created less than *window* seconds before *now*.

        Names that do not parse, or that carry a timestamp in the future, are
        ignored. Equal timestamps resolve to the highest identifier.
        """
        best: tuple[int, int, str] | None = None

        for name, certificate_id in self._certificates.items():
            if not name.startswith(self.basename):
                continue
            epoch = parse_certificate_epoch(name)
            if epoch is None:
                logger.debug("Ignoring certificate with a malformed name: %s", name)
                continue
            age = now - epoch
            if age < 0 or age >= window:
                continue
            candidate = (epoch, certificate_id, name)
            if best is None or candidate[:2] > best[:2]:
                best = candidate

        if best is None:
            return None
        _, certificate_id, name = best
        return name, certificate_id
