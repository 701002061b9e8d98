"""Pydantic schemas for TrueNAS API responses."""

import logging
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)


class ResponseEnvelope(BaseModel):
    """JSON-RPC response envelope."""

    jsonrpc: str = "2.0"
    id: int | None = None
    result: Any = None

    model_config = {"extra": "ignore"}


class CertificateChoice(BaseModel):
    """Entry of ``app.certificate_choices``."""

    id: int
    name: str

    model_config = {"extra": "ignore"}


class AppSummary(BaseModel):
    """Entry of ``app.query``."""

    id: str
    name: str

    model_config = {"extra": "ignore"}


class AppConfig(BaseModel):
    """Result of ``app.config``; only the certificate bindings matter here."""

    network: dict[str, Any] = {}

    model_config = {"extra": "ignore"}

    @field_validator("network", mode="before")
    @classmethod
    def coerce_mapping(cls, v):
        return v if isinstance(v, dict) else {}

    @property
    def has_certificate_settings(self) -> bool:
        """Whether the app exposes a certificate-bearing network section."""
        return "certificate_id" in self.network

    @property
    def certificate_id(self) -> int | None:
        value = self.network.get("certificate_id")
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value


def parse_result(raw: bytes) -> Any:
    """Return the ``result`` member of a raw response envelope."""
    return ResponseEnvelope.model_validate_json(raw).result


def _parse_list(raw: bytes, model: type[BaseModel], what: str) -> list:
    result = parse_result(raw)
    if not isinstance(result, list):
        raise ValueError(f"{what} response is not a list")

    entries = []
    for item in result:
        try:
            entries.append(model.model_validate(item))
        except ValidationError:
            logger.debug("Skipping malformed %s entry: %r", what, item)
    return entries


def parse_certificate_choices(raw: bytes) -> list[CertificateChoice]:
    """Parse ``app.certificate_choices``, skipping entries of the wrong shape."""
    return _parse_list(raw, CertificateChoice, "certificate list")


def parse_app_list(raw: bytes) -> list[AppSummary]:
    """Parse ``app.query``, skipping entries of the wrong shape."""
    return _parse_list(raw, AppSummary, "app list")


def parse_app_config(raw: bytes) -> AppConfig:
    """Parse ``app.config``; a non-object result yields an empty config."""
    result = parse_result(raw)
    if not isinstance(result, dict):
        logger.debug("App config response is not an object: %r", result)
        return AppConfig()
    return AppConfig.model_validate(result)


def _certificate_reference(value: Any) -> int | None:
    # Either a bare id or an expanded certificate object
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def parse_service_certificate(raw: bytes, key: str) -> int | None:
    """Certificate id stored under *key* of a service config response."""
    result = parse_result(raw)
    if not isinstance(result, dict):
        raise ValueError("service config response is not an object")
    return _certificate_reference(result.get(key))
