"""Configuration for certificate deployment."""

import configparser
from pathlib import Path
from typing import Literal

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from tnascert_deploy.protocol.constants import DEFAULT_TIMEOUT_SECONDS, ENDPOINT

CONFIG_FILE = "tnas-cert.ini"
DEFAULT_SECTION = "default"
DEFAULT_CERT_BASENAME = "tnas-cert-deploy"
DEFAULT_PORT = 443
DEFAULT_PROTOCOL = "wss"
MIN_API_KEY_LENGTH = 66

# INI spellings accepted for backward compatibility (configparser lowercases keys)
_KEY_ALIASES = {"timeoutseconds": "timeout_seconds"}


class ConfigError(Exception):
    """Raised when the configuration cannot be loaded or is invalid."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


class DeployConfig(BaseSettings):
    """Deployment configuration from an INI section, overridable via environment."""

    # Connection
    connect_host: str
    port: int = DEFAULT_PORT
    protocol: Literal["ws", "wss"] = DEFAULT_PROTOCOL
    tls_skip_verify: bool = False
    api_key: str
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    # Certificate material
    cert_basename: str = DEFAULT_CERT_BASENAME
    full_chain_path: Path
    private_key_path: Path

    # Activation targets
    add_as_ui_certificate: bool = False
    add_as_ftp_certificate: bool = False
    add_as_app_certificate: bool = False
    app_name: str | None = None
    delete_old_certs: bool = False

    # Logging
    debug: bool = False
    log_level: str = "INFO"

    model_config = {"env_prefix": "TNASCERT_", "env_file": ".env", "extra": "ignore", "frozen": True}

    @field_validator("connect_host")
    @classmethod
    def validate_connect_host(cls, v):
        if not v.strip():
            raise ValueError("connect_host is not defined")
        return v.strip()

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v):
        if len(v) < MIN_API_KEY_LENGTH:
            raise ValueError("invalid or empty api_key")
        return v

    @field_validator("full_chain_path", "private_key_path", mode="before")
    @classmethod
    def validate_path(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("path is not defined")
        return v

    @field_validator("cert_basename", mode="before")
    @classmethod
    def default_cert_basename(cls, v):
        return v or DEFAULT_CERT_BASENAME

    @field_validator("port", mode="before")
    @classmethod
    def default_port(cls, v):
        return v if v not in (None, "", 0, "0") else DEFAULT_PORT

    @field_validator("protocol", mode="before")
    @classmethod
    def default_protocol(cls, v):
        return v or DEFAULT_PROTOCOL

    @field_validator("timeout_seconds")
    @classmethod
    def default_timeout(cls, v):
        return v if v > 0 else DEFAULT_TIMEOUT_SECONDS

    @field_validator("app_name", mode="before")
    @classmethod
    def empty_app_name(cls, v):
        return v or None

    @property
    def server_url(self) -> str:
        """WebSocket URL of the API endpoint."""
        return f"{self.protocol}://{self.connect_host}:{self.port}/{ENDPOINT}"

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()


def _read_section(config_file: Path, section: str) -> dict[str, str]:
    parser = configparser.ConfigParser(interpolation=None)
    try:
        found = parser.read(config_file, encoding="utf-8")
    except (configparser.Error, UnicodeDecodeError) as error:
        raise ConfigError([f"failed to parse {config_file}: {error}"]) from error

    if not found:
        raise ConfigError([f"configuration file not found: {config_file}"])
    if not parser.has_section(section):
        raise ConfigError([f"section '{section}' not found in {config_file}"])

    values = {}
    for key, value in parser.items(section):
        values[_KEY_ALIASES.get(key, key)] = value.strip().strip('"')
    return values


def load_config(config_file: str | Path = CONFIG_FILE, section: str = DEFAULT_SECTION) -> DeployConfig:
    """Load and validate one section of an INI configuration file."""
    values = _read_section(Path(config_file), section)
    try:
        return DeployConfig(**values)
    except ValidationError as error:
        errors = [f"{'.'.join(str(p) for p in e['loc']) or 'config'}: {e['msg']}" for e in error.errors()]
        raise ConfigError(errors) from error
