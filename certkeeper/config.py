"""Certification configuration for certkeeper."""

from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .config_utils import get_config_dir, load_yaml_config, parse_duration
from .types import CertificationMode, ConfigurationError

# Default values for keys that may be omitted from the config file
DEFAULT_CONFIG: dict[str, Any] = {
    "extra_domains": [],
    "mode": CertificationMode.AUTO.value,
    "backup_path": None,
    "renewal_interval": "1d",
    "certbot_command": "certbot",
    "log_level": "INFO",
}

# Keys read from the config file that are not part of CertificationConfig
_NON_MODEL_KEYS = ("log_level",)


class LocalAcmeServer(BaseModel):
    """Reference to a local development ACME directory."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = "localhost"
    port: int = Field(..., gt=0, lt=65536)


class CertificationConfig(BaseModel):
    """Immutable settings for one certificate managed by certkeeper."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_folder: Path
    cert_folder: Path
    domain: str
    extra_domains: tuple[str, ...] = ()
    ca_url: LocalAcmeServer | str
    email: str
    backup_path: Path | None = None
    mode: CertificationMode = CertificationMode.AUTO
    renewal_interval: timedelta = timedelta(days=1)
    certbot_command: str = "certbot"

    @field_validator("base_folder", "cert_folder", "backup_path")
    @classmethod
    def _absolute_path(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        return value.expanduser().absolute()

    @field_validator("domain", "email", "certbot_command")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("extra_domains")
    @classmethod
    def _strip_domains(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        domains = tuple(d.strip() for d in value)
        if any(not d for d in domains):
            raise ValueError("extra domains must not be empty")
        return domains

    @field_validator("ca_url")
    @classmethod
    def _non_empty_url(cls, value: LocalAcmeServer | str) -> LocalAcmeServer | str:
        if isinstance(value, str) and not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("renewal_interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("renewal_interval")
    @classmethod
    def _positive_interval(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("must be positive")
        return value

    @model_validator(mode="after")
    def _distinct_folders(self) -> "CertificationConfig":
        if self.base_folder == self.cert_folder:
            raise ValueError("base_folder and cert_folder must be different paths")
        return self

    @property
    def domains(self) -> list[str]:
        """Primary domain followed by the extra domains, without duplicates."""
        return list(dict.fromkeys([self.domain, *self.extra_domains]))


def get_default_config_path() -> Path:
    return get_config_dir() / "config.yaml"


def build_certification_config(data: dict[str, Any]) -> CertificationConfig:
    """Validate a raw mapping into a CertificationConfig.

    Raises:
        ConfigurationError: If required keys are missing or values are invalid
    """
    fields = {k: v for k, v in data.items() if k not in _NON_MODEL_KEYS}
    try:
        return CertificationConfig.model_validate(fields)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid certification config: {e}") from e


def load_raw_config(
    config_path: Path | None = None, overrides: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Load the config file merged over defaults, then apply overrides.

    Overrides whose value is None are ignored.

    Raises:
        ConfigurationError: If the file cannot be parsed
    """
    path = config_path or get_default_config_path()
    try:
        data = load_yaml_config(path, DEFAULT_CONFIG)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return data


def load_certification_config(
    config_path: Path | None = None, overrides: dict[str, Any] | None = None
) -> CertificationConfig:
    """Load and validate the certification config in one step."""
    return build_certification_config(load_raw_config(config_path, overrides))
