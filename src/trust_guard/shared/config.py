"""Configuration schema for the trust engine, failed-login tracker and gate.

Values come from, in increasing priority: model defaults, an optional YAML file
(``TRUST_GUARD_CONFIG``), and environment variables. Every field of a section
can be overridden with ``<PREFIX><FIELD_NAME>``, e.g. ``TRUST_MAX_SCORE=90`` or
``FAILED_LOGIN_THRESHOLD=5``. List fields accept comma-separated values.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError

CONFIG_PATH_ENV = "TRUST_GUARD_CONFIG"

DEFAULT_BAD_USER_AGENTS = [
    "sqlmap",
    "curl",
    "python-requests",
    "nmap",
    "nikto",
    "wpscan",
]
DEFAULT_SUSPICIOUS_USER_AGENTS = [
    "Go-http-client",
    "Java/",
    "libwww-perl",
    "Mozilla/4.0 (compatible; MSIE 6.0; Windows NT 5.1)",
]
DEFAULT_GEO_SERVICE_URL = "https://ipapi.co/{ip}/json/"

M = TypeVar("M", bound=BaseModel)


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class TrustEngineConfig(BaseModel):
    """Scoring rules for :class:`trust_guard.trust.engine.TrustEngine`."""

    model_config = ConfigDict(frozen=True)

    bad_user_agents: List[str] = Field(
        default_factory=lambda: list(DEFAULT_BAD_USER_AGENTS)
    )
    suspicious_user_agents: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SUSPICIOUS_USER_AGENTS)
    )
    abnormal_hour_start: int = Field(default=1, ge=0, le=23)
    abnormal_hour_end: int = Field(default=5, ge=0, le=23)
    max_score: int = 100
    min_score: int = 0
    bad_ua_penalty: int = -100
    suspicious_ua_penalty: int = -30
    abnormal_hour_penalty: int = -40
    geo_service_url: str = DEFAULT_GEO_SERVICE_URL
    geoip_db_path: Optional[str] = None
    geo_timeout: float = Field(default=0.5, gt=0.0, le=30.0)
    ua_cache_ttl: float = Field(default=3600.0, gt=0.0)
    ua_cache_maxsize: int = Field(default=10000, ge=1)

    @field_validator("bad_user_agents", "suspicious_user_agents", mode="before")
    @classmethod
    def _lists_from_csv(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("geo_service_url")
    @classmethod
    def validate_geo_service_url(cls, value: str) -> str:
        if not value:
            return value
        if urlparse(value).scheme not in {"http", "https"}:
            raise ValueError("geo_service_url must start with http or https")
        if "{ip}" not in value and "%s" not in value:
            raise ValueError("geo_service_url must contain an '{ip}' placeholder")
        return value

    @model_validator(mode="after")
    def validate_bounds(self) -> "TrustEngineConfig":
        if self.min_score > self.max_score:
            raise ValueError(
                f"min_score ({self.min_score}) must be <= max_score ({self.max_score})"
            )
        return self

    @classmethod
    def from_env(cls) -> "TrustEngineConfig":
        return _build(cls, _env_overrides("TRUST_", cls))


class FailedLoginConfig(BaseModel):
    """Sliding-window policy for :class:`FailedLoginTracker`."""

    model_config = ConfigDict(frozen=True)

    threshold: int = Field(default=3, ge=1)
    expiry_window: float = Field(default=600.0, gt=0.0)
    penalty: int = -50
    max_tracked_keys: int = Field(default=100000, ge=1)

    @classmethod
    def from_env(cls) -> "FailedLoginConfig":
        return _build(cls, _env_overrides("FAILED_LOGIN_", cls))


class GateConfig(BaseModel):
    """Accept/reject policy applied by the HTTP trust gate."""

    model_config = ConfigDict(frozen=True)

    min_trust_score: int = 30
    protected_paths: List[str] = Field(default_factory=lambda: ["/"])
    exempt_paths: List[str] = Field(default_factory=lambda: ["/health", "/metrics"])
    failed_login_reason: str = "Too many failed login attempts"

    @field_validator("protected_paths", "exempt_paths", mode="before")
    @classmethod
    def _paths_from_csv(cls, value: Any) -> Any:
        return _split_csv(value)

    @classmethod
    def from_env(cls) -> "GateConfig":
        return _build(cls, _env_overrides("GATE_", cls))


class TrustGuardSettings(BaseModel):
    """Complete service configuration."""

    model_config = ConfigDict(frozen=True)

    service_name: str = "trust-guard"
    log_level: str = "INFO"
    trust: TrustEngineConfig = Field(default_factory=TrustEngineConfig)
    failed_login: FailedLoginConfig = Field(default_factory=FailedLoginConfig)
    gate: GateConfig = Field(default_factory=GateConfig)


def _env_overrides(prefix: str, model: Type[BaseModel]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for name in model.model_fields:
        value = os.getenv(f"{prefix}{name.upper()}")
        if value is not None:
            overrides[name] = value
    return overrides


def _build(model: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {model.__name__}: {exc}") from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Config file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def load_settings(path: str | Path | None = None) -> TrustGuardSettings:
    """Load settings from YAML (if any) with environment overrides on top."""
    if path is None:
        path = os.getenv(CONFIG_PATH_ENV) or None
    data: Dict[str, Any] = _read_yaml(Path(path)) if path else {}

    sections = {
        "trust": (TrustEngineConfig, "TRUST_"),
        "failed_login": (FailedLoginConfig, "FAILED_LOGIN_"),
        "gate": (GateConfig, "GATE_"),
    }
    built: Dict[str, Any] = {}
    for section, (model, prefix) in sections.items():
        section_data = data.get(section) or {}
        if not isinstance(section_data, dict):
            raise ConfigurationError(f"Config section '{section}' must be a mapping")
        built[section] = _build(model, {**section_data, **_env_overrides(prefix, model)})

    return _build(
        TrustGuardSettings,
        {
            "service_name": os.getenv("SERVICE_NAME", data.get("service_name", "trust-guard")),
            "log_level": os.getenv("LOG_LEVEL", data.get("log_level", "INFO")),
            **built,
        },
    )
