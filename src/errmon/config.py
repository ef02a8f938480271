"""errmon configuration using pydantic-settings with YAML support."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from errmon.errors import ConfigError
from errmon.types import Environment, ErrorReport

logger = logging.getLogger("errmon")

DEFAULT_ENDPOINT = "http://localhost:8000/api/monitoring/errors"

_ENVIRONMENT_ALIASES = {
    "dev": "development",
    "local": "development",
    "test": "development",
    "stage": "staging",
    "prod": "production",
}


class MonitorConfig(BaseSettings):
    """Options accepted by ``ErrorMonitor.initialize``.

    Every option can also come from an ``ERRMON_``-prefixed environment
    variable; keyword arguments win over the environment.
    """

    model_config = SettingsConfigDict(env_prefix="ERRMON_", extra="forbid")

    endpoint: str = DEFAULT_ENDPOINT
    api_key: str = ""

    max_breadcrumbs: int = Field(default=100, ge=0)
    max_buffer_size: int = Field(default=50, ge=1)
    flush_interval: float = Field(default=30.0, gt=0, description="Seconds between flushes")

    enable_performance_monitoring: bool = True
    enable_user_tracking: bool = True
    enable_console_capture: bool = True
    enable_network_capture: bool = True
    enable_dom_capture: bool = False
    enable_screenshot: bool = False

    long_task_threshold_ms: float = 50.0
    memory_check_interval: float = Field(default=30.0, gt=0)
    memory_usage_threshold: float = Field(default=0.9, gt=0, le=1)

    session_storage_path: str | None = None

    before_send: Callable[[ErrorReport], Any] | None = None
    on_error: Callable[[ErrorReport], Any] | None = None


class EnvironmentSettings(BaseSettings):
    """Build and deployment labels, re-read for every report."""

    model_config = SettingsConfigDict(extra="ignore")

    build_version: str = Field(
        default="unknown",
        validation_alias=AliasChoices("ERRMON_BUILD_VERSION", "APP_VERSION", "BUILD_VERSION"),
    )
    environment: Environment = Field(
        default="development",
        validation_alias=AliasChoices("ERRMON_ENVIRONMENT", "ENVIRONMENT", "ENV"),
    )

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_environment(cls, value: Any) -> str:
        label = str(value).strip().lower()
        label = _ENVIRONMENT_ALIASES.get(label, label)
        if label not in ("development", "staging", "production"):
            return "development"
        return label


class CollectorSettings(BaseSettings):
    """Settings for the bundled collector service."""

    model_config = SettingsConfigDict(env_prefix="ERRMON_COLLECTOR_")

    host: str = "0.0.0.0"
    port: int = 8000
    rate_limit: int = 100
    rate_window: float = 60.0
    max_stored_reports: int = 1000
    debug: bool = False


def load_config(config_path: str | Path | None = None, **overrides: Any) -> MonitorConfig:
    """Load monitor options from a YAML file, environment variables and overrides.

    Overrides win over environment variables, which win over YAML values.
    """
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        for candidate in (Path("errmon.yaml"), Path("errmon.yml")):
            if candidate.exists():
                config_path = candidate
                break

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            try:
                with open(path) as f:
                    yaml_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
            if not isinstance(yaml_data, dict):
                raise ConfigError(f"Expected a mapping at the top of {path}")
            logger.debug("Loaded errmon config from %s", path)

    # Init kwargs outrank the environment, so layer env values over YAML here.
    env_config = MonitorConfig()
    merged = {**yaml_data, **env_config.model_dump(exclude_unset=True), **overrides}
    return MonitorConfig(**merged)
