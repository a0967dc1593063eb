"""devboot configuration: Pydantic model, load, and save."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from devboot.core.constants import (
    CONFIG_FILENAME,
    DAEMON_POLL_ATTEMPTS,
    DAEMON_POLL_INTERVAL_SECONDS,
    DEFAULT_CERTIFICATES_DIR,
    DEFAULT_COMMON_NAME,
    DEFAULT_CONNECTOR_REGION,
    DEFAULT_CREDENTIALS_REGION,
    DEFAULT_KEY_SIZE,
    DEFAULT_ORGANIZATION,
    DEFAULT_PROJECT_NAME,
    DEFAULT_STACK_ENVIRONMENT,
    DEFAULT_STACK_NAME,
    DEFAULT_TEMPLATE_PATH,
    DEFAULT_VALIDITY_DAYS,
    DEVBOOT_DIR_NAME,
    ENV_AWS_PROFILE_LOCAL,
    ENV_AWS_REGION,
    ENV_CONFIG_PATH,
    ENV_LOG_LEVEL,
    ENV_PROJECT_NAME,
    MIN_KEY_SIZE,
    SESSION_FILENAME,
    TAILSCALE_KEY_PREFIX,
    TAILSCALE_LOG_PATH,
    TAILSCALE_SOCKET_PATH,
)
from devboot.core.exceptions import ConfigError


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class AwsConfig(BaseModel):
    region: str | None = None  # explicit override; wins over everything else
    credentials_fallback_region: str = DEFAULT_CREDENTIALS_REGION
    connector_region: str = DEFAULT_CONNECTOR_REGION
    local_profile: str | None = None

    def region_for_connector(self) -> str:
        return self.region or self.connector_region


class TailscaleConfig(BaseModel):
    socket_path: str = TAILSCALE_SOCKET_PATH
    log_path: str = TAILSCALE_LOG_PATH
    use_sudo: bool = True
    require_key_prefix: bool = True
    key_prefix: str = TAILSCALE_KEY_PREFIX
    max_attempts: int = DAEMON_POLL_ATTEMPTS
    interval_seconds: float = DAEMON_POLL_INTERVAL_SECONDS

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if not (1 <= v <= 600):
            raise ValueError("max_attempts must be between 1 and 600")
        return v

    @field_validator("interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_seconds must be positive")
        return v


class CertificatesConfig(BaseModel):
    directory: str = DEFAULT_CERTIFICATES_DIR
    validity_days: int = Field(default=DEFAULT_VALIDITY_DAYS, ge=1)
    common_name: str = DEFAULT_COMMON_NAME
    organization: str = DEFAULT_ORGANIZATION
    key_size: int = DEFAULT_KEY_SIZE

    @field_validator("key_size")
    @classmethod
    def validate_key_size(cls, v: int) -> int:
        if v < MIN_KEY_SIZE:
            raise ValueError(f"key_size must be at least {MIN_KEY_SIZE}")
        return v


class StackConfig(BaseModel):
    name: str = DEFAULT_STACK_NAME
    environment: Literal["dev", "staging", "prod"] = DEFAULT_STACK_ENVIRONMENT
    template: str = DEFAULT_TEMPLATE_PATH


class LoggingConfig(BaseModel):
    level: str = "WARNING"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class DevbootConfig(BaseModel):
    """Root devboot configuration model."""

    project_name: str = DEFAULT_PROJECT_NAME
    aws: AwsConfig = Field(default_factory=AwsConfig)
    tailscale: TailscaleConfig = Field(default_factory=TailscaleConfig)
    certificates: CertificatesConfig = Field(default_factory=CertificatesConfig)
    stack: StackConfig = Field(default_factory=StackConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v:
            raise ValueError("project_name must not be empty")
        return v


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def _config_file_path(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    if env_path := env.get(ENV_CONFIG_PATH):
        return Path(env_path)
    return Path.home() / DEVBOOT_DIR_NAME / CONFIG_FILENAME


def load_config(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> DevbootConfig:
    """
    Load DevbootConfig from TOML file, overlaid with environment variables.

    The config file is optional: when it does not exist the defaults apply.

    Priority (highest to lowest):
      1. Environment variables (PROJECT_NAME, AWS_REGION, AWS_PROFILE_LOCAL,
         DEVBOOT_LOG_LEVEL)
      2. Config file (~/.devboot/config.toml)
    """
    import tomllib

    env = os.environ if environ is None else environ
    cfg_path = path or _config_file_path(env)

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc

    _apply_env_overrides(data, env)

    try:
        return DevbootConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> None:
    """Overlay recognised environment variables onto the parsed TOML data."""
    if project := environ.get(ENV_PROJECT_NAME):
        data["project_name"] = project
    if region := environ.get(ENV_AWS_REGION):
        data.setdefault("aws", {})["region"] = region
    if profile := environ.get(ENV_AWS_PROFILE_LOCAL):
        data.setdefault("aws", {})["local_profile"] = profile
    if level := environ.get(ENV_LOG_LEVEL):
        data.setdefault("logging", {})["level"] = level


def _write_toml(data: dict[str, Any], path: Path) -> Path:
    import tomli_w

    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    # Write atomically
    tmp_path = path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(data, f)
        tmp_path.rename(path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write {path}: {exc}") from exc

    path.chmod(0o600)
    return path


# ---------------------------------------------------------------------------
# Session state (active AWS profile)
# ---------------------------------------------------------------------------


def session_file_path() -> Path:
    return Path.home() / DEVBOOT_DIR_NAME / SESSION_FILENAME


def save_active_profile(profile: str | None, path: Path | None = None) -> Path:
    """
    Persist the active AWS profile for later shells and commands.

    ``None`` clears a previously stored profile.
    """
    data: dict[str, Any] = {"aws": {"profile": profile}} if profile else {"aws": {}}
    return _write_toml(data, path or session_file_path())


def load_active_profile(path: Path | None = None) -> str | None:
    """Return the persisted active AWS profile, or None."""
    import tomllib

    session_path = path or session_file_path()
    if not session_path.exists():
        return None
    try:
        with open(session_path, "rb") as f:
            data = tomllib.load(f)
    except Exception as exc:
        raise ConfigError(f"Cannot read session file {session_path}: {exc}") from exc
    profile = data.get("aws", {}).get("profile")
    return str(profile) if profile else None
