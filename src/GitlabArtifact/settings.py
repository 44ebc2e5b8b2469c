# === NAVMAP v1 ===
# {
#   "module": "GitlabArtifact.settings",
#   "purpose": "Define configuration models, environment overrides, and cached default settings",
#   "sections": [
#     {"id": "constants", "name": "Constants", "anchor": "CONST", "kind": "constants"},
#     {"id": "models", "name": "Configuration Models", "anchor": "MOD", "kind": "api"},
#     {"id": "loading", "name": "Settings Loading", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the GitLab artifact transformer.

Settings are layered the same way for every entry point: explicit plugin
options win over ``GITLAB_ARTIFACT_*`` environment variables, which win over
the defaults declared on the models.  Nested sections use ``__`` as the
environment delimiter, e.g. ``GITLAB_ARTIFACT_DOWNLOAD__TIMEOUT_SEC=60``.
"""

from __future__ import annotations

import importlib.util
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

__all__ = [
    "DEFAULT_API_BASE",
    "ENV_PREFIX",
    "DownloadConfiguration",
    "LoggingConfiguration",
    "GitlabArtifactSettings",
    "load_settings",
    "get_default_settings",
    "invalidate_default_settings_cache",
]

# --- Constants -----------------------------------------------------------------

DEFAULT_API_BASE = "https://gitlab.com"
ENV_PREFIX = "GITLAB_ARTIFACT_"
LEGACY_TOKEN_ENV = "GITLAB_API_TOKEN"

# Option names accepted from remark-style configuration blocks.
_OPTION_ALIASES = {
    "apiBase": "api_base",
    "gitlabApiToken": "token",
    "gitlab_api_token": "token",
}


def _module_available(name: str) -> bool:
    return importlib.util.find_spec(name) is not None


# --- Configuration Models ------------------------------------------------------


class DownloadConfiguration(BaseModel):
    """HTTP, concurrency, and extraction limits for artifact downloads."""

    timeout_sec: float = Field(default=30.0, gt=0.0, le=3600.0)
    connect_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    pool_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    max_httpx_connections: int = Field(default=32, ge=1, le=1024)
    max_keepalive_connections: int = Field(default=8, ge=0, le=1024)
    keepalive_expiry_sec: float = Field(default=30.0, gt=0.0, le=600.0)
    http2_enabled: bool = Field(default=False)
    concurrent_downloads: int = Field(default=8, ge=1, le=32)
    spool_max_mb: int = Field(
        default=16,
        ge=1,
        le=1024,
        description="Artifact bytes held in memory before spooling to a temporary file",
    )
    max_uncompressed_size_gb: float = Field(
        default=5.0,
        gt=0.0,
        le=100.0,
        description="Refuse archives whose members expand beyond this size",
    )
    polite_headers: Dict[str, str] = Field(
        default_factory=lambda: {"User-Agent": "GitlabArtifact/0.1 (+https://gitlab.com)"}
    )

    model_config = {"validate_assignment": True, "extra": "ignore"}

    @field_validator("http2_enabled")
    @classmethod
    def validate_http2(cls, value: bool) -> bool:
        """Require the ``h2`` package when HTTP/2 is requested."""

        if value and not _module_available("h2"):
            raise ValueError(
                "http2_enabled requires the h2 package; install docs-gitlab-artifact[http2]"
            )
        return value

    def spool_max_bytes(self) -> int:
        """Return the in-memory spool threshold in bytes."""

        return int(self.spool_max_mb * 1024 * 1024)

    def max_uncompressed_bytes(self) -> int:
        """Return the maximum allowed uncompressed archive size in bytes."""

        return int(self.max_uncompressed_size_gb * (1024**3))


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for artifact processing."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=10, gt=0, description="Maximum size of rotated log files")
    backup_count: int = Field(default=5, ge=0, le=100, description="Rotated log files kept beside the active one")
    log_dir: Optional[Path] = Field(
        default=None, description="Directory for JSON log files; console only when unset"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class GitlabArtifactSettings(BaseSettings):
    """Top-level settings: API location, credentials, and nested sections."""

    api_base: str = Field(default=DEFAULT_API_BASE)
    token: SecretStr = Field(default=SecretStr(""))
    download: DownloadConfiguration = Field(default_factory=DownloadConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("api_base")
    @classmethod
    def validate_api_base(cls, value: str) -> str:
        """Require an absolute HTTP(S) base and drop trailing slashes."""

        stripped = value.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("api_base must start with http:// or https://")
        return stripped

    def token_value(self) -> str:
        """Return the raw private token for request headers."""

        return self.token.get_secret_value()


# --- Settings Loading ----------------------------------------------------------


def _normalise_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    normalised: Dict[str, Any] = {}
    for key, value in options.items():
        if value is None:
            continue
        normalised[_OPTION_ALIASES.get(key, key)] = value
    return normalised


def load_settings(options: Optional[Mapping[str, Any]] = None, **overrides: Any) -> GitlabArtifactSettings:
    """Build settings from plugin ``options`` layered over the environment.

    Args:
        options: Plugin options; remark-style keys (``apiBase``,
            ``gitlabApiToken``) are accepted alongside snake_case names.
        **overrides: Additional keyword options applied after ``options``.

    Returns:
        Validated :class:`GitlabArtifactSettings`.

    Raises:
        UserConfigError: If any option or environment value fails validation.
    """

    merged = _normalise_options(options or {})
    merged.update(_normalise_options(overrides))
    if "token" not in merged and not os.environ.get(f"{ENV_PREFIX}TOKEN"):
        legacy = os.environ.get(LEGACY_TOKEN_ENV, "").strip()
        if legacy:
            merged["token"] = legacy
    try:
        settings = GitlabArtifactSettings(**merged)
    except PydanticValidationError as exc:
        raise UserConfigError(f"Invalid GitLab artifact configuration: {exc}") from exc
    if not settings.token_value():
        logging.getLogger("GitlabArtifact").warning(
            "no GitLab token configured; private projects will fail to download",
            extra={"stage": "config"},
        )
    return settings


_DEFAULT_SETTINGS_CACHE: Optional[GitlabArtifactSettings] = None
_DEFAULT_SETTINGS_LOCK = threading.Lock()


def get_default_settings() -> GitlabArtifactSettings:
    """Return settings derived from the environment alone, cached per process."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        if _DEFAULT_SETTINGS_CACHE is None:
            _DEFAULT_SETTINGS_CACHE = load_settings()
        return _DEFAULT_SETTINGS_CACHE


def invalidate_default_settings_cache() -> None:
    """Invalidate the cached default settings."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        _DEFAULT_SETTINGS_CACHE = None
