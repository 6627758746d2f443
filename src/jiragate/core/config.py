"""jiragate configuration: Pydantic model, TOML load, and environment overlays."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, Field, SecretStr, field_validator

from jiragate.core.constants import (
    CONFIG_FILENAME,
    CONFIRM_BULK,
    CONFIRM_DELETE,
    CONFIRM_SPRINT,
    CONFIRM_TRANSITION,
    DEFAULT_ALLOWED_EXTENSIONS,
    DEFAULT_MAX_FILE_SIZE,
    MAX_FILE_SIZE_CEILING,
    MIN_FILE_SIZE,
    _default_config_dir,
)
from jiragate.core.exceptions import ConfigError, ConfigNotFoundError, SecurityError
from jiragate.core.risk import RiskLevel, parse_risk_level


_N = TypeVar("_N", int, float)


def _bounded(name: str, v: _N, low: float, high: float) -> _N:
    if not (low <= v <= high):
        raise ValueError(f"{name} must be between {low} and {high}")
    return v


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class JiraConfig(BaseModel):
    """Connection settings for the Jira Cloud site."""

    model_config = {"extra": "forbid"}

    host: str = ""
    email: str = ""
    api_token: SecretStr | None = None
    auth_type: Literal["basic", "oauth2"] = "basic"
    timeout_seconds: float = 30.0

    @field_validator("host")
    @classmethod
    def normalize_host(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if v and not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if v and ("@" not in v or v.startswith("@") or v.endswith("@")):
            raise ValueError(f"Invalid email address {v!r}")
        return v

    @property
    def base_url(self) -> str:
        return self.host

    def missing_credentials(self) -> list[str]:
        """Names of the settings still required to reach Jira."""
        missing = []
        if not self.host:
            missing.append("JIRA_HOST")
        if self.api_token is None or not self.api_token.get_secret_value():
            missing.append("JIRA_API_TOKEN")
        if self.auth_type == "basic" and not self.email:
            missing.append("JIRA_EMAIL")
        return missing


class ConfirmationConfig(BaseModel):
    """Which destructive operation classes need a literal confirmation phrase."""

    model_config = {"extra": "forbid"}

    delete: bool = True
    bulk: bool = True
    sprint: bool = True
    transition: bool = False


class SecurityConfig(BaseModel):
    model_config = {"extra": "forbid"}

    enable_destructive_operations: bool = True
    enable_bulk_operations: bool = True
    enable_file_operations: bool = True
    enable_user_enumeration: bool = False
    max_bulk_size: int = 50
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    allowed_file_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_EXTENSIONS)
    )
    allowed_directories: list[str] = Field(default_factory=list)
    require_confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)

    @field_validator("max_bulk_size")
    @classmethod
    def validate_bulk_size(cls, v: int) -> int:
        return _bounded("max_bulk_size", v, 1, 100)

    @field_validator("max_file_size")
    @classmethod
    def validate_file_size(cls, v: int) -> int:
        return _bounded("max_file_size", v, MIN_FILE_SIZE, MAX_FILE_SIZE_CEILING)

    @field_validator("allowed_file_extensions", "allowed_directories", mode="before")
    @classmethod
    def parse_csv(cls, v: Any) -> Any:
        """Accept both list and comma-separated string."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("allowed_file_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        return [e.lower().lstrip(".") for e in v]


class RateLimitingConfig(BaseModel):
    """Per-minute request limits per operation class."""

    model_config = {"extra": "forbid"}

    enabled: bool = True
    standard_ops: int = 60
    bulk_ops: int = 10
    search_ops: int = 30
    file_ops: int = 5

    @field_validator("standard_ops")
    @classmethod
    def validate_standard(cls, v: int) -> int:
        return _bounded("standard_ops", v, 1, 300)

    @field_validator("bulk_ops")
    @classmethod
    def validate_bulk(cls, v: int) -> int:
        return _bounded("bulk_ops", v, 1, 50)

    @field_validator("search_ops")
    @classmethod
    def validate_search(cls, v: int) -> int:
        return _bounded("search_ops", v, 1, 100)

    @field_validator("file_ops")
    @classmethod
    def validate_file(cls, v: int) -> int:
        return _bounded("file_ops", v, 1, 20)


class AuditConfig(BaseModel):
    model_config = {"extra": "forbid"}

    enabled: bool = True
    level: Literal["low", "medium", "high", "all"] = "medium"
    """Minimum risk level echoed to the log stream; the journal records everything."""
    retention_days: int = 30
    max_entries: int = 5000
    max_memory_mb: float = 25.0
    cleanup_interval_s: float = 300.0
    batch_cleanup_size: int = 500

    @field_validator("level", mode="before")
    @classmethod
    def lower_level(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @field_validator("retention_days")
    @classmethod
    def validate_retention(cls, v: int) -> int:
        return _bounded("retention_days", v, 1, 365)

    @field_validator("max_entries", "batch_cleanup_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("max_memory_mb")
    @classmethod
    def validate_memory(cls, v: float) -> float:
        return _bounded("max_memory_mb", v, 1, 1024)

    @field_validator("cleanup_interval_s")
    @classmethod
    def validate_cleanup_interval(cls, v: float) -> float:
        return _bounded("cleanup_interval_s", v, 10, 86400)

    @property
    def console_level(self) -> RiskLevel:
        return parse_risk_level(self.level)


class PermissionCheckingConfig(BaseModel):
    model_config = {"extra": "forbid"}

    enabled: bool = True
    strict: bool = False
    """When False, missing required permissions are audited but do not block."""
    cache_timeout: int = 300
    max_cache_size: int = 100

    @field_validator("cache_timeout")
    @classmethod
    def validate_cache_timeout(cls, v: int) -> int:
        return _bounded("cache_timeout", v, 60, 3600)

    @field_validator("max_cache_size")
    @classmethod
    def validate_cache_size(cls, v: int) -> int:
        return _bounded("max_cache_size", v, 1, 10_000)


class LoggingConfig(BaseModel):
    model_config = {"extra": "forbid"}

    level: str = "INFO"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

# Operations gated by a feature flag.
_DESTRUCTIVE_OPS = frozenset({"delete_attachment", "complete_sprint"})
_BULK_OPS = frozenset({"bulk_update_issues", "move_issues_to_sprint"})
_FILE_OPS = frozenset({"upload_attachment", "download_attachment"})
_USER_ENUM_OPS = frozenset({"get_all_users", "search_users", "find_users"})


class GatewayConfig(BaseModel):
    """Root jiragate configuration model."""

    config_version: int = 1
    jira: JiraConfig = Field(default_factory=JiraConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    rate_limiting: RateLimitingConfig = Field(default_factory=RateLimitingConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    permissions: PermissionCheckingConfig = Field(default_factory=PermissionCheckingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _config_path: Path | None = None

    # -- operation policy -------------------------------------------------

    def is_operation_allowed(self, operation: str) -> bool:
        sec = self.security
        if operation in _DESTRUCTIVE_OPS:
            return sec.enable_destructive_operations
        if operation in _BULK_OPS:
            return sec.enable_bulk_operations
        if operation in _FILE_OPS:
            return sec.enable_file_operations
        if operation in _USER_ENUM_OPS:
            return sec.enable_user_enumeration
        return True

    def confirmation_phrase_for(self, operation: str) -> str | None:
        """The phrase *operation* must be confirmed with, or None if none is needed."""
        rc = self.security.require_confirmation
        op = operation.lower()
        if "delete" in op or "remove" in op:
            return CONFIRM_DELETE if rc.delete else None
        if "bulk" in op:
            return CONFIRM_BULK if rc.bulk else None
        if "sprint" in op and ("complete" in op or "start" in op):
            return CONFIRM_SPRINT if rc.sprint else None
        if "transition" in op:
            return CONFIRM_TRANSITION if rc.transition else None
        return None

    def needs_confirmation(self, operation: str) -> bool:
        return self.confirmation_phrase_for(operation) is not None

    def validate_operation(
        self,
        operation: str,
        *,
        item_count: int | None = None,
        file_size: int | None = None,
    ) -> None:
        """Raise :class:`SecurityError` if configuration forbids this call."""
        if not self.is_operation_allowed(operation):
            raise SecurityError(
                f"Operation '{operation}' is disabled by security configuration",
                "OPERATION_DISABLED",
            )
        if item_count is not None and item_count > self.security.max_bulk_size:
            raise SecurityError(
                f"Bulk operation exceeds maximum size: {item_count} > "
                f"{self.security.max_bulk_size}",
                "BULK_TOO_LARGE",
            )
        if file_size is not None and file_size > self.security.max_file_size:
            raise SecurityError(
                f"File size exceeds maximum: {file_size} > {self.security.max_file_size}",
                "FILE_TOO_LARGE",
            )

    def security_summary(self) -> dict[str, Any]:
        sec = self.security
        return {
            "destructive_operations": sec.enable_destructive_operations,
            "bulk_operations": sec.enable_bulk_operations,
            "file_operations": sec.enable_file_operations,
            "user_enumeration": sec.enable_user_enumeration,
            "max_bulk_size": sec.max_bulk_size,
            "max_file_size": sec.max_file_size,
            "confirmation_required": sec.require_confirmation.model_dump(),
            "rate_limiting": self.rate_limiting.enabled,
            "audit_logging": self.audit.enabled,
            "permission_checking": self.permissions.enabled,
            "permission_strict": self.permissions.strict,
        }


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _config_file_path() -> tuple[Path, bool]:
    """Return (path, explicit).  Only an explicit path must exist."""
    if env_path := os.environ.get("JIRAGATE_CONFIG"):
        return Path(env_path), True
    return _default_config_dir() / CONFIG_FILENAME, False


def load_config(path: Path | str | None = None) -> GatewayConfig:
    """
    Load GatewayConfig from an optional TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (JIRA_*, JIRAGATE_*)
      2. Config file (explicit *path*, $JIRAGATE_CONFIG, or the platform config dir)
      3. Built-in defaults

    A missing file is only an error when it was asked for explicitly.
    """
    import tomllib

    if path is not None:
        cfg_path, explicit = Path(path), True
    else:
        cfg_path, explicit = _config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif explicit:
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    _apply_env_overrides(data, os.environ)

    try:
        config = GatewayConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    if cfg_path.exists():
        config._config_path = cfg_path
    return config


# (environment variable, config path)
_ENV_OVERRIDES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("JIRA_HOST", ("jira", "host")),
    ("JIRA_EMAIL", ("jira", "email")),
    ("JIRA_API_TOKEN", ("jira", "api_token")),
    ("JIRA_AUTH_TYPE", ("jira", "auth_type")),
    ("JIRA_ENABLE_DESTRUCTIVE", ("security", "enable_destructive_operations")),
    ("JIRA_ENABLE_BULK", ("security", "enable_bulk_operations")),
    ("JIRA_ENABLE_FILE_OPS", ("security", "enable_file_operations")),
    ("JIRA_ENABLE_USER_ENUM", ("security", "enable_user_enumeration")),
    ("JIRA_MAX_BULK_SIZE", ("security", "max_bulk_size")),
    ("JIRA_MAX_FILE_SIZE", ("security", "max_file_size")),
    ("JIRA_ALLOWED_EXTENSIONS", ("security", "allowed_file_extensions")),
    ("JIRA_ALLOWED_DIRS", ("security", "allowed_directories")),
    ("JIRA_CONFIRM_DELETE", ("security", "require_confirmation", "delete")),
    ("JIRA_CONFIRM_BULK", ("security", "require_confirmation", "bulk")),
    ("JIRA_CONFIRM_SPRINT", ("security", "require_confirmation", "sprint")),
    ("JIRA_CONFIRM_TRANSITION", ("security", "require_confirmation", "transition")),
    ("JIRA_RATE_LIMITING", ("rate_limiting", "enabled")),
    ("JIRA_RATE_STANDARD", ("rate_limiting", "standard_ops")),
    ("JIRA_RATE_BULK", ("rate_limiting", "bulk_ops")),
    ("JIRA_RATE_SEARCH", ("rate_limiting", "search_ops")),
    ("JIRA_RATE_FILE", ("rate_limiting", "file_ops")),
    ("JIRA_AUDIT_LOGGING", ("audit", "enabled")),
    ("JIRA_AUDIT_LEVEL", ("audit", "level")),
    ("JIRA_AUDIT_RETENTION", ("audit", "retention_days")),
    ("JIRA_PERMISSION_CHECK", ("permissions", "enabled")),
    ("JIRA_PERMISSION_STRICT", ("permissions", "strict")),
    ("JIRA_PERMISSION_CACHE", ("permissions", "cache_timeout")),
    ("JIRAGATE_LOG_LEVEL", ("logging", "level")),
    ("JIRAGATE_LOG_FORMAT", ("logging", "format")),
)


def _apply_env_overrides(data: dict[str, Any], environ: Any) -> None:
    """Overlay non-empty environment variables onto parsed TOML.

    Values stay strings; pydantic coerces and bounds-checks them.
    """
    for name, path in _ENV_OVERRIDES:
        value = environ.get(name, "")
        if not value:
            continue
        section = data
        for key in path[:-1]:
            section = section.setdefault(key, {})
        section[path[-1]] = value
