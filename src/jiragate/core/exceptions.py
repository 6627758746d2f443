"""jiragate exception hierarchy."""

from __future__ import annotations


class JiraGateError(Exception):
    """Base exception for all jiragate errors."""


class ConfigError(JiraGateError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested configuration file does not exist."""


class SecurityError(JiraGateError):
    """Raised when input fails a security check.

    ``code`` is a stable machine-readable identifier such as
    ``DANGEROUS_PATH_PATTERN`` or ``CONFIRMATION_REQUIRED``.
    """

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


class FieldValidationError(JiraGateError):
    """Raised when an issue field fails validation. ``field`` names the offender."""

    def __init__(self, message: str, field: str) -> None:
        super().__init__(message)
        self.field = field


class RateLimitExceededError(JiraGateError):
    """Raised when a rate-limit window is full."""

    def __init__(self, message: str, wait_seconds: int) -> None:
        super().__init__(message)
        self.wait_seconds = wait_seconds


class PermissionDeniedError(JiraGateError):
    """Raised when the caller lacks a required Jira permission."""

    def __init__(self, message: str, permission: str, resource: str | None = None) -> None:
        super().__init__(message)
        self.permission = permission
        self.resource = resource


class RemoteServiceError(JiraGateError):
    """Raised when the Jira API returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
