"""
Advisory Jira permission checks for sensitive operations.

Each sensitive operation maps to the Jira permission keys it needs.  The
caller's held permissions are fetched from ``/rest/api/3/mypermissions``
and cached per project scope.

Decisions:
  - operation not in the table  → medium-risk audit, allowed
  - required permission missing → :class:`PermissionDeniedError`
  - optional permission missing → low-risk ``permission_warning`` audit
  - permission API unavailable  → failure audit + warning, allowed

Only the remote fetch is wrapped in a catch.  Errors in the decision
logic itself propagate.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from jiragate.core.audit.logger import AuditLogger
from jiragate.core.exceptions import PermissionDeniedError
from jiragate.core.housekeeping import PeriodicTask
from jiragate.core.risk import RiskLevel

logger = structlog.get_logger()


class PermissionSource(Protocol):
    """The slice of the Jira client the validator needs."""

    async def get_my_permissions(
        self, permissions: Sequence[str], project_key: str | None = None
    ) -> Mapping[str, Any]: ...


@dataclass(frozen=True)
class PermissionCheck:
    permission: str
    required: bool = True


@dataclass(frozen=True)
class OperationPermissions:
    operation: str
    checks: tuple[PermissionCheck, ...]
    description: str

    @property
    def required(self) -> tuple[str, ...]:
        return tuple(c.permission for c in self.checks if c.required)


def _op(operation: str, description: str, *checks: PermissionCheck) -> OperationPermissions:
    return OperationPermissions(operation, checks, description)


OPERATION_PERMISSIONS: dict[str, OperationPermissions] = {
    p.operation: p
    for p in (
        _op("create_issue", "Create new issues", PermissionCheck("CREATE_ISSUES")),
        _op("update_issue", "Update existing issues", PermissionCheck("EDIT_ISSUES")),
        _op(
            "bulk_update_issues",
            "Bulk update multiple issues",
            PermissionCheck("EDIT_ISSUES"),
            PermissionCheck("BULK_CHANGE", required=False),
        ),
        _op("link_issues", "Link issues together", PermissionCheck("LINK_ISSUES")),
        _op(
            "upload_attachment",
            "Upload file attachments",
            PermissionCheck("CREATE_ATTACHMENTS"),
        ),
        _op(
            "delete_attachment",
            "Delete file attachments",
            PermissionCheck("DELETE_OWN_ATTACHMENTS", required=False),
            PermissionCheck("DELETE_ALL_ATTACHMENTS", required=False),
        ),
        _op("create_sprint", "Create new sprints", PermissionCheck("MANAGE_SPRINTS")),
        _op("complete_sprint", "Complete/close sprints", PermissionCheck("MANAGE_SPRINTS")),
        _op(
            "move_issues_to_sprint",
            "Move issues between sprints",
            PermissionCheck("SCHEDULE_ISSUES"),
        ),
        _op(
            "create_project_component",
            "Create project components",
            PermissionCheck("ADMINISTER_PROJECTS"),
        ),
        _op(
            "create_project_version",
            "Create project versions",
            PermissionCheck("ADMINISTER_PROJECTS"),
        ),
        _op("create_board", "Create new boards", PermissionCheck("MANAGE_BOARDS")),
        _op(
            "get_all_users",
            "List all users",
            PermissionCheck("USER_PICKER"),
            PermissionCheck("BROWSE_USERS", required=False),
        ),
    )
}

_ALL = "*"

# Broad permission → permissions it implies.
PERMISSION_HIERARCHY: dict[str, frozenset[str]] = {
    "ADMINISTER": frozenset({_ALL}),
    "ADMINISTER_PROJECTS": frozenset(
        {
            "CREATE_ISSUES",
            "EDIT_ISSUES",
            "DELETE_ISSUES",
            "MANAGE_SPRINTS",
            "SCHEDULE_ISSUES",
            "CREATE_ATTACHMENTS",
            "DELETE_ALL_ATTACHMENTS",
        }
    ),
    "PROJECT_ADMIN": frozenset(
        {
            "CREATE_ISSUES",
            "EDIT_ISSUES",
            "MANAGE_SPRINTS",
            "SCHEDULE_ISSUES",
            "CREATE_ATTACHMENTS",
        }
    ),
}


def has_permission(held: frozenset[str] | set[str], required: str) -> bool:
    """True if *held* contains *required* directly or through the hierarchy."""
    if required in held:
        return True
    for broad, implied in PERMISSION_HIERARCHY.items():
        if broad in held and (_ALL in implied or required in implied):
            return True
    return False


def _queried_keys() -> tuple[str, ...]:
    keys = {c.permission for p in OPERATION_PERMISSIONS.values() for c in p.checks}
    keys.update(PERMISSION_HIERARCHY)
    return tuple(sorted(keys))


@dataclass(frozen=True)
class _CacheEntry:
    permissions: frozenset[str]
    timestamp: float


class PermissionValidator:
    """Cached, fail-open permission checks against the Jira permission API."""

    def __init__(
        self,
        source: PermissionSource,
        audit: AuditLogger,
        *,
        cache_timeout_s: float = 300.0,
        max_cache_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._audit = audit
        self.cache_timeout_s = cache_timeout_s
        self.max_cache_size = max_cache_size
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._cleanup_task = PeriodicTask(
            "permission_cache_cleanup", cache_timeout_s, self.cleanup_expired
        )

    async def check_operation_permissions(
        self,
        operation: str,
        *,
        project_key: str | None = None,
        issue_key: str | None = None,
    ) -> None:
        """Check the caller's permissions for *operation*.

        Raises:
            PermissionDeniedError: A required permission is missing.
        """
        context = {"project_key": project_key, "issue_key": issue_key}
        entry = OPERATION_PERMISSIONS.get(operation)
        if entry is None:
            self._audit.log_operation(
                "permission_check",
                "operation",
                {"operation": operation, "result": "undefined_operation", "context": context},
                risk_level=RiskLevel.MEDIUM,
            )
            return

        held = await self._get_permissions(operation, project_key)
        if held is None:
            return

        missing_required = [
            c.permission
            for c in entry.checks
            if c.required and not has_permission(held, c.permission)
        ]
        missing_optional = [
            c.permission
            for c in entry.checks
            if not c.required and not has_permission(held, c.permission)
        ]

        self._audit.log_operation(
            "permission_check",
            "operation",
            {
                "operation": operation,
                "required_permissions": list(entry.required),
                "held_permissions": sorted(held),
                "missing_required": missing_required,
                "missing_optional": missing_optional,
                "context": context,
            },
        )

        if missing_required:
            raise PermissionDeniedError(
                f"Missing required permissions for {operation}: {', '.join(missing_required)}",
                permission=missing_required[0],
                resource=project_key,
            )

        if missing_optional:
            self._audit.log_operation(
                "permission_warning",
                "operation",
                {"operation": operation, "missing_optional": missing_optional, "context": context},
                risk_level=RiskLevel.LOW,
            )

    async def _get_permissions(
        self, operation: str, project_key: str | None
    ) -> frozenset[str] | None:
        """Held permissions for the scope, or None when the API is unavailable."""
        cache_key = f"permissions_{project_key or 'global'}"
        now = self._clock()
        cached = self._cache.get(cache_key)
        if cached is not None and now - cached.timestamp < self.cache_timeout_s:
            return cached.permissions

        try:
            raw = await self._source.get_my_permissions(_queried_keys(), project_key)
        except Exception as exc:  # noqa: BLE001
            self._audit.log_failure(
                "permission_check",
                operation,
                str(exc),
                {"operation": operation, "project_key": project_key},
            )
            logger.warning(
                "permission_check_unavailable",
                operation=operation,
                project_key=project_key,
                error=str(exc),
            )
            return None

        held = frozenset(
            key
            for key, value in raw.items()
            if isinstance(value, Mapping) and value.get("havePermission")
        )
        if len(self._cache) >= self.max_cache_size:
            self.cleanup_expired()
            self._evict_oldest(len(self._cache) - self.max_cache_size + 1)
        self._cache[cache_key] = _CacheEntry(held, now)
        return held

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cleanup_expired(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._cache.items() if now - e.timestamp > self.cache_timeout_s]
        for key in expired:
            del self._cache[key]
        self._evict_oldest(len(self._cache) - self.max_cache_size)

    def _evict_oldest(self, count: int) -> None:
        if count <= 0:
            return
        oldest = sorted(self._cache.items(), key=lambda kv: kv[1].timestamp)
        for key, _ in oldest[:count]:
            del self._cache[key]

    def clear_cache(self) -> None:
        self._cache.clear()

    def start(self) -> None:
        self._cleanup_task.start()

    def close(self) -> None:
        self._cleanup_task.cancel()
        self._cache.clear()
