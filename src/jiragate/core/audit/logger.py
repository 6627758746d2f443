"""
In-memory audit journal for governed operations.

Every governed tool call appends at least one :class:`AuditEntry`.  An
entry whose ``success`` is None records an operation that has started but
not yet settled; it counts as neither a success nor a failure.
Entries carry a risk level, either supplied by the caller or derived
from the operation and resource names by
:func:`jiragate.core.risk.classify_operation`.

The journal is bounded.  Cleanup runs when the entry count exceeds the
cap, when the estimated memory footprint exceeds the budget, or when
the cleanup interval has elapsed.  Cleanup order:

  1. drop entries older than the retention horizon
  2. keep only the newest ``max_entries``
  3. while still over the memory budget, drop the oldest entries in
     batches, never going below 100 retained entries

Entries are also emitted to the structlog stream, routed by risk:
critical → error, high → warning, medium → info, low → debug.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from jiragate.core.housekeeping import PeriodicTask
from jiragate.core.risk import RiskLevel, classify_operation
from jiragate.core.security.redactor import redact

logger = structlog.get_logger("jiragate.audit")

SECURITY_RESOURCE = "security"

# Floor for memory-pressure eviction
_MIN_RETAINED_ENTRIES = 100
_MEMORY_SAMPLE_SIZE = 10
_MEMORY_OVERHEAD_FACTOR = 2

_EMIT_METHOD: dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: "error",
    RiskLevel.HIGH: "warning",
    RiskLevel.MEDIUM: "info",
    RiskLevel.LOW: "debug",
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class AuditEntry:
    """One immutable journal record."""

    timestamp: datetime
    operation: str
    resource: str
    risk_level: RiskLevel
    success: bool | None = True
    resource_id: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None
    metadata: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        d["risk_level"] = self.risk_level.value
        return d


@dataclass(frozen=True)
class AuditStats:
    total: int
    by_risk_level: dict[str, int]
    success: int
    failure: int
    pending: int
    recent_activity: int  # last 24 hours

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """Bounded, queryable audit journal.

    Args:
        enabled: When False, nothing is recorded or emitted.
        console_level: Minimum risk level emitted to the log stream.
            Every entry is journaled regardless.
        max_entries: Entry-count cap.
        retention_days: Entries older than this are dropped on cleanup.
        cleanup_interval_s: Interval for background and time-triggered cleanup.
        max_memory_mb: Estimated memory budget for the journal.
        batch_cleanup_size: Entries dropped per step under memory pressure.
        now: Clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        console_level: RiskLevel = RiskLevel.LOW,
        max_entries: int = 10_000,
        retention_days: int = 90,
        cleanup_interval_s: float = 300.0,
        max_memory_mb: float = 50.0,
        batch_cleanup_size: int = 1000,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.enabled = enabled
        self.console_level = console_level
        self.max_entries = max_entries
        self.retention_days = retention_days
        self.cleanup_interval_s = cleanup_interval_s
        self.max_memory_mb = max_memory_mb
        self.batch_cleanup_size = batch_cleanup_size
        self._now = now
        self._entries: list[AuditEntry] = []
        self._last_cleanup = now()
        self._cleanup_in_progress = False
        self._cleanup_task = PeriodicTask("audit_cleanup", cleanup_interval_s, self.cleanup)

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log(
        self,
        operation: str,
        resource: str,
        *,
        risk_level: RiskLevel,
        success: bool | None = True,
        resource_id: str | None = None,
        details: Mapping[str, Any] | None = None,
        error: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditEntry | None:
        """Append a fully-specified entry.  Returns None when auditing is disabled."""
        if not self.enabled:
            return None
        entry = AuditEntry(
            timestamp=self._now(),
            operation=operation,
            resource=resource,
            risk_level=risk_level,
            success=success,
            resource_id=resource_id,
            details=dict(details or {}),
            error=error,
            metadata=dict(metadata) if metadata is not None else None,
        )
        self._entries.append(entry)

        if self._should_cleanup():
            self.cleanup()

        if entry.risk_level.at_least(self.console_level):
            self._emit(entry)
        return entry

    def log_operation(
        self,
        operation: str,
        resource: str,
        details: Mapping[str, Any] | None = None,
        *,
        resource_id: str | None = None,
        risk_level: RiskLevel | None = None,
        success: bool | None = True,
        error: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditEntry | None:
        """Record an operation, deriving the risk level when not supplied."""
        return self.log(
            operation,
            resource,
            risk_level=risk_level or classify_operation(operation, resource),
            success=success,
            resource_id=resource_id,
            details=details,
            error=error,
            metadata=metadata,
        )

    def log_success(
        self,
        operation: str,
        resource: str,
        details: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> AuditEntry | None:
        return self.log_operation(operation, resource, details, success=True, **kwargs)

    def log_failure(
        self,
        operation: str,
        resource: str,
        error: str,
        details: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> AuditEntry | None:
        """Record a failed operation.  Failures are always high risk."""
        return self.log_operation(
            operation,
            resource,
            details,
            success=False,
            error=error,
            risk_level=RiskLevel.HIGH,
            **kwargs,
        )

    def log_security_event(
        self,
        operation: str,
        details: Mapping[str, Any] | None = None,
        severity: RiskLevel = RiskLevel.HIGH,
    ) -> AuditEntry | None:
        return self.log_operation(
            operation, SECURITY_RESOURCE, details, success=False, risk_level=severity
        )

    # Convenience helpers for recurring event shapes

    def log_file_operation(
        self,
        operation: str,
        file_path: str,
        *,
        success: bool = True,
        error: str | None = None,
        file_size: int | None = None,
    ) -> AuditEntry | None:
        return self.log_operation(
            operation,
            "file",
            {"file_path": file_path, "file_size": file_size},
            resource_id=file_path,
            success=success,
            error=error,
        )

    def log_jql_search(
        self,
        jql: str,
        *,
        result_count: int | None = None,
        success: bool = True,
        error: str | None = None,
    ) -> AuditEntry | None:
        return self.log_operation(
            "jql_search",
            "search",
            {"jql": jql, "result_count": result_count},
            success=success,
            error=error,
        )

    def log_bulk_operation(
        self,
        operation: str,
        resource: str,
        item_count: int,
        *,
        success_count: int | None = None,
        failure_count: int | None = None,
        success: bool = True,
        error: str | None = None,
    ) -> AuditEntry | None:
        return self.log_operation(
            operation,
            resource,
            {
                "item_count": item_count,
                "success_count": success_count,
                "failure_count": failure_count,
            },
            risk_level=RiskLevel.HIGH,
            success=success,
            error=error,
        )

    def log_destructive_operation(
        self,
        operation: str,
        resource: str,
        resource_id: str,
        *,
        confirmed: bool,
        success: bool = True,
        error: str | None = None,
    ) -> AuditEntry | None:
        return self.log_operation(
            operation,
            resource,
            {"confirmed": confirmed},
            resource_id=resource_id,
            risk_level=RiskLevel.CRITICAL,
            success=success,
            error=error,
        )

    def log_security_violation(
        self, violation: str, details: Mapping[str, Any] | None = None
    ) -> AuditEntry | None:
        return self.log_security_event(
            f"security_violation_{violation.lower()}", details, severity=RiskLevel.CRITICAL
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def estimated_memory_mb(self) -> float:
        """Average serialized size of the newest entries × count × overhead, in MiB."""
        if not self._entries:
            return 0.0
        sample = self._entries[-_MEMORY_SAMPLE_SIZE:]
        avg = sum(len(json.dumps(e.to_dict(), default=str)) for e in sample) / len(sample)
        return len(self._entries) * avg * _MEMORY_OVERHEAD_FACTOR / (1024 * 1024)

    def _should_cleanup(self) -> bool:
        if len(self._entries) > self.max_entries:
            return True
        if (self._now() - self._last_cleanup).total_seconds() > self.cleanup_interval_s:
            return True
        return self.estimated_memory_mb() > self.max_memory_mb

    def cleanup(self) -> int:
        """Apply retention, count and memory bounds.  Returns entries removed.

        A call made while another cleanup is running is a no-op.
        """
        if self._cleanup_in_progress:
            return 0
        self._cleanup_in_progress = True
        try:
            initial = len(self._entries)
            cutoff = self._now() - timedelta(days=self.retention_days)
            entries = [e for e in self._entries if e.timestamp > cutoff]

            if len(entries) > self.max_entries:
                entries = entries[-self.max_entries :]
            self._entries = entries

            while (
                self.estimated_memory_mb() > self.max_memory_mb
                and len(self._entries) > _MIN_RETAINED_ENTRIES
            ):
                remove = min(self.batch_cleanup_size, len(self._entries) - _MIN_RETAINED_ENTRIES)
                del self._entries[:remove]

            removed = initial - len(self._entries)
            if removed:
                logger.info("audit_cleanup", removed=removed, remaining=len(self._entries))
            self._last_cleanup = self._now()
            return removed
        finally:
            self._cleanup_in_progress = False

    def start(self) -> None:
        self._cleanup_task.start()

    def clear(self) -> None:
        self._entries = []
        self._last_cleanup = self._now()

    def close(self) -> None:
        self._cleanup_task.cancel()
        self._entries = []
        self._cleanup_in_progress = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_logs(
        self,
        *,
        operation: str | None = None,
        resource: str | None = None,
        risk_level: RiskLevel | None = None,
        success: bool | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Filtered entries, newest first."""
        result = [
            e
            for e in self._entries
            if (operation is None or operation in e.operation)
            and (resource is None or resource in e.resource)
            and (risk_level is None or e.risk_level == risk_level)
            and (success is None or e.success == success)
            and (since is None or e.timestamp > since)
        ]
        result.sort(key=lambda e: e.timestamp, reverse=True)
        if limit:
            result = result[:limit]
        return result

    def get_security_events(self, limit: int = 100) -> list[AuditEntry]:
        return self.get_logs(resource=SECURITY_RESOURCE, limit=limit)

    def get_failed_operations(self, limit: int = 100) -> list[AuditEntry]:
        return self.get_logs(success=False, limit=limit)

    def get_high_risk_operations(self, limit: int = 100) -> list[AuditEntry]:
        result = [e for e in self._entries if e.risk_level.at_least(RiskLevel.HIGH)]
        result.sort(key=lambda e: e.timestamp, reverse=True)
        return result[:limit]

    def get_stats(self) -> AuditStats:
        by_risk = {level.value: 0 for level in RiskLevel}
        ok = failed = 0
        recent_cutoff = self._now() - timedelta(hours=24)
        recent = 0
        for e in self._entries:
            by_risk[e.risk_level.value] += 1
            if e.success is True:
                ok += 1
            elif e.success is False:
                failed += 1
            if e.timestamp > recent_cutoff:
                recent += 1
        return AuditStats(
            total=len(self._entries),
            by_risk_level=by_risk,
            success=ok,
            failure=failed,
            pending=len(self._entries) - ok - failed,
            recent_activity=recent,
        )

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _emit(self, entry: AuditEntry) -> None:
        method = getattr(logger, _EMIT_METHOD[entry.risk_level])
        method(
            "audit_entry",
            operation=entry.operation,
            resource=entry.resource,
            resource_id=entry.resource_id,
            risk=entry.risk_level.value,
            success=entry.success,
            error=redact(entry.error) if entry.error else None,
            details=redact(json.dumps(dict(entry.details), default=str)),
        )
