"""
ToolDispatcher: the governance pipeline every MCP tool call passes through.

Evaluation order:
  1. Tool lookup
  2. Operation policy (feature flags, bulk size cap)
  3. Rate-limit admission on the tool's operation class
  4. Pre-operation audit entry (phase "started", success pending)
  5. Argument model validation
  6. Advisory permission check
  7. Tool handler (input security checks, then the Jira call)
  8. Success audit entry (phase "completed")

Any failure in steps 2-7 is audited and returned as a failure envelope.
Nothing raised by a tool escapes ``dispatch`` except cancellation.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from jiragate.core.audit.logger import AuditLogger
from jiragate.core.exceptions import (
    FieldValidationError,
    PermissionDeniedError,
    RateLimitExceededError,
    RemoteServiceError,
    SecurityError,
)
from jiragate.core.gate.rate_limiter import (
    ClockFn,
    OperationClass,
    RateLimiterPool,
    SleepFn,
)
from jiragate.core.risk import RiskLevel
from jiragate.core.security.permissions import PermissionValidator
from jiragate.core.security.redactor import redact
from jiragate.tools.registry import ToolContext, ToolRegistry, ToolSpec, get_default_registry

if TYPE_CHECKING:
    from jiragate.client.jira import JiraClient
    from jiragate.core.config import GatewayConfig

logger = structlog.get_logger()


class ErrorType(StrEnum):
    """Machine-readable failure categories in the response envelope."""

    SECURITY = "security"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    PERMISSION = "permission"
    REMOTE = "remote"
    INTERNAL = "internal"
    UNKNOWN_TOOL = "unknown_tool"


@dataclass(frozen=True)
class ToolResponse:
    """Normalized result of one tool call."""

    success: bool
    data: Any = None
    message: str | None = None
    error: str | None = None
    error_type: ErrorType | None = None
    code: str | None = None
    field: str | None = None
    retry_after_seconds: int | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> ToolResponse:
        return cls(success=True, data=data, message=message)

    @classmethod
    def failure(cls, error: str, error_type: ErrorType, **extra: Any) -> ToolResponse:
        return cls(success=False, error=error, error_type=error_type, **extra)

    @property
    def is_security_error(self) -> bool:
        return self.error_type == ErrorType.SECURITY

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            out: dict[str, Any] = {"success": True, "data": self.data}
            if self.message:
                out["message"] = self.message
            return out
        out = {"success": False, "error": self.error, "error_type": str(self.error_type)}
        for key in ("code", "field", "retry_after_seconds", "status_code"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out

    def to_text(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


def _validation_error(exc: ValidationError) -> FieldValidationError:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
    return FieldValidationError(f"Invalid argument '{loc}': {err['msg']}", loc)


def _failure_response(exc: Exception, message: str) -> ToolResponse:
    if isinstance(exc, SecurityError):
        return ToolResponse.failure(
            f"Security violation: {message}", ErrorType.SECURITY, code=exc.code
        )
    if isinstance(exc, FieldValidationError):
        return ToolResponse.failure(
            f"Field validation failed: {message}", ErrorType.VALIDATION, field=exc.field
        )
    if isinstance(exc, RateLimitExceededError):
        return ToolResponse.failure(
            message, ErrorType.RATE_LIMIT, retry_after_seconds=exc.wait_seconds
        )
    if isinstance(exc, PermissionDeniedError):
        return ToolResponse.failure(message, ErrorType.PERMISSION, code=exc.permission)
    if isinstance(exc, RemoteServiceError):
        return ToolResponse.failure(message, ErrorType.REMOTE, status_code=exc.status_code)
    return ToolResponse.failure(f"Internal error: {message}", ErrorType.INTERNAL)


class ToolDispatcher:
    """Runs registered tools through the governance pipeline."""

    def __init__(
        self,
        registry: ToolRegistry,
        config: GatewayConfig,
        client: JiraClient,
        *,
        audit: AuditLogger,
        limiters: RateLimiterPool,
        permissions: PermissionValidator | None = None,
        clock: ClockFn = time.monotonic,
    ) -> None:
        self._registry = registry
        self._config = config
        self._audit = audit
        self._limiters = limiters
        self._permissions = permissions
        self._clock = clock
        self._context = ToolContext(client=client, config=config, audit=audit, limiters=limiters)

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def limiters(self) -> RateLimiterPool:
        return self._limiters

    async def dispatch(self, name: str, arguments: Mapping[str, Any] | None) -> ToolResponse:
        arguments = dict(arguments or {})
        tool = self._registry.get(name)
        if tool is None:
            logger.warning("tool_unknown", tool=name)
            return ToolResponse.failure(f"Unknown tool: {name}", ErrorType.UNKNOWN_TOOL)

        resource_id = tool.resource_id(arguments)
        project_key = tool.project_key(arguments)
        details = {
            k: v
            for k, v in (("resource_id", resource_id), ("project_key", project_key))
            if v is not None
        }
        started = self._clock()

        try:
            self._config.validate_operation(name, item_count=tool.item_count(arguments))
            if self._config.rate_limiting.enabled:
                await self._limiters.get(tool.operation_class).check_and_wait(name)

            self._audit.log_operation(
                name,
                tool.resource,
                details,
                resource_id=resource_id,
                success=None,
                metadata={"phase": "started"},
            )

            try:
                args = tool.args_model.model_validate(arguments)
            except ValidationError as exc:
                raise _validation_error(exc) from exc

            if tool.permission_operation and self._permissions is not None:
                await self._check_permissions(tool, project_key, resource_id)

            result = await tool.handler(self._context, args)
        except Exception as exc:  # noqa: BLE001
            return self._fail(tool, exc, details, resource_id, started)

        duration_ms = round((self._clock() - started) * 1000, 1)
        self._audit.log_success(
            name,
            tool.resource,
            {**details, **(result.audit_details or {})},
            resource_id=resource_id,
            metadata={"phase": "completed", "duration_ms": duration_ms},
        )
        logger.info("tool_dispatched", tool=name, success=True, duration_ms=duration_ms)
        return ToolResponse.ok(result.data, result.message)

    async def _check_permissions(
        self, tool: ToolSpec, project_key: str | None, resource_id: str | None
    ) -> None:
        assert self._permissions is not None and tool.permission_operation is not None
        try:
            await self._permissions.check_operation_permissions(
                tool.permission_operation, project_key=project_key, issue_key=resource_id
            )
        except PermissionDeniedError as exc:
            if self._config.permissions.strict:
                raise
            # Advisory mode: audit and continue.
            self._audit.log_operation(
                "permission_advisory",
                tool.resource,
                {"operation": tool.name, "missing": exc.permission, "project_key": project_key},
                risk_level=RiskLevel.MEDIUM,
            )
            logger.warning(
                "permission_missing_advisory",
                tool=tool.name,
                permission=exc.permission,
                project_key=project_key,
            )

    def _fail(
        self,
        tool: ToolSpec,
        exc: Exception,
        details: dict[str, Any],
        resource_id: str | None,
        started: float,
    ) -> ToolResponse:
        message = redact(str(exc)) or type(exc).__name__
        response = _failure_response(exc, message)
        duration_ms = round((self._clock() - started) * 1000, 1)

        self._audit.log_failure(
            tool.name,
            tool.resource,
            message,
            {**details, "error_type": str(response.error_type)},
            resource_id=resource_id,
            metadata={"phase": "failed", "duration_ms": duration_ms},
        )
        if isinstance(exc, SecurityError):
            self._audit.log_security_violation(
                exc.code, {"tool": tool.name, "message": message, **details}
            )

        if response.error_type == ErrorType.INTERNAL:
            logger.error(
                "tool_failed", tool=tool.name, error_type="internal", error=message, exc_info=exc
            )
        else:
            logger.warning(
                "tool_failed",
                tool=tool.name,
                error_type=str(response.error_type),
                code=response.code,
                error=message,
            )
        return response

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start background cleanup for every owned component."""
        self._audit.start()
        self._limiters.start()
        if self._permissions is not None:
            self._permissions.start()

    def close(self) -> None:
        self._audit.close()
        self._limiters.close()
        if self._permissions is not None:
            self._permissions.close()


def build_dispatcher(
    config: GatewayConfig,
    client: JiraClient,
    *,
    registry: ToolRegistry | None = None,
    clock: ClockFn = time.monotonic,
    sleep: SleepFn | None = None,
) -> ToolDispatcher:
    """Wire the production component set from *config*."""
    audit_cfg = config.audit
    audit = AuditLogger(
        enabled=audit_cfg.enabled,
        console_level=audit_cfg.console_level,
        max_entries=audit_cfg.max_entries,
        retention_days=audit_cfg.retention_days,
        cleanup_interval_s=audit_cfg.cleanup_interval_s,
        max_memory_mb=audit_cfg.max_memory_mb,
        batch_cleanup_size=audit_cfg.batch_cleanup_size,
    )

    rl = config.rate_limiting
    pool_kwargs: dict[str, Any] = {"clock": clock}
    if sleep is not None:
        pool_kwargs["sleep"] = sleep
    limiters = RateLimiterPool(
        {
            OperationClass.STANDARD: rl.standard_ops,
            OperationClass.SEARCH: rl.search_ops,
            OperationClass.FILE: rl.file_ops,
            OperationClass.BULK: rl.bulk_ops,
        },
        **pool_kwargs,
    )

    permissions = None
    if config.permissions.enabled:
        permissions = PermissionValidator(
            client,
            audit,
            cache_timeout_s=config.permissions.cache_timeout,
            max_cache_size=config.permissions.max_cache_size,
            clock=clock,
        )

    return ToolDispatcher(
        registry or get_default_registry(),
        config,
        client,
        audit=audit,
        limiters=limiters,
        permissions=permissions,
        clock=clock,
    )
