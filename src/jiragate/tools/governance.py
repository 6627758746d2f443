"""Governance tools: read-only views of the in-memory audit journal."""

from __future__ import annotations

from pydantic import Field

from jiragate.tools.registry import ToolArgs, ToolContext, ToolResult, ToolSpec


class AuditSummaryArgs(ToolArgs):
    limit: int = Field(20, ge=1, le=100, description="Entries per list")
    operation: str | None = Field(None, description="Filter recent entries by operation")


async def get_audit_summary(ctx: ToolContext, args: AuditSummaryArgs) -> ToolResult:
    audit = ctx.audit
    recent = audit.get_logs(operation=args.operation, limit=args.limit)
    return ToolResult(
        {
            "stats": audit.get_stats().to_dict(),
            "recent": [e.to_dict() for e in recent],
            "highRisk": [e.to_dict() for e in audit.get_high_risk_operations(args.limit)],
            "securityEvents": [e.to_dict() for e in audit.get_security_events(args.limit)],
            "failures": [e.to_dict() for e in audit.get_failed_operations(args.limit)],
            "security": ctx.config.security_summary(),
        }
    )


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        "get_audit_summary",
        "Summarize recent gateway activity: audit statistics, high-risk operations, "
        "security events and failures",
        AuditSummaryArgs,
        get_audit_summary,
        resource="audit",
    ),
)
