"""Sprint tools.  Completing a sprint is destructive and needs confirmation."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from jiragate.core.gate.rate_limiter import OperationClass
from jiragate.core.security.validator import (
    check_text_content,
    sanitize_jql,
    validate_destructive_operation,
)
from jiragate.tools.registry import ToolArgs, ToolContext, ToolResult, ToolSpec


class SprintArgs(ToolArgs):
    sprint_id: int = Field(description="Sprint ID")


async def get_sprint(ctx: ToolContext, args: SprintArgs) -> ToolResult:
    return ToolResult(await ctx.client.get_sprint(args.sprint_id))


class BoardSprintsArgs(ToolArgs):
    board_id: int = Field(description="Board ID")
    state: Literal["active", "closed", "future"] | None = Field(
        None, description="Sprint state filter"
    )
    max_results: int = Field(50, ge=1, le=100)
    start_at: int = Field(0, ge=0)


async def get_board_sprints(ctx: ToolContext, args: BoardSprintsArgs) -> ToolResult:
    page = await ctx.client.get_board_sprints(
        args.board_id, state=args.state, max_results=args.max_results, start_at=args.start_at
    )
    return ToolResult({"sprints": page.get("values", []), "isLast": page.get("isLast")})


class SprintIssuesArgs(ToolArgs):
    sprint_id: int = Field(description="Sprint ID")
    jql: str | None = Field(None, description="Additional JQL filter")
    max_results: int = Field(50, ge=1, le=100)
    start_at: int = Field(0, ge=0)


async def get_sprint_issues(ctx: ToolContext, args: SprintIssuesArgs) -> ToolResult:
    jql = sanitize_jql(args.jql) if args.jql else None
    page = await ctx.client.get_sprint_issues(
        args.sprint_id, jql=jql, max_results=args.max_results, start_at=args.start_at
    )
    return ToolResult({"issues": page.get("issues", []), "total": page.get("total")})


class CreateSprintArgs(ToolArgs):
    board_id: int = Field(description="Board ID")
    name: str = Field(min_length=1, max_length=255, description="Sprint name")
    goal: str | None = Field(None, description="Sprint goal")
    start_date: str | None = Field(None, description="Start date (ISO 8601)")
    end_date: str | None = Field(None, description="End date (ISO 8601)")


async def create_sprint(ctx: ToolContext, args: CreateSprintArgs) -> ToolResult:
    check_text_content(args.name, "Sprint name")
    if args.goal:
        check_text_content(args.goal, "Sprint goal")
    sprint = await ctx.client.create_sprint(
        args.name,
        args.board_id,
        start_date=args.start_date,
        end_date=args.end_date,
        goal=args.goal,
    )
    return ToolResult(sprint, f"Sprint {sprint.get('id')} created")


class CompleteSprintArgs(ToolArgs):
    sprint_id: int = Field(description="Sprint ID")
    confirmation: str | None = Field(None, description="Confirmation phrase (CONFIRM_SPRINT)")


async def complete_sprint(ctx: ToolContext, args: CompleteSprintArgs) -> ToolResult:
    phrase = ctx.config.confirmation_phrase_for("complete_sprint")
    if phrase is not None:
        validate_destructive_operation(
            "complete_sprint", args.confirmation, confirmation_phrase=phrase
        )
    sprint = await ctx.client.update_sprint(args.sprint_id, state="closed")
    ctx.audit.log_destructive_operation(
        "complete_sprint", "sprint", str(args.sprint_id), confirmed=phrase is not None
    )
    return ToolResult(sprint, f"Sprint {args.sprint_id} completed")


class MoveIssuesToSprintArgs(ToolArgs):
    sprint_id: int = Field(description="Target sprint ID")
    issue_keys: list[str] = Field(min_length=1, description="Issues to move")


async def move_issues_to_sprint(ctx: ToolContext, args: MoveIssuesToSprintArgs) -> ToolResult:
    await ctx.client.move_issues_to_sprint(args.sprint_id, args.issue_keys)
    ctx.audit.log_bulk_operation(
        "move_issues_to_sprint", "sprint", len(args.issue_keys), success_count=len(args.issue_keys)
    )
    return ToolResult(
        {"sprintId": args.sprint_id, "issueKeys": args.issue_keys},
        f"Moved {len(args.issue_keys)} issues to sprint {args.sprint_id}",
    )


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        "get_sprint",
        "Get detailed information about a sprint",
        SprintArgs,
        get_sprint,
        resource="sprint",
        id_field="sprintId",
    ),
    ToolSpec(
        "get_board_sprints",
        "Get all sprints for a board",
        BoardSprintsArgs,
        get_board_sprints,
        resource="sprint",
        id_field="boardId",
    ),
    ToolSpec(
        "get_sprint_issues",
        "Get all issues in a sprint",
        SprintIssuesArgs,
        get_sprint_issues,
        resource="sprint",
        id_field="sprintId",
    ),
    ToolSpec(
        "create_sprint",
        "Create a new sprint on a Scrum board",
        CreateSprintArgs,
        create_sprint,
        resource="sprint",
        id_field="boardId",
        permission_operation="create_sprint",
    ),
    ToolSpec(
        "complete_sprint",
        "Complete (close) a sprint (DESTRUCTIVE - requires confirmation)",
        CompleteSprintArgs,
        complete_sprint,
        resource="sprint",
        id_field="sprintId",
        permission_operation="complete_sprint",
    ),
    ToolSpec(
        "move_issues_to_sprint",
        "Move issues into a sprint",
        MoveIssuesToSprintArgs,
        move_issues_to_sprint,
        operation_class=OperationClass.BULK,
        resource="sprint",
        id_field="sprintId",
        count_field="issueKeys",
        permission_operation="move_issues_to_sprint",
    ),
)
