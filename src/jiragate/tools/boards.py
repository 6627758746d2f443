"""Agile board tools."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from jiragate.core.security.validator import sanitize_jql, sanitize_search_query
from jiragate.tools.registry import ToolArgs, ToolContext, ToolResult, ToolSpec


class GetAllBoardsArgs(ToolArgs):
    project_key_or_id: str | None = Field(None, description="Project key or ID filter")
    type: Literal["scrum", "kanban", "simple"] | None = Field(None, description="Board type")
    name: str | None = Field(None, description="Board name filter")
    max_results: int = Field(50, ge=1, le=100)
    start_at: int = Field(0, ge=0)


async def get_all_boards(ctx: ToolContext, args: GetAllBoardsArgs) -> ToolResult:
    name = sanitize_search_query(args.name) if args.name else None
    page = await ctx.client.get_all_boards(
        project_key=args.project_key_or_id,
        board_type=args.type,
        name=name,
        max_results=args.max_results,
        start_at=args.start_at,
    )
    return ToolResult(
        {
            "boards": page.get("values", []),
            "total": page.get("total"),
            "isLast": page.get("isLast"),
        }
    )


class BoardArgs(ToolArgs):
    board_id: int = Field(description="Board ID")


async def get_board(ctx: ToolContext, args: BoardArgs) -> ToolResult:
    return ToolResult(await ctx.client.get_board(args.board_id))


async def get_board_configuration(ctx: ToolContext, args: BoardArgs) -> ToolResult:
    return ToolResult(await ctx.client.get_board_configuration(args.board_id))


class BoardIssuesArgs(ToolArgs):
    board_id: int = Field(description="Board ID")
    jql: str | None = Field(None, description="Additional JQL filter")
    max_results: int = Field(50, ge=1, le=100)
    start_at: int = Field(0, ge=0)


async def get_board_issues(ctx: ToolContext, args: BoardIssuesArgs) -> ToolResult:
    jql = sanitize_jql(args.jql) if args.jql else None
    page = await ctx.client.get_board_issues(
        args.board_id, jql=jql, max_results=args.max_results, start_at=args.start_at
    )
    return ToolResult({"issues": page.get("issues", []), "total": page.get("total")})


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        "get_all_boards",
        "Get all Jira boards, optionally filtered by project, type or name",
        GetAllBoardsArgs,
        get_all_boards,
        resource="board",
        project_field="projectKeyOrId",
    ),
    ToolSpec(
        "get_board",
        "Get a specific Jira board",
        BoardArgs,
        get_board,
        resource="board",
        id_field="boardId",
    ),
    ToolSpec(
        "get_board_configuration",
        "Get board configuration (columns, estimation, ranking)",
        BoardArgs,
        get_board_configuration,
        resource="board",
        id_field="boardId",
    ),
    ToolSpec(
        "get_board_issues",
        "Get issues on a board",
        BoardIssuesArgs,
        get_board_issues,
        resource="board",
        id_field="boardId",
    ),
)
