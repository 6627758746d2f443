"""User tools.  Searching the user directory is gated by ``enable_user_enumeration``."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from jiragate.core.exceptions import FieldValidationError
from jiragate.core.gate.rate_limiter import OperationClass
from jiragate.core.security.validator import sanitize_search_query
from jiragate.tools.registry import ToolArgs, ToolContext, ToolResult, ToolSpec


def _public_user(user: dict[str, Any]) -> dict[str, Any]:
    """Trim a user record to the fields an assistant needs."""
    return {
        "accountId": user.get("accountId"),
        "displayName": user.get("displayName"),
        "emailAddress": user.get("emailAddress"),
        "active": user.get("active"),
        "accountType": user.get("accountType"),
    }


class NoArgs(ToolArgs):
    pass


async def get_current_user(ctx: ToolContext, args: NoArgs) -> ToolResult:
    return ToolResult(await ctx.client.get_current_user())


class AccountArgs(ToolArgs):
    account_id: str = Field(description="User account ID")


async def get_user(ctx: ToolContext, args: AccountArgs) -> ToolResult:
    return ToolResult(await ctx.client.get_user(args.account_id))


async def get_user_groups(ctx: ToolContext, args: AccountArgs) -> ToolResult:
    groups = await ctx.client.get_user_groups(args.account_id)
    return ToolResult([{"name": g.get("name"), "groupId": g.get("groupId")} for g in groups])


class UserQueryArgs(ToolArgs):
    query: str = Field(min_length=1, description="Search query")
    max_results: int = Field(50, ge=1, le=100)


async def find_users(ctx: ToolContext, args: UserQueryArgs) -> ToolResult:
    query = sanitize_search_query(args.query)
    users = await ctx.client.find_users(query, max_results=args.max_results)
    return ToolResult([_public_user(u) for u in users], f"Found {len(users)} users")


class AssignableUsersArgs(ToolArgs):
    query: str | None = Field(None, description="Search query")
    project: str | None = Field(None, description="Project key")
    issue_key: str | None = Field(None, description="Issue key")
    max_results: int = Field(50, ge=1, le=100)


async def find_assignable_users(ctx: ToolContext, args: AssignableUsersArgs) -> ToolResult:
    if not args.project and not args.issue_key:
        raise FieldValidationError("Either project or issueKey is required", "project")
    query = sanitize_search_query(args.query) if args.query else None
    users = await ctx.client.find_assignable_users(
        project_key=args.project,
        issue_key=args.issue_key,
        query=query,
        max_results=args.max_results,
    )
    return ToolResult([_public_user(u) for u in users], f"Found {len(users)} assignable users")


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        "get_current_user",
        "Get information about the currently authenticated user",
        NoArgs,
        get_current_user,
        resource="user",
    ),
    ToolSpec(
        "get_user",
        "Get detailed information about a user",
        AccountArgs,
        get_user,
        resource="user",
        id_field="accountId",
    ),
    ToolSpec(
        "get_user_groups",
        "Get groups that a user belongs to",
        AccountArgs,
        get_user_groups,
        resource="user",
        id_field="accountId",
    ),
    ToolSpec(
        "find_users",
        "Find users by name or email",
        UserQueryArgs,
        find_users,
        operation_class=OperationClass.SEARCH,
        resource="user",
    ),
    ToolSpec(
        "search_users",
        "Search the user directory",
        UserQueryArgs,
        find_users,
        operation_class=OperationClass.SEARCH,
        resource="user",
    ),
    ToolSpec(
        "find_assignable_users",
        "Find users that can be assigned to issues in a project or on an issue",
        AssignableUsersArgs,
        find_assignable_users,
        operation_class=OperationClass.SEARCH,
        resource="user",
        project_field="project",
    ),
)
