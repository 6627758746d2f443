"""Project tools."""

from __future__ import annotations

from pydantic import Field

from jiragate.core.security.validator import sanitize_search_query
from jiragate.tools.registry import ToolArgs, ToolContext, ToolResult, ToolSpec


class ListProjectsArgs(ToolArgs):
    query: str | None = Field(None, description="Filter by project key or name")
    max_results: int = Field(50, ge=1, le=100)
    start_at: int = Field(0, ge=0)


async def list_projects(ctx: ToolContext, args: ListProjectsArgs) -> ToolResult:
    query = sanitize_search_query(args.query) if args.query else None
    page = await ctx.client.search_projects(
        query=query, max_results=args.max_results, start_at=args.start_at
    )
    return ToolResult(
        {
            "projects": page.get("values", []),
            "total": page.get("total"),
            "isLast": page.get("isLast", True),
        }
    )


class ProjectKeyArgs(ToolArgs):
    project_key: str = Field(description="Project key")


async def get_project(ctx: ToolContext, args: ProjectKeyArgs) -> ToolResult:
    return ToolResult(await ctx.client.get_project(args.project_key))


async def get_project_components(ctx: ToolContext, args: ProjectKeyArgs) -> ToolResult:
    components = await ctx.client.get_project_components(args.project_key)
    return ToolResult(components, f"{len(components)} components")


async def get_project_versions(ctx: ToolContext, args: ProjectKeyArgs) -> ToolResult:
    versions = await ctx.client.get_project_versions(args.project_key)
    return ToolResult(versions, f"{len(versions)} versions")


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        "list_projects",
        "List accessible projects",
        ListProjectsArgs,
        list_projects,
        resource="project",
    ),
    ToolSpec(
        "get_project",
        "Get detailed information about a project",
        ProjectKeyArgs,
        get_project,
        resource="project",
        id_field="projectKey",
        project_field="projectKey",
    ),
    ToolSpec(
        "get_project_components",
        "Get all components for a project",
        ProjectKeyArgs,
        get_project_components,
        resource="project",
        id_field="projectKey",
        project_field="projectKey",
    ),
    ToolSpec(
        "get_project_versions",
        "Get all versions for a project",
        ProjectKeyArgs,
        get_project_versions,
        resource="project",
        id_field="projectKey",
        project_field="projectKey",
    ),
)
