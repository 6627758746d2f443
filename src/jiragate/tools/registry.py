"""
Tool registry: the MCP tool surface exposed by jiragate.

Each tool has a name, description, a pydantic argument model (whose JSON
Schema is what MCP clients see), the rate-limit class it is admitted on,
the audit resource it is recorded against, and an async handler.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mcp.types import Tool
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from jiragate.core.gate.rate_limiter import OperationClass

if TYPE_CHECKING:
    from jiragate.client.jira import JiraClient
    from jiragate.core.audit.logger import AuditLogger
    from jiragate.core.config import GatewayConfig
    from jiragate.core.gate.rate_limiter import RateLimiterPool


class ToolArgs(BaseModel):
    """Base for tool argument models.  Wire names are camelCase."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


@dataclass(frozen=True)
class ToolContext:
    """What a handler may touch: the Jira client and the governance components."""

    client: JiraClient
    config: GatewayConfig
    audit: AuditLogger
    limiters: RateLimiterPool


@dataclass(frozen=True)
class ToolResult:
    data: Any = None
    message: str | None = None
    audit_details: Mapping[str, Any] | None = None
    """Merged into the details of the completed audit entry."""


ToolHandler = Callable[[ToolContext, Any], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool."""

    name: str
    description: str
    args_model: type[ToolArgs]
    handler: ToolHandler
    operation_class: OperationClass = OperationClass.STANDARD
    resource: str = "issue"
    id_field: str | None = None
    """Raw argument naming the resource, recorded as the audit resource id."""
    project_field: str | None = None
    count_field: str | None = None
    """List argument whose length is checked against the bulk size cap."""
    permission_operation: str | None = None
    """Key into the permission table; None skips the permission check."""

    def input_schema(self) -> dict[str, Any]:
        return self.args_model.model_json_schema(by_alias=True)

    def resource_id(self, arguments: Mapping[str, Any]) -> str | None:
        if self.id_field is None:
            return None
        value = arguments.get(self.id_field)
        return None if value is None else str(value)

    def project_key(self, arguments: Mapping[str, Any]) -> str | None:
        if self.project_field is None:
            return None
        value = arguments.get(self.project_field)
        return value if isinstance(value, str) and value else None

    def item_count(self, arguments: Mapping[str, Any]) -> int | None:
        if self.count_field is None:
            return None
        value = arguments.get(self.count_field)
        return len(value) if isinstance(value, list) else None


class ToolRegistry:
    """Registry of the tools served over MCP."""

    def __init__(self, tools: Iterable[ToolSpec] = ()) -> None:
        self._tools: dict[str, ToolSpec] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolSpec) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def list_all(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def to_mcp_tools(self) -> list[Tool]:
        """Convert all tools to MCP ``Tool`` definitions for ``list_tools``."""
        return [
            Tool(name=t.name, description=t.description, inputSchema=t.input_schema())
            for t in self._tools.values()
        ]


def get_default_registry() -> ToolRegistry:
    """Create a ToolRegistry with every jiragate tool registered."""
    from jiragate.tools import attachments, boards, governance, issues, projects, sprints, users

    registry = ToolRegistry()
    for module in (issues, projects, users, boards, sprints, attachments, governance):
        for tool in module.TOOLS:
            registry.register(tool)
    return registry
