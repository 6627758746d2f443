"""Unit tests for the tool registry and tool specs."""

from __future__ import annotations

import pytest
from pydantic import Field

from jiragate.core.gate.rate_limiter import OperationClass
from jiragate.tools.registry import (
    ToolArgs,
    ToolRegistry,
    ToolResult,
    ToolSpec,
    get_default_registry,
)

EXPECTED_TOOLS = {
    "get_issue",
    "search_issues",
    "create_issue",
    "update_issue",
    "bulk_update_issues",
    "link_issues",
    "add_comment",
    "get_issue_comments",
    "get_issue_transitions",
    "list_projects",
    "get_project",
    "get_project_components",
    "get_project_versions",
    "get_current_user",
    "get_user",
    "get_user_groups",
    "find_users",
    "search_users",
    "find_assignable_users",
    "get_all_boards",
    "get_board",
    "get_board_configuration",
    "get_board_issues",
    "get_sprint",
    "get_board_sprints",
    "get_sprint_issues",
    "create_sprint",
    "complete_sprint",
    "move_issues_to_sprint",
    "upload_attachment",
    "download_attachment",
    "list_attachments",
    "get_attachment_meta",
    "delete_attachment",
    "get_audit_summary",
}


class _Args(ToolArgs):
    issue_key: str = Field(description="Issue key")
    issue_keys: list[str] = []


async def _handler(ctx, args) -> ToolResult:
    return ToolResult(args.issue_key)


def _spec(name: str = "demo", **kw) -> ToolSpec:
    return ToolSpec(name, "Demo tool", _Args, _handler, **kw)


class TestToolSpec:
    def test_schema_uses_camel_case(self):
        schema = _spec().input_schema()
        assert set(schema["properties"]) == {"issueKey", "issueKeys"}
        assert schema["required"] == ["issueKey"]
        assert schema["additionalProperties"] is False

    def test_args_accept_wire_names(self):
        args = _Args.model_validate({"issueKey": "P-1"})
        assert args.issue_key == "P-1"

    def test_args_reject_unknown(self):
        with pytest.raises(ValueError):
            _Args.model_validate({"issueKey": "P-1", "bogus": 1})

    def test_raw_argument_accessors(self):
        spec = _spec(id_field="issueKey", project_field="projectKey", count_field="issueKeys")
        raw = {"issueKey": "P-1", "projectKey": "PROJ", "issueKeys": ["a", "b", "c"]}
        assert spec.resource_id(raw) == "P-1"
        assert spec.project_key(raw) == "PROJ"
        assert spec.item_count(raw) == 3

    def test_accessors_tolerate_bad_input(self):
        spec = _spec(id_field="issueKey", project_field="projectKey", count_field="issueKeys")
        raw = {"issueKey": 42, "projectKey": "", "issueKeys": "P-1"}
        assert spec.resource_id(raw) == "42"
        assert spec.project_key(raw) is None
        assert spec.item_count(raw) is None
        assert _spec().resource_id(raw) is None


class TestToolRegistry:
    def test_register_and_lookup(self):
        registry = ToolRegistry([_spec("a"), _spec("b")])
        assert len(registry) == 2
        assert "a" in registry
        assert registry.get("missing") is None
        assert [t.name for t in registry.list_all()] == ["a", "b"]

    def test_duplicate_rejected(self):
        registry = ToolRegistry([_spec("a")])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_spec("a"))

    def test_to_mcp_tools(self):
        tools = ToolRegistry([_spec("a")]).to_mcp_tools()
        assert tools[0].name == "a"
        assert tools[0].inputSchema["properties"]["issueKey"]["type"] == "string"


class TestDefaultRegistry:
    def test_complete_tool_surface(self):
        registry = get_default_registry()
        assert {t.name for t in registry.list_all()} == EXPECTED_TOOLS

    def test_operation_classes(self):
        registry = get_default_registry()
        assert registry.get("search_issues").operation_class == OperationClass.SEARCH
        assert registry.get("bulk_update_issues").operation_class == OperationClass.BULK
        assert registry.get("move_issues_to_sprint").operation_class == OperationClass.BULK
        assert registry.get("upload_attachment").operation_class == OperationClass.FILE
        assert registry.get("download_attachment").operation_class == OperationClass.FILE
        assert registry.get("get_issue").operation_class == OperationClass.STANDARD

    def test_destructive_tools_take_confirmation(self):
        registry = get_default_registry()
        for name in ("delete_attachment", "complete_sprint", "bulk_update_issues"):
            assert "confirmation" in registry.get(name).input_schema()["properties"]

    def test_every_tool_has_description_and_object_schema(self):
        for tool in get_default_registry().to_mcp_tools():
            assert tool.description
            assert tool.inputSchema["type"] == "object"
