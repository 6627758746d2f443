"""Unit tests for the project, user and governance tool handlers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from jiragate.core.exceptions import FieldValidationError, SecurityError
from jiragate.tools import governance, projects, users
from jiragate.tools.registry import ToolContext


class TestProjects:
    @pytest.mark.asyncio
    async def test_list_projects(self, ctx: ToolContext, client: MagicMock):
        client.search_projects.return_value = {"values": [{"key": "P"}], "total": 1}
        args = projects.ListProjectsArgs.model_validate({"query": "plat", "maxResults": 10})
        result = await projects.list_projects(ctx, args)
        assert result.data == {"projects": [{"key": "P"}], "total": 1, "isLast": True}
        client.search_projects.assert_awaited_once_with(query="plat", max_results=10, start_at=0)

    @pytest.mark.asyncio
    async def test_list_projects_query_checked(self, ctx: ToolContext, client: MagicMock):
        args = projects.ListProjectsArgs.model_validate({"query": "javascript:alert(1)"})
        with pytest.raises(SecurityError):
            await projects.list_projects(ctx, args)

    @pytest.mark.asyncio
    async def test_components_message(self, ctx: ToolContext, client: MagicMock):
        client.get_project_components.return_value = [{"id": "1"}, {"id": "2"}]
        args = projects.ProjectKeyArgs.model_validate({"projectKey": "P"})
        result = await projects.get_project_components(ctx, args)
        assert result.message == "2 components"


class TestUsers:
    @pytest.mark.asyncio
    async def test_find_users_trims_records(self, ctx: ToolContext, client: MagicMock):
        client.find_users.return_value = [
            {
                "accountId": "abc",
                "displayName": "Alice",
                "active": True,
                "avatarUrls": {"48x48": "https://x"},
                "locale": "en_US",
            }
        ]
        args = users.UserQueryArgs.model_validate({"query": "ali"})
        result = await users.find_users(ctx, args)
        assert result.data == [
            {
                "accountId": "abc",
                "displayName": "Alice",
                "emailAddress": None,
                "active": True,
                "accountType": None,
            }
        ]

    @pytest.mark.asyncio
    async def test_assignable_needs_scope(self, ctx: ToolContext, client: MagicMock):
        args = users.AssignableUsersArgs.model_validate({"query": "ali"})
        with pytest.raises(FieldValidationError) as exc_info:
            await users.find_assignable_users(ctx, args)
        assert exc_info.value.field == "project"
        client.find_assignable_users.assert_not_called()

    @pytest.mark.asyncio
    async def test_assignable_by_issue(self, ctx: ToolContext, client: MagicMock):
        client.find_assignable_users.return_value = []
        args = users.AssignableUsersArgs.model_validate({"issueKey": "P-1"})
        result = await users.find_assignable_users(ctx, args)
        assert result.message == "Found 0 assignable users"
        assert client.find_assignable_users.call_args.kwargs["issue_key"] == "P-1"

    @pytest.mark.asyncio
    async def test_user_groups(self, ctx: ToolContext, client: MagicMock):
        client.get_user_groups.return_value = [
            {"name": "devs", "groupId": "g1", "self": "https://x"}
        ]
        args = users.AccountArgs.model_validate({"accountId": "abc"})
        result = await users.get_user_groups(ctx, args)
        assert result.data == [{"name": "devs", "groupId": "g1"}]


class TestGovernance:
    @pytest.mark.asyncio
    async def test_audit_summary(self, ctx: ToolContext):
        ctx.audit.log_operation("get_issue", "issue")
        ctx.audit.log_failure("delete_attachment", "attachment", "boom")
        ctx.audit.log_security_violation("DANGEROUS_JQL_PATTERN")

        args = governance.AuditSummaryArgs.model_validate({"limit": 5})
        result = await governance.get_audit_summary(ctx, args)
        data = result.data
        assert data["stats"]["total"] == 3
        assert len(data["recent"]) == 3
        assert len(data["highRisk"]) == 2
        assert len(data["securityEvents"]) == 1
        assert len(data["failures"]) == 2
        assert data["security"]["user_enumeration"] is False
        assert isinstance(data["recent"][0]["timestamp"], str)

    @pytest.mark.asyncio
    async def test_operation_filter(self, ctx: ToolContext):
        ctx.audit.log_operation("get_issue", "issue")
        ctx.audit.log_operation("list_projects", "project")
        args = governance.AuditSummaryArgs.model_validate({"operation": "projects"})
        result = await governance.get_audit_summary(ctx, args)
        assert [e["operation"] for e in result.data["recent"]] == ["list_projects"]

    def test_limit_bounds(self):
        with pytest.raises(ValueError):
            governance.AuditSummaryArgs.model_validate({"limit": 0})
