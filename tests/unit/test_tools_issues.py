"""Unit tests for the issue tool handlers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from jiragate.core.config import GatewayConfig
from jiragate.core.exceptions import FieldValidationError, RemoteServiceError, SecurityError
from jiragate.core.risk import RiskLevel
from jiragate.tools import issues
from jiragate.tools.registry import ToolContext


def _args(model, **raw):
    return model.model_validate(raw)


def _with_config(ctx: ToolContext, data: dict) -> ToolContext:
    return ToolContext(
        client=ctx.client,
        config=GatewayConfig.model_validate(data),
        audit=ctx.audit,
        limiters=ctx.limiters,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestGetIssue:
    @pytest.mark.asyncio
    async def test_maps_fields(self, ctx: ToolContext, client: MagicMock):
        client.get_issue.return_value = {
            "key": "P-1",
            "id": "10001",
            "fields": {
                "summary": "Broken",
                "issuetype": {"name": "Bug"},
                "versions": [{"name": "1.0"}],
                "customfield_10010": 5,
                "attachment": [{"id": "9", "filename": "a.png", "content": "https://x"}],
            },
        }
        client.get_comments.return_value = {"comments": [{"id": "c1"}]}

        result = await issues.get_issue(ctx, _args(issues.GetIssueArgs, issueKey="P-1"))
        fields = result.data["fields"]
        assert fields["issueType"] == {"name": "Bug"}
        assert fields["affectedVersions"] == [{"name": "1.0"}]
        assert fields["customfield_10010"] == 5
        assert fields["attachments"][0] == {
            "id": "9",
            "filename": "a.png",
            "size": None,
            "mimeType": None,
            "created": None,
            "author": None,
        }
        assert result.data["comments"] == [{"id": "c1"}]
        assert "worklogs" not in result.data
        client.get_worklogs.assert_not_called()

    @pytest.mark.asyncio
    async def test_optional_sections(self, ctx: ToolContext, client: MagicMock):
        client.get_issue.return_value = {"key": "P-1", "fields": {}, "changelog": {"total": 0}}
        client.get_worklogs.return_value = {"worklogs": [{"id": "w1"}]}
        args = _args(
            issues.GetIssueArgs,
            issueKey="P-1",
            includeComments=False,
            includeWorklog=True,
            includeHistory=True,
        )
        result = await issues.get_issue(ctx, args)
        assert result.data["worklogs"] == [{"id": "w1"}]
        assert result.data["changelog"] == {"total": 0}
        assert "changelog" in client.get_issue.call_args.kwargs["expand"]
        client.get_comments.assert_not_called()


class TestSearchIssues:
    @pytest.mark.asyncio
    async def test_search_reports_query_for_audit(self, ctx: ToolContext, client: MagicMock):
        client.search_issues.return_value = {
            "issues": [{"key": "P-1"}, {"key": "P-2"}],
            "nextPageToken": "t2",
            "isLast": False,
        }
        args = _args(issues.SearchIssuesArgs, jql=" project = P ", maxResults=50)
        result = await issues.search_issues(ctx, args)

        assert result.message == "Found 2 issues"
        assert result.data["nextPageToken"] == "t2"
        assert client.search_issues.call_args.args == ("project = P",)
        assert result.audit_details == {"jql": "project = P", "result_count": 2}
        assert len(ctx.audit) == 0

    @pytest.mark.asyncio
    async def test_dangerous_jql_never_reaches_jira(self, ctx: ToolContext, client: MagicMock):
        args = _args(issues.SearchIssuesArgs, jql="project = P; DROP TABLE issues")
        with pytest.raises(SecurityError):
            await issues.search_issues(ctx, args)
        client.search_issues.assert_not_called()

    def test_max_results_bounds(self):
        with pytest.raises(ValueError):
            _args(issues.SearchIssuesArgs, jql="x", maxResults=101)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestCreateIssue:
    @pytest.mark.asyncio
    async def test_builds_payload(self, ctx: ToolContext, client: MagicMock):
        client.create_issue.return_value = {"key": "P-9", "id": "1", "self": "https://x"}
        args = _args(
            issues.CreateIssueArgs,
            projectKey="P",
            summary="New thing",
            description="Plain text",
            priority="High",
            labels=["a"],
            customFields={"customfield_10020": 3},
        )
        result = await issues.create_issue(ctx, args)

        fields = client.create_issue.call_args.args[0]
        assert fields["project"] == {"key": "P"}
        assert fields["issuetype"] == {"name": "Task"}
        assert fields["description"] == issues.text_to_adf("Plain text")
        assert fields["priority"] == {"name": "High"}
        assert fields["customfield_10020"] == 3
        assert result.message == "Issue P-9 created"

    @pytest.mark.asyncio
    async def test_custom_field_needs_prefix(self, ctx: ToolContext, client: MagicMock):
        args = _args(
            issues.CreateIssueArgs, projectKey="P", summary="x", customFields={"sprint": 1}
        )
        with pytest.raises(FieldValidationError) as exc_info:
            await issues.create_issue(ctx, args)
        assert exc_info.value.field == "sprint"
        client.create_issue.assert_not_called()

    @pytest.mark.asyncio
    async def test_script_in_summary(self, ctx: ToolContext, client: MagicMock):
        args = _args(issues.CreateIssueArgs, projectKey="P", summary="<script>x</script>")
        with pytest.raises(FieldValidationError):
            await issues.create_issue(ctx, args)
        client.create_issue.assert_not_called()


class TestUpdateIssue:
    @pytest.mark.asyncio
    async def test_nothing_to_update(self, ctx: ToolContext, client: MagicMock):
        result = await issues.update_issue(ctx, _args(issues.UpdateIssueArgs, issueKey="P-1"))
        assert result.message == "Nothing to update"
        client.edit_issue.assert_not_called()

    @pytest.mark.asyncio
    async def test_edit_and_transition(self, ctx: ToolContext, client: MagicMock):
        args = _args(
            issues.UpdateIssueArgs, issueKey="P-1", summary="Renamed", transitionId="31"
        )
        result = await issues.update_issue(ctx, args)
        client.edit_issue.assert_awaited_once_with("P-1", {"summary": "Renamed"})
        client.transition_issue.assert_awaited_once_with("P-1", "31")
        assert result.data["updatedFields"] == ["summary"]

    @pytest.mark.asyncio
    async def test_transition_confirmation_when_configured(
        self, ctx: ToolContext, client: MagicMock
    ):
        ctx = _with_config(ctx, {"security": {"require_confirmation": {"transition": True}}})
        args = _args(issues.UpdateIssueArgs, issueKey="P-1", transitionId="31")
        with pytest.raises(SecurityError) as exc_info:
            await issues.update_issue(ctx, args)
        assert exc_info.value.code == "CONFIRMATION_REQUIRED"
        client.transition_issue.assert_not_called()

        args = _args(
            issues.UpdateIssueArgs,
            issueKey="P-1",
            transitionId="31",
            confirmation="CONFIRM_TRANSITION",
        )
        await issues.update_issue(ctx, args)
        client.transition_issue.assert_awaited_once()


class TestBulkUpdateIssues:
    @pytest.mark.asyncio
    async def test_requires_confirmation(self, ctx: ToolContext, client: MagicMock):
        args = _args(issues.BulkUpdateIssuesArgs, issueKeys=["P-1"], priority="Low")
        with pytest.raises(SecurityError) as exc_info:
            await issues.bulk_update_issues(ctx, args)
        assert exc_info.value.code == "CONFIRMATION_REQUIRED"
        client.edit_issue.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_failure(self, ctx: ToolContext, client: MagicMock):
        async def edit(key, fields):
            if key == "P-2":
                raise RemoteServiceError("Jira API error 403: forbidden", 403)

        client.edit_issue.side_effect = edit
        args = _args(
            issues.BulkUpdateIssuesArgs,
            issueKeys=["P-1", "P-2", "P-3"],
            labels=["triaged"],
            confirmation="CONFIRM_BULK",
        )
        result = await issues.bulk_update_issues(ctx, args)

        assert result.data["updated"] == ["P-1", "P-3"]
        assert result.data["failed"] == [
            {"issueKey": "P-2", "error": "Jira API error 403: forbidden"}
        ]
        entry = ctx.audit.get_logs(operation="bulk_update_issues")[0]
        assert entry.success is False
        assert entry.risk_level == RiskLevel.HIGH
        assert entry.details == {"item_count": 3, "success_count": 2, "failure_count": 1}

    @pytest.mark.asyncio
    async def test_item_errors_redacted(self, ctx: ToolContext, client: MagicMock):
        token = "ATATT3xFfGF0abcdefghijklmnopqrstuvwxyz"
        client.edit_issue.side_effect = RemoteServiceError(f"rejected api_token={token}", 401)
        args = _args(
            issues.BulkUpdateIssuesArgs,
            issueKeys=["P-1"],
            labels=["triaged"],
            confirmation="CONFIRM_BULK",
        )
        result = await issues.bulk_update_issues(ctx, args)

        error = result.data["failed"][0]["error"]
        assert token not in error
        assert "[REDACTED]" in error

    def test_empty_key_list_rejected(self):
        with pytest.raises(ValueError):
            _args(issues.BulkUpdateIssuesArgs, issueKeys=[])


class TestLinksAndComments:
    @pytest.mark.asyncio
    async def test_link_with_comment(self, ctx: ToolContext, client: MagicMock):
        args = _args(
            issues.LinkIssuesArgs,
            linkType="Blocks",
            inwardIssue="P-1",
            outwardIssue="P-2",
            comment="see thread",
        )
        await issues.link_issues(ctx, args)
        call = client.link_issues.call_args
        assert call.args == ("Blocks", "P-1", "P-2")
        assert call.kwargs["comment"] == issues.text_to_adf("see thread")

    @pytest.mark.asyncio
    async def test_comment_rejects_script(self, ctx: ToolContext, client: MagicMock):
        args = _args(issues.AddCommentArgs, issueKey="P-1", body="<script>x</script>")
        with pytest.raises(SecurityError):
            await issues.add_comment(ctx, args)
        client.add_comment.assert_not_called()

    @pytest.mark.asyncio
    async def test_transitions_trimmed(self, ctx: ToolContext, client: MagicMock):
        client.get_transitions.return_value = [
            {"id": "31", "name": "Done", "to": {"name": "Done", "id": "3"}, "hasScreen": False}
        ]
        result = await issues.get_issue_transitions(
            ctx, _args(issues.GetIssueTransitionsArgs, issueKey="P-1")
        )
        assert result.data == [{"id": "31", "name": "Done", "to": "Done"}]
