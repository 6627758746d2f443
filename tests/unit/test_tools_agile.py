"""Unit tests for the board and sprint tool handlers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from jiragate.core.exceptions import SecurityError
from jiragate.core.risk import RiskLevel
from jiragate.tools import boards, sprints
from jiragate.tools.registry import ToolContext


class TestBoards:
    @pytest.mark.asyncio
    async def test_get_all_boards(self, ctx: ToolContext, client: MagicMock):
        client.get_all_boards.return_value = {
            "values": [{"id": 1, "name": "Team board"}],
            "total": 1,
            "isLast": True,
        }
        args = boards.GetAllBoardsArgs.model_validate(
            {"projectKeyOrId": "P", "type": "scrum", "name": " Team "}
        )
        result = await boards.get_all_boards(ctx, args)
        assert result.data["boards"] == [{"id": 1, "name": "Team board"}]
        kwargs = client.get_all_boards.call_args.kwargs
        assert kwargs["project_key"] == "P"
        assert kwargs["board_type"] == "scrum"
        assert kwargs["name"] == "Team"

    def test_board_type_restricted(self):
        with pytest.raises(ValueError):
            boards.GetAllBoardsArgs.model_validate({"type": "waterfall"})

    @pytest.mark.asyncio
    async def test_board_issues_jql_checked(self, ctx: ToolContext, client: MagicMock):
        args = boards.BoardIssuesArgs.model_validate(
            {"boardId": 1, "jql": "status = Done; DELETE FROM issues"}
        )
        with pytest.raises(SecurityError):
            await boards.get_board_issues(ctx, args)
        client.get_board_issues.assert_not_called()


class TestSprints:
    @pytest.mark.asyncio
    async def test_create_sprint(self, ctx: ToolContext, client: MagicMock):
        client.create_sprint.return_value = {"id": 7, "name": "Sprint 7"}
        args = sprints.CreateSprintArgs.model_validate(
            {"boardId": 1, "name": "Sprint 7", "goal": "Ship login", "startDate": "2026-03-02"}
        )
        result = await sprints.create_sprint(ctx, args)
        assert result.message == "Sprint 7 created"
        client.create_sprint.assert_awaited_once_with(
            "Sprint 7", 1, start_date="2026-03-02", end_date=None, goal="Ship login"
        )

    @pytest.mark.asyncio
    async def test_create_sprint_rejects_script_goal(self, ctx: ToolContext, client: MagicMock):
        args = sprints.CreateSprintArgs.model_validate(
            {"boardId": 1, "name": "Sprint 7", "goal": "<script>x</script>"}
        )
        with pytest.raises(SecurityError):
            await sprints.create_sprint(ctx, args)
        client.create_sprint.assert_not_called()

    @pytest.mark.asyncio
    async def test_complete_sprint_needs_phrase(self, ctx: ToolContext, client: MagicMock):
        args = sprints.CompleteSprintArgs.model_validate(
            {"sprintId": 7, "confirmation": "CONFIRM_DELETE"}
        )
        with pytest.raises(SecurityError) as exc_info:
            await sprints.complete_sprint(ctx, args)
        assert "CONFIRM_SPRINT" in str(exc_info.value)
        client.update_sprint.assert_not_called()

    @pytest.mark.asyncio
    async def test_complete_sprint(self, ctx: ToolContext, client: MagicMock):
        client.update_sprint.return_value = {"id": 7, "state": "closed"}
        args = sprints.CompleteSprintArgs.model_validate(
            {"sprintId": 7, "confirmation": "CONFIRM_SPRINT"}
        )
        await sprints.complete_sprint(ctx, args)
        client.update_sprint.assert_awaited_once_with(7, state="closed")
        entry = ctx.audit.get_logs(operation="complete_sprint")[0]
        assert entry.risk_level == RiskLevel.CRITICAL
        assert entry.resource_id == "7"

    @pytest.mark.asyncio
    async def test_move_issues(self, ctx: ToolContext, client: MagicMock):
        args = sprints.MoveIssuesToSprintArgs.model_validate(
            {"sprintId": 7, "issueKeys": ["P-1", "P-2"]}
        )
        result = await sprints.move_issues_to_sprint(ctx, args)
        client.move_issues_to_sprint.assert_awaited_once_with(7, ["P-1", "P-2"])
        assert result.message == "Moved 2 issues to sprint 7"
        entry = ctx.audit.get_logs(operation="move_issues_to_sprint")[0]
        assert entry.details["item_count"] == 2

    @pytest.mark.asyncio
    async def test_board_sprints_state_filter(self, ctx: ToolContext, client: MagicMock):
        client.get_board_sprints.return_value = {"values": [{"id": 7}], "isLast": True}
        args = sprints.BoardSprintsArgs.model_validate({"boardId": 1, "state": "active"})
        result = await sprints.get_board_sprints(ctx, args)
        assert result.data == {"sprints": [{"id": 7}], "isLast": True}
        assert client.get_board_sprints.call_args.kwargs["state"] == "active"
