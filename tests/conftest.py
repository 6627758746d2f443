"""Shared fixtures: fake clocks, a recording sleep, and a mocked Jira client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from jiragate.core.audit.logger import AuditLogger
from jiragate.core.config import GatewayConfig
from jiragate.core.gate.rate_limiter import RateLimiterPool
from jiragate.tools.registry import ToolContext
from tests.fakes import FakeClock, FakeWallClock, RecordingSleep


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def audit(wall_clock: FakeWallClock) -> AuditLogger:
    return AuditLogger(now=wall_clock)


@pytest.fixture()
def config() -> GatewayConfig:
    return GatewayConfig()


@pytest.fixture()
def client() -> MagicMock:
    """Jira client double: every coroutine method is an AsyncMock."""
    mock = MagicMock()
    for name in (
        "get_issue",
        "search_issues",
        "create_issue",
        "edit_issue",
        "get_transitions",
        "transition_issue",
        "add_comment",
        "get_comments",
        "get_worklogs",
        "link_issues",
        "search_projects",
        "get_project",
        "get_project_components",
        "get_project_versions",
        "get_current_user",
        "get_user",
        "get_user_groups",
        "find_users",
        "find_assignable_users",
        "get_my_permissions",
        "get_all_boards",
        "get_board",
        "get_board_configuration",
        "get_board_issues",
        "get_sprint",
        "get_board_sprints",
        "get_sprint_issues",
        "create_sprint",
        "update_sprint",
        "move_issues_to_sprint",
        "add_attachment",
        "get_attachment",
        "download_attachment",
        "delete_attachment",
    ):
        setattr(mock, name, AsyncMock())
    return mock


@pytest.fixture()
def ctx(
    client: MagicMock,
    config: GatewayConfig,
    audit: AuditLogger,
    clock: FakeClock,
    sleep: RecordingSleep,
) -> ToolContext:
    return ToolContext(
        client=client,
        config=config,
        audit=audit,
        limiters=RateLimiterPool(clock=clock, sleep=sleep),
    )
