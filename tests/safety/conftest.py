"""Shared fixtures for tests/safety/.  Every test here is marked ``safety``."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from jiragate.core.config import GatewayConfig
from jiragate.core.dispatcher import ToolDispatcher, build_dispatcher
from tests.fakes import FakeClock, RecordingSleep

_SAFETY_DIR = Path(__file__).parent


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if item.path.is_relative_to(_SAFETY_DIR):
            item.add_marker(pytest.mark.safety)


@pytest.fixture()
def dispatcher(client: MagicMock, clock: FakeClock, sleep: RecordingSleep) -> ToolDispatcher:
    """Default-configured pipeline over the mocked client, caller holds ADMINISTER."""
    client.get_my_permissions.return_value = {"ADMINISTER": {"havePermission": True}}
    return build_dispatcher(GatewayConfig(), client, clock=clock, sleep=sleep)


@pytest.fixture()
def remote_calls(client: MagicMock):
    """Names of the client methods called so far, permission lookups excluded."""

    def _names() -> list[str]:
        return [c[0] for c in client.mock_calls if c[0] != "get_my_permissions"]

    return _names
