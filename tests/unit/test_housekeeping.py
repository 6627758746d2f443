"""Unit tests for PeriodicTask."""

from __future__ import annotations

import asyncio

import pytest

from jiragate.core.housekeeping import PeriodicTask


class TestPeriodicTask:
    def test_start_outside_loop(self):
        task = PeriodicTask("t", 0.01, lambda: None)
        assert task.start() is False
        assert not task.running

    @pytest.mark.asyncio
    async def test_runs_until_cancelled(self):
        calls: list[int] = []
        task = PeriodicTask("t", 0.001, lambda: calls.append(1))
        assert task.start()
        assert task.start()  # already running

        for _ in range(100):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.005)
        assert len(calls) >= 2

        task.cancel()
        assert not task.running

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_loop(self):
        calls: list[int] = []

        def flaky() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        task = PeriodicTask("t", 0.001, flaky)
        task.start()
        for _ in range(100):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.005)
        task.cancel()
        assert len(calls) >= 2

    def test_cancel_without_start(self):
        PeriodicTask("t", 1, lambda: None).cancel()
