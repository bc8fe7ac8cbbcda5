"""Tests for TaskRunner."""

import threading

import pytest

from assetflow.errors import ToolError
from assetflow.tasks import TaskRunner, run_step


class TestRegistration:
    """Tests for registering tasks."""

    def test_register_and_list(self):
        runner = TaskRunner()
        runner.register('b', lambda: None)
        runner.register('a', lambda: None)

        assert runner.task_names == ['a', 'b']
        assert runner.has_task('a')
        assert not runner.has_task('c')

    def test_register_requires_steps(self):
        runner = TaskRunner()
        with pytest.raises(ValueError, match="at least one step"):
            runner.register('empty')

    def test_register_replaces(self):
        calls = []
        runner = TaskRunner()
        runner.register('t', lambda: calls.append('old'))
        runner.register('t', lambda: calls.append('new'))

        assert len(runner.tasks['t']) == 1


class TestRun:
    """Tests for running tasks."""

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self):
        calls = []

        async def first():
            calls.append('first')

        def second():
            calls.append('second')

        runner = TaskRunner()
        runner.register('t', first, second)
        await runner.run('t')

        assert calls == ['first', 'second']

    @pytest.mark.asyncio
    async def test_sync_steps_run_in_worker_thread(self):
        threads = []
        runner = TaskRunner()
        runner.register('t', lambda: threads.append(threading.current_thread()))

        await runner.run('t')

        assert threads[0] is not threading.main_thread()

    @pytest.mark.asyncio
    async def test_failure_stops_remaining_steps(self):
        calls = []

        def failing():
            raise ToolError("compiler crashed")

        runner = TaskRunner()
        runner.register('t', failing, lambda: calls.append('after'))

        with pytest.raises(ToolError, match="compiler crashed"):
            await runner.run('t')
        assert calls == []

    @pytest.mark.asyncio
    async def test_unknown_task(self):
        runner = TaskRunner()
        runner.register('known', lambda: None)

        with pytest.raises(KeyError, match="Available tasks: known"):
            await runner.run('unknown')

    @pytest.mark.asyncio
    async def test_run_step_returns_value(self):
        async def produce():
            return 42

        assert await run_step(produce) == 42
        assert await run_step(lambda: 'sync') == 'sync'
