"""Named build tasks.

A task is an ordered list of steps. A step is either a coroutine function
(awaited on the event loop) or a plain callable (run in a worker thread so
subprocesses and file copies never block the loop).

Example:
    runner = TaskRunner()
    runner.register('style-build', compile_less, copy_markup)
    await runner.run('style-build')
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

Step = Callable[[], Any]


@dataclass
class TaskRunner:
    """Executes a single named build task to completion or failure.

    Stateless between runs: everything a step needs is captured when the
    step is registered.
    """

    tasks: Dict[str, List[Step]] = field(default_factory=dict)
    """Map of task name to its ordered steps."""

    def register(self, name: str, *steps: Step) -> None:
        """Register (or replace) the steps of a task."""
        if not steps:
            raise ValueError(f"Task '{name}' needs at least one step")
        self.tasks[name] = list(steps)

    def has_task(self, name: str) -> bool:
        return name in self.tasks

    @property
    def task_names(self) -> List[str]:
        return sorted(self.tasks)

    async def run(self, name: str) -> None:
        """Run every step of ``name`` in order.

        The first failing step aborts the task; its exception propagates
        unchanged.

        Raises:
            KeyError: If no task with that name is registered
        """
        try:
            steps = self.tasks[name]
        except KeyError:
            available = ', '.join(self.task_names) or '(none)'
            raise KeyError(f"Unknown task '{name}'. Available tasks: {available}")

        for step in steps:
            await run_step(step)


async def run_step(step: Step) -> Any:
    """Await a coroutine step, or run a plain callable in a worker thread."""
    if inspect.iscoroutinefunction(step):
        return await step()
    return await asyncio.to_thread(step)
