"""Run coalescing for named build tasks.

Watch mode produces bursts of "please rebuild T" requests. RunCoalescer
guarantees that a task never has two overlapping executions and that a
burst arriving during a run collapses into exactly one follow-up run:

    request('style-build')   # IDLE -> RUNNING, run starts
    request('style-build')   # RUNNING -> RUNNING_WITH_PENDING
    request('style-build')   # stays RUNNING_WITH_PENDING (a flag, not a count)
    ... run completes        # -> IDLE, then one re-run starts

The follow-up run sees the filesystem as it is when it starts, not as it
was when the requests were made.

All methods must be called from the event loop thread.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from assetflow.errors import PipelineError
from assetflow.logging_setup import GREEN

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    """Run state of a single task name."""
    IDLE = "idle"
    RUNNING = "running"
    RUNNING_WITH_PENDING = "running-with-pending"


@dataclass
class TaskCompletion:
    """Notification emitted once per finished run."""

    task_name: str
    elapsed_ms: float
    success: bool
    error: Optional[BaseException] = None


CompletionListener = Callable[[TaskCompletion], None]


def format_elapsed(elapsed_ms: float) -> str:
    """Format a duration for humans.

    Examples:
        format_elapsed(250) -> "250ms"
        format_elapsed(1500) -> "1.50s"
        format_elapsed(90000) -> "1.50m"
    """
    if elapsed_ms < 1000:
        return f"{int(elapsed_ms)}ms"
    seconds = elapsed_ms / 1000
    if seconds > 60:
        return f"{seconds / 60:.2f}m"
    return f"{seconds:.2f}s"


def log_completion(completion: TaskCompletion) -> None:
    """Default completion listener: one terminal log line per run."""
    elapsed = format_elapsed(completion.elapsed_ms)
    if completion.success:
        logger.info(
            "Finished '%s' in %s",
            completion.task_name, elapsed,
            extra={'color': GREEN},
        )
    else:
        logger.error(
            "'%s' failed after %s: %s",
            completion.task_name, elapsed, completion.error,
        )


class RunCoalescer:
    """Deduplicates and coalesces run requests per task name.

    Args:
        runner: Object with an ``async run(task_name)`` method (TaskRunner)
        listeners: Completion listeners; defaults to ``[log_completion]``
        clock: Monotonic clock returning seconds
    """

    def __init__(
        self,
        runner,
        listeners: Optional[List[CompletionListener]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._runner = runner
        self._listeners: List[CompletionListener] = (
            [log_completion] if listeners is None else list(listeners)
        )
        self._clock = clock
        self._states: Dict[str, TaskStatus] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    def add_listener(self, listener: CompletionListener) -> None:
        """Subscribe to the completion channel."""
        self._listeners.append(listener)

    def state(self, task_name: str) -> TaskStatus:
        """Return the current state of a task (IDLE if never requested)."""
        return self._states.get(task_name, TaskStatus.IDLE)

    @property
    def running(self) -> List[str]:
        """Names of tasks with an execution in flight."""
        return sorted(self._inflight)

    def request(self, task_name: str) -> None:
        """Schedule ``task_name`` to run; never blocks, never queues twice."""
        status = self.state(task_name)
        if status is TaskStatus.IDLE:
            self._states[task_name] = TaskStatus.RUNNING
            self._inflight[task_name] = asyncio.get_running_loop().create_task(
                self._run(task_name), name=f"assetflow:{task_name}",
            )
        else:
            self._states[task_name] = TaskStatus.RUNNING_WITH_PENDING

    async def wait_idle(self) -> None:
        """Wait until no task is running, follow-up runs included."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()))

    async def _run(self, task_name: str) -> None:
        start = self._clock()
        try:
            await self._runner.run(task_name)
        except (PipelineError, OSError) as e:
            self._settle(task_name, start, e)
        except asyncio.CancelledError:
            # Shutdown: forget the task without a follow-up run.
            self._states.pop(task_name, None)
            self._inflight.pop(task_name, None)
            raise
        except BaseException as e:
            # Unexpected failures still honour the pending flag, then propagate.
            self._settle(task_name, start, e)
            raise
        else:
            self._settle(task_name, start, None)

    def _settle(self, task_name: str, start: float, error: Optional[BaseException]) -> None:
        elapsed_ms = max(0.0, (self._clock() - start) * 1000)
        pending = self._states.pop(task_name) is TaskStatus.RUNNING_WITH_PENDING
        del self._inflight[task_name]

        self._notify(TaskCompletion(
            task_name=task_name,
            elapsed_ms=elapsed_ms,
            success=error is None,
            error=error,
        ))

        if pending:
            self.request(task_name)

    def _notify(self, completion: TaskCompletion) -> None:
        for listener in self._listeners:
            try:
                listener(completion)
            except Exception:
                logger.exception("Completion listener %r failed", listener)
