"""Routing of classified change events to build tasks.

    WatchSource --batches--> Orchestrator.route
        ASSET      -> RunCoalescer.request('asset-copy')
        STYLESHEET -> RunCoalescer.request('style-build')
        MARKUP     -> RunCoalescer.request('markup-copy')
        SCRIPT, MANIFEST -> DependencyReconciler.on_change(paths)

Each task is requested at most once per batch. Everything here runs on
the event loop thread.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from assetflow.logging_setup import YELLOW
from assetflow.watch import Category, ChangeEvent, Classifier, WatchSource

logger = logging.getLogger(__name__)

DEFAULT_ROUTES: Dict[Category, str] = {
    Category.ASSET: 'asset-copy',
    Category.STYLESHEET: 'style-build',
    Category.MARKUP: 'markup-copy',
}

_RECONCILED = (Category.SCRIPT, Category.MANIFEST)

_DETECTED = {
    Category.ASSET: "Asset change detected",
    Category.STYLESHEET: "Less change detected",
    Category.MARKUP: "HTML change detected",
}


class Orchestrator:
    """Turns change events into task requests.

    Args:
        coalescer: RunCoalescer for direct task requests
        reconciler: DependencyReconciler for script and manifest changes
        base: Directory event paths are relative to
        routes: Category -> task name for directly routed categories
    """

    def __init__(
        self,
        coalescer,
        reconciler,
        base: Union[str, Path],
        routes: Optional[Mapping[Category, str]] = None,
    ):
        self.coalescer = coalescer
        self.reconciler = reconciler
        self.base = Path(base).resolve()
        self.routes = dict(DEFAULT_ROUTES if routes is None else routes)
        self._background: Set[asyncio.Task] = set()

    def request(self, task_name: str) -> None:
        """Request a run of ``task_name``."""
        self.coalescer.request(task_name)

    def add_listener(self, listener) -> None:
        """Subscribe to task completions."""
        self.coalescer.add_listener(listener)

    def route(self, batch: Iterable[ChangeEvent]) -> List[str]:
        """Dispatch one batch of events.

        Returns:
            Task names requested directly, in first-event order
        """
        requested: List[str] = []
        script_paths: Set[str] = set()
        for event in batch:
            if event.category in _RECONCILED:
                script_paths.add(str(self.base / event.path))
                continue
            task_name = self.routes.get(event.category)
            if task_name is None or task_name in requested:
                continue
            logger.info(_DETECTED.get(event.category, "Change detected"), extra={'color': YELLOW})
            requested.append(task_name)
            self.request(task_name)

        if script_paths:
            self.submit_script_changes(script_paths)
        return requested

    def submit_script_changes(self, paths: Iterable[str]) -> None:
        """Hand script/manifest changes to the reconciler in the background."""
        task = asyncio.get_running_loop().create_task(self.reconciler.on_change(set(paths)))
        self._background.add(task)
        task.add_done_callback(self._reap)

    async def start_watch(
        self,
        patterns: Union[Classifier, Mapping],
        window: float = 0.1,
        ignore: Optional[Iterable[str]] = None,
        source: Optional[WatchSource] = None,
    ) -> None:
        """Watch the base directory and route changes until cancelled."""
        if source is None:
            source = WatchSource(self.base, patterns, ignore=ignore)
        source.start()
        try:
            async for batch in source.batches(window):
                self.route(batch)
        finally:
            source.stop()

    async def wait_idle(self) -> None:
        """Wait for pending reconciliations and task runs to finish."""
        while True:
            if self._background:
                # failures are logged by _reap
                await asyncio.gather(*list(self._background), return_exceptions=True)
            await self.coalescer.wait_idle()
            if not self._background:
                return

    def _reap(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Script change handling failed", exc_info=task.exception())
