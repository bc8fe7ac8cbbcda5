"""Filesystem change events backed by a watchdog observer.

The observer runs in its own thread; raw notifications are handed to the
event loop with ``call_soon_threadsafe`` and classified there, so consumers
only ever see ChangeEvents on the loop thread, in arrival order.

Example:
    source = WatchSource('.', {'style': 'app/**/*.less', 'asset': 'app/assets/**'})
    source.start()
    try:
        async for batch in source.batches(window=0.1):
            ...
    finally:
        source.stop()
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, List, Mapping, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from assetflow.errors import PipelineIOError

from .classify import ChangeEvent, Classifier, compile_glob

logger = logging.getLogger(__name__)

DEFAULT_IGNORE = ['**/node_modules/**', '**/.git/**']

_IGNORED_EVENT_TYPES = {'opened', 'closed', 'closed_no_write'}


class PathForwardingHandler(FileSystemEventHandler):
    """Forwards file (not directory) paths of every event to a callback."""

    def __init__(self, callback: Callable[[str], None]):
        super().__init__()
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in _IGNORED_EVENT_TYPES:
            return
        self._callback(os.fsdecode(event.src_path))
        dest = getattr(event, 'dest_path', None)
        if dest:
            self._callback(os.fsdecode(dest))


class WatchSource:
    """Observes a directory tree and yields classified ChangeEvents.

    The event sequence is lazy, infinite and can be consumed only once;
    a stopped source cannot be restarted.

    Args:
        base: Root directory to observe; patterns are relative to it
        patterns: Classifier, or a ``{category: pattern(s)}`` mapping
        ignore: Glob patterns (relative to base) that are never reported
        observer_factory: Creates the watchdog observer
    """

    def __init__(
        self,
        base: Union[str, Path],
        patterns: Union[Classifier, Mapping],
        ignore: Optional[Iterable[str]] = None,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.base = Path(base).resolve()
        if isinstance(patterns, Classifier):
            self.classifier = patterns
        else:
            self.classifier = Classifier.from_mapping(patterns)
        self._ignore = [compile_glob(p) for p in (DEFAULT_IGNORE if ignore is None else ignore)]
        self._observer_factory = observer_factory
        self._observer = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._started = False
        self._consumed = False

    def start(self) -> None:
        """Start observing. Must be called from the event loop thread."""
        if self._started:
            raise RuntimeError("WatchSource cannot be restarted")
        self._started = True

        loop = asyncio.get_running_loop()
        handler = PathForwardingHandler(lambda path: loop.call_soon_threadsafe(self.push, path))
        observer = self._observer_factory()
        try:
            observer.schedule(handler, str(self.base), recursive=True)
            observer.start()
        except OSError as e:
            raise PipelineIOError(f"Cannot watch {self.base}: {e}")
        self._observer = observer
        logger.debug("Watching %s", self.base)

    def stop(self) -> None:
        """Stop the observer thread."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def push(self, path: str) -> None:
        """Classify a raw path and enqueue it. Loop thread only."""
        relative = self._relative(path)
        if relative is None or self._is_ignored(relative):
            return
        event = self.classifier.event_for(relative)
        if event is None:
            logger.debug("Ignoring unmatched change: %s", relative)
            return
        self._queue.put_nowait(event)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield ChangeEvents one at a time, forever."""
        self._claim()
        while True:
            yield await self._queue.get()

    async def batches(self, window: float = 0.1) -> AsyncIterator[List[ChangeEvent]]:
        """Yield lists of ChangeEvents that arrived within ``window`` seconds.

        The window opens with the first event of a batch. Duplicate events
        inside a batch are collapsed, keeping first-arrival order.
        """
        self._claim()
        loop = asyncio.get_running_loop()
        while True:
            batch = [await self._queue.get()]
            deadline = loop.time() + window
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    batch.append(await asyncio.wait_for(self._queue.get(), remaining))
                except asyncio.TimeoutError:
                    break
            yield list(dict.fromkeys(batch))

    def _claim(self) -> None:
        if self._consumed:
            raise RuntimeError("WatchSource events can only be consumed once")
        self._consumed = True

    def _relative(self, path: str) -> Optional[str]:
        try:
            return Path(path).resolve().relative_to(self.base).as_posix()
        except ValueError:
            return None

    def _is_ignored(self, relative: str) -> bool:
        return any(regex.match(relative) for regex in self._ignore)
