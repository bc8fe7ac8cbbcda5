"""Dependency reconciliation for watch mode.

Script changes arrive here (from the bundle session's own watcher or from
the watch source). Ordinary changes just request a script rebuild. A
changed package.json means the installed dependencies may be stale: the
current bundle session is invalidated, dependencies are pruned and
installed, a fresh session is created and only then is the rebuild
requested. Script builds wait for a reconciliation in progress before
they fetch the session, so they never bundle with the stale one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

from assetflow.bundle import BundleSession
from assetflow.errors import DependencyError, ToolError
from assetflow.logging_setup import YELLOW
from assetflow.tools.shell import CommandResult, check_result, run_command
from assetflow.watch.classify import in_install_dir, is_manifest

logger = logging.getLogger(__name__)

SCRIPT_TASK = 'script-build'


@dataclass
class DependencyManager:
    """Runs the package manager's prune and install commands."""

    cwd: Path
    prune_command: List[str] = field(default_factory=lambda: ['npm', 'prune'])
    install_command: List[str] = field(default_factory=lambda: ['npm', 'install'])

    def prune(self) -> CommandResult:
        """Remove packages no longer listed in the manifest.

        Raises:
            DependencyError: If the command fails or cannot be started
        """
        return self._run(self.prune_command, self.cwd)

    def install(self, cwd: Optional[Path] = None) -> CommandResult:
        """Install the packages listed in the manifest.

        Raises:
            DependencyError: If the command fails or cannot be started
        """
        return self._run(self.install_command, cwd or self.cwd)

    @staticmethod
    def _run(argv: List[str], cwd: Path) -> CommandResult:
        try:
            result = run_command(argv, cwd=cwd)
        except ToolError as e:
            raise DependencyError(str(e))
        return check_result(result, DependencyError)


class DependencyReconciler:
    """Owns the watch-mode BundleSession and keeps it consistent.

    Args:
        coalescer: RunCoalescer receiving rebuild requests
        session_factory: Creates a new watch-mode BundleSession
        dependency_manager: Prunes and installs dependencies
        task_name: Task requested after a change
        install_dir: Name of the dependency-installation directory
    """

    def __init__(
        self,
        coalescer,
        session_factory: Callable[[], BundleSession],
        dependency_manager: DependencyManager,
        task_name: str = SCRIPT_TASK,
        install_dir: str = 'node_modules',
    ):
        self.coalescer = coalescer
        self.session_factory = session_factory
        self.dependency_manager = dependency_manager
        self.task_name = task_name
        self.install_dir = install_dir
        self.reconcile_count = 0

        self._session: Optional[BundleSession] = None
        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._ready.set()

    @property
    def session(self) -> Optional[BundleSession]:
        """The current session, or None before the first script build."""
        return self._session

    def current_session(self) -> BundleSession:
        """Return the current session, creating it on first use."""
        if self._session is None:
            self._session = self.session_factory()
        return self._session

    async def acquire_session(self) -> BundleSession:
        """Wait for any reconciliation in progress, then return the session."""
        await self._ready.wait()
        return self.current_session()

    async def on_change(self, paths: Iterable[str]) -> None:
        """React to a set of changed script or manifest paths."""
        genuine: Set[str] = {p for p in paths if not in_install_dir(p, self.install_dir)}
        if not genuine:
            logger.debug("Ignoring changes inside %s", self.install_dir)
            return

        manifests = sorted(p for p in genuine if is_manifest(p))
        if not manifests:
            logger.info("Javascript change detected", extra={'color': YELLOW})
            if self._session is not None:
                await asyncio.to_thread(self._session.forget, genuine)
            self.coalescer.request(self.task_name)
            return

        async with self._lock:
            self._ready.clear()
            try:
                await self._reinstall(manifests)
            finally:
                self._ready.set()
        self.coalescer.request(self.task_name)

    async def _reinstall(self, manifests: List[str]) -> None:
        self.reconcile_count += 1
        stale, self._session = self._session, None
        if stale is not None:
            # There is no partial invalidation: the whole session goes.
            await asyncio.to_thread(stale.invalidate)

        logger.info(
            "package.json change detected (%s), running prune",
            ', '.join(manifests),
            extra={'color': YELLOW},
        )
        # Steps fail independently: install still runs after a failed prune.
        await self._run_step('prune', self.dependency_manager.prune)
        logger.info("Running install", extra={'color': YELLOW})
        if await self._run_step('install', self.dependency_manager.install):
            logger.info("Dependencies installed successfully", extra={'color': YELLOW})

        self._session = self.session_factory()

    async def _run_step(self, label: str, step: Callable[[], CommandResult]) -> bool:
        try:
            result = await asyncio.to_thread(step)
        except DependencyError as e:
            logger.error("Error running %s: %s", label, e)
            return False
        for line in result.output_lines():
            logger.info(line)
        return True
