"""Incremental CommonJS bundling sessions.

A BundleSession walks the ``require()`` graph from an entry point and
emits a single browser script. In watch mode the session keeps its module
cache (transformed source + resolved dependencies per file) and its
package.json cache between ``bundle()`` calls, and watches every file it
discovered so that only changed modules are re-read on the next call.

Once the dependency manifest changes, cached package resolution can no
longer be trusted: the owner must ``invalidate()`` the session and build a
new one. An invalidated session refuses to bundle.

Example:
    session = BundleSession('app/main.js', transforms=[StringifyTransform()])
    result = session.bundle()
    Path('build/main.js').write_text(result.code)
"""

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from watchdog.observers import Observer

from assetflow.errors import BundleError, SessionStateError
from assetflow.watch.classify import in_install_dir
from assetflow.watch.source import PathForwardingHandler

from .resolver import DEFAULT_EXTENSIONS, INSTALL_DIR, Resolver
from .sourcemap import SourceMapBuilder
from .transforms import Transform, apply_transforms, transform_extensions

logger = logging.getLogger(__name__)

_REQUIRE = re.compile(r'''\brequire\(\s*(['"])([^'"]+)\1\s*\)''')
_USES_GLOBAL = re.compile(r'\bglobal\b')
_USES_PROCESS = re.compile(r'\bprocess\b')

GLOBAL_SHIM = (
    "var global = typeof self !== 'undefined' ? self : "
    "typeof window !== 'undefined' ? window : {};"
)
PROCESS_SHIM = (
    "var process = {env: {}, browser: true, argv: [], "
    "nextTick: function (fn) { setTimeout(fn, 0); }};"
)

PRELUDE = """(function (modules, cache, entries) {
  function load(id) {
    if (cache[id]) return cache[id].exports;
    var def = modules[id];
    if (!def) {
      var err = new Error("Cannot find module '" + id + "'");
      err.code = 'MODULE_NOT_FOUND';
      throw err;
    }
    var module = cache[id] = {exports: {}};
    def[0].call(module.exports, function (name) {
      return load(def[1][name] || name);
    }, module, module.exports);
    return module.exports;
  }
  for (var i = 0; i < entries.length; i++) load(entries[i]);
  return load;
})({
"""

UpdateCallback = Callable[[Set[str]], None]


@dataclass
class ModuleRecord:
    """A processed module as kept in the dependency cache."""

    path: Path
    id: str
    source: str
    """Transformed source, ready to be wrapped."""

    deps: Dict[str, str] = field(default_factory=dict)
    """require() specifier -> resolved absolute path."""


@dataclass
class BundleResult:
    """Output of BundleSession.bundle()."""

    code: str
    source_map: Optional[dict] = None
    modules: List[str] = field(default_factory=list)
    """Ids of the bundled modules, entry first."""

    def source_map_json(self) -> Optional[str]:
        if self.source_map is None:
            return None
        return json.dumps(self.source_map)


class BundleSession:
    """A (possibly incremental) bundling context for one entry point.

    Args:
        entry_point: Script the bundle starts from
        transforms: Ordered source transforms
        watch_mode: Keep caches between bundles and watch discovered files
        base: Project root used for module ids (defaults to the entry's dir)
        source_maps: Produce a source map with every bundle
        detect_globals: Add ``global``/``process`` shims to modules that
            reference them
        insert_globals: Add the shims to every module
        on_update: Called with the set of changed paths (watch mode); runs
            on the watcher's timer thread
        delay: Seconds to gather file changes before ``on_update`` fires
        output_name: ``file`` field of the source map
    """

    def __init__(
        self,
        entry_point: Union[str, Path],
        transforms: Sequence[Transform] = (),
        watch_mode: bool = False,
        base: Optional[Union[str, Path]] = None,
        source_maps: bool = True,
        detect_globals: bool = True,
        insert_globals: bool = False,
        on_update: Optional[UpdateCallback] = None,
        delay: float = 0.1,
        output_name: str = 'bundle.js',
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.entry_point = Path(entry_point).resolve()
        self.base = Path(base).resolve() if base is not None else self.entry_point.parent
        self.transforms = list(transforms)
        self.watch_mode = watch_mode
        self.source_maps = source_maps
        self.detect_globals = detect_globals
        self.insert_globals = insert_globals
        self.on_update = on_update
        self.delay = delay
        self.output_name = output_name

        self.dependency_cache: Dict[str, ModuleRecord] = {}
        self.package_cache: Dict[str, Optional[dict]] = {}
        self.active = True
        self.bundle_count = 0

        self._extensions = DEFAULT_EXTENSIONS + tuple(
            ext for ext in transform_extensions(self.transforms)
            if ext not in DEFAULT_EXTENSIONS
        )
        self._lock = threading.Lock()
        self._observer_factory = observer_factory
        self._observer = None
        self._watched_dirs: Set[str] = set()
        self._watched_files: Set[str] = set()
        self._pending: Set[str] = set()
        self._pending_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def bundle(self) -> BundleResult:
        """Bundle the entry point and everything it requires.

        Raises:
            SessionStateError: If the session was invalidated
            BundleError: If a module cannot be read, transformed or resolved
        """
        with self._lock:
            if not self.active:
                raise SessionStateError("bundle() called on an invalidated BundleSession")

            if self.watch_mode:
                modules = self.dependency_cache
                resolver = Resolver(self.base, self._extensions, self.package_cache)
            else:
                modules = {}
                resolver = Resolver(self.base, self._extensions)

            visited: List[Path] = []
            try:
                order, reused = self._collect(modules, resolver, visited)
            except BundleError:
                # A failed bundle still watches every file it read.
                if self.watch_mode:
                    self._watch_visited(visited, resolver)
                raise

            if self.watch_mode:
                seen = {str(path) for path in visited}
                for stale in set(modules) - seen:
                    del modules[stale]
                self._watch_visited(visited, resolver)

            self.bundle_count += 1
            logger.debug(
                "Bundled %d module(s) from %s (%d from cache)",
                len(order), self.entry_point, reused,
            )
            return self._render(order)

    def forget(self, paths: Iterable[str]) -> None:
        """Drop cache entries for changed files without invalidating."""
        with self._lock:
            for raw in paths:
                path = Path(raw).resolve()
                self.dependency_cache.pop(str(path), None)
                if path.name == 'package.json':
                    self.package_cache.pop(str(path.parent), None)

    def invalidate(self) -> None:
        """Deactivate the session, stop watching and drop every cache."""
        with self._lock:
            self.active = False
            self.dependency_cache.clear()
            self.package_cache.clear()
        with self._pending_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self._watched_dirs.clear()
        self._watched_files.clear()

    def notify_changed(self, paths: Iterable[str]) -> bool:
        """Handle a batch of changed files.

        A batch made only of paths inside node_modules is dropped: some
        watchers report such changes even when told to ignore them. If at
        least one path lies outside, the whole batch counts.

        The receiver of ``on_update`` decides what happens to the caches
        (``forget`` or ``invalidate``). Without a receiver the changed
        modules are forgotten here.

        Returns:
            True if the batch was accepted
        """
        changed = set(paths)
        if not changed or not self.active:
            return False
        if all(in_install_dir(p, INSTALL_DIR) for p in changed):
            logger.debug("Ignoring %d change(s) inside %s", len(changed), INSTALL_DIR)
            return False

        if self.on_update is not None:
            self.on_update(changed)
        else:
            self.forget(changed)
        return True

    @property
    def watched_files(self) -> Set[str]:
        return set(self._watched_files)

    def _collect(
        self,
        modules: Dict[str, ModuleRecord],
        resolver: Resolver,
        visited: List[Path],
    ) -> Tuple[List[ModuleRecord], int]:
        """Depth-first walk of the require graph from the entry point.

        Every path is appended to ``visited`` before it is read, so the
        caller knows what was touched even when loading fails.
        """
        reused = 0
        order: List[ModuleRecord] = []
        seen: Set[str] = set()
        stack = [self.entry_point]
        while stack:
            path = stack.pop()
            key = str(path)
            if key in seen:
                continue
            seen.add(key)
            visited.append(path)

            record = modules.get(key)
            if record is None:
                record = self._load_module(path, resolver)
                modules[key] = record
            else:
                reused += 1
            order.append(record)
            # Reversed so dependencies are visited in require() order.
            stack.extend(Path(dep) for dep in reversed(list(record.deps.values())))
        return order, reused

    def _load_module(self, path: Path, resolver: Resolver) -> ModuleRecord:
        try:
            raw = path.read_text(encoding='utf-8')
        except OSError as e:
            raise BundleError(f"Cannot read module {path}: {e}")

        source = apply_transforms(self.transforms, path, raw)
        if path.suffix == '.json' and not any(t.applies_to(path) for t in self.transforms):
            source = f"module.exports = {source.strip()};"

        deps: Dict[str, str] = {}
        for match in _REQUIRE.finditer(source):
            spec = match.group(2)
            if spec not in deps:
                deps[spec] = str(resolver.resolve(spec, path))

        return ModuleRecord(path=path, id=self._module_id(path), source=source, deps=deps)

    def _module_id(self, path: Path) -> str:
        try:
            return path.relative_to(self.base).as_posix()
        except ValueError:
            return path.as_posix()

    def _shims(self, source: str) -> str:
        shims = []
        if self.insert_globals or (self.detect_globals and _USES_GLOBAL.search(source)):
            shims.append(GLOBAL_SHIM)
        if self.insert_globals or (self.detect_globals and _USES_PROCESS.search(source)):
            shims.append(PROCESS_SHIM)
        return ' '.join(shims)

    def _render(self, order: List[ModuleRecord]) -> BundleResult:
        ids = {str(record.path): record.id for record in order}
        smap = SourceMapBuilder(file=self.output_name) if self.source_maps else None

        parts = [PRELUDE]
        line = PRELUDE.count('\n')
        for index, record in enumerate(order):
            shims = self._shims(record.source)
            header = f"{json.dumps(record.id)}: [function (require, module, exports) {{"
            parts.append(f"{header}{' ' + shims if shims else ''}\n")
            line += 1

            body = record.source.rstrip('\n')
            parts.append(body + '\n')
            if smap is not None:
                smap.add_source(record.id, body, line)
            line += body.count('\n') + 1

            dep_ids = {spec: ids[dep] for spec, dep in record.deps.items()}
            separator = ',' if index < len(order) - 1 else ''
            parts.append(f"}}, {json.dumps(dep_ids, sort_keys=True)}]{separator}\n")
            line += 1

        parts.append(f"}}, {{}}, [{json.dumps(order[0].id)}]);\n")
        line += 1

        code = ''.join(parts)
        source_map = None
        if smap is not None:
            code += f"//# sourceMappingURL={self.output_name}.map\n"
            source_map = smap.to_dict(line)
        return BundleResult(code=code, source_map=source_map, modules=[r.id for r in order])

    def _watch_visited(self, visited: List[Path], resolver: Resolver) -> None:
        packages: List[Optional[Path]] = []
        for path in visited:
            try:
                packages.append(resolver.package_for(path))
            except BundleError:
                # unreadable manifest, already reported by the bundle
                packages.append(None)
        self._watch(visited, packages + sorted(resolver.package_files))

    def _watch(self, module_paths: List[Path], package_paths: List[Optional[Path]]) -> None:
        """Watch the discovered files (never the installation directory)."""
        wanted = {
            str(p.resolve()) for p in [*module_paths, *package_paths]
            if p is not None and not in_install_dir(p.as_posix(), INSTALL_DIR)
        }
        self._watched_files = wanted

        if self._observer is None:
            self._observer = self._observer_factory()
            self._observer.start()
        handler = PathForwardingHandler(self._queue_change)
        directories = {str(Path(p).parent) for p in wanted if Path(p).parent.is_dir()}
        for directory in sorted(directories - self._watched_dirs):
            self._observer.schedule(handler, directory, recursive=False)
            self._watched_dirs.add(directory)

    def _queue_change(self, path: str) -> None:
        """Observer thread: collect changes, flush after ``delay``."""
        if str(Path(path).resolve()) not in self._watched_files:
            return
        with self._pending_lock:
            self._pending.add(path)
            if self._timer is None:
                self._timer = threading.Timer(self.delay, self._flush)
                self._timer.daemon = True
                self._timer.start()

    def _flush(self) -> None:
        with self._pending_lock:
            changed = set(self._pending)
            self._pending.clear()
            self._timer = None
        self.notify_changed(changed)
