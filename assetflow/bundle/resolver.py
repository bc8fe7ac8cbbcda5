"""Node-style module resolution for the bundler.

Resolution order for ``require(spec)`` from a file in ``dir``:
1. Relative or absolute specs ("./x", "../x", "/x"): ``dir/spec`` as a
   file, then with each known extension, then as a directory.
2. Bare specs ("react", "lodash/map"): the same lookup under every
   ``node_modules`` directory from ``dir`` up to the filesystem root.

A directory resolves through its package.json ("browser" then "main"
string fields), then its ``index`` file.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Set, Tuple

from assetflow.errors import BundleError

DEFAULT_EXTENSIONS: Tuple[str, ...] = ('.js', '.jsx', '.json')

INSTALL_DIR = 'node_modules'


@dataclass
class Resolver:
    """Resolves require() specifiers to files.

    Attributes:
        base: Project root; package lookups for project files stop here
        extensions: Suffixes probed for extension-less specifiers
        package_cache: Directory -> parsed package.json (None if absent);
            shared with the owning BundleSession in watch mode
    """

    base: Path
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    package_cache: Dict[str, Optional[dict]] = field(default_factory=dict)

    def resolve(self, spec: str, from_file: Path) -> Path:
        """Resolve ``spec`` as required from ``from_file``.

        Raises:
            BundleError: If nothing matches
        """
        if spec.startswith(('./', '../', '/')) or spec in ('.', '..'):
            found = self._load(from_file.parent / spec)
        else:
            found = None
            for modules_dir in self._node_modules_dirs(from_file.parent):
                found = self._load(modules_dir / spec)
                if found is not None:
                    break

        if found is None:
            raise BundleError(f"Cannot find module '{spec}' from '{from_file}'")
        return found.resolve()

    def package_for(self, path: Path) -> Optional[Path]:
        """Return the nearest package.json governing ``path``, if any."""
        path = path.resolve()
        stop = self.base.resolve() if self._is_within(path, self.base) else None
        for directory in path.parents:
            if self.read_package(directory) is not None:
                return directory / 'package.json'
            if stop is not None and directory == stop:
                break
        return None

    def read_package(self, directory: Path) -> Optional[dict]:
        """Return the parsed package.json of ``directory`` (cached)."""
        key = str(directory)
        if key in self.package_cache:
            return self.package_cache[key]

        manifest = directory / 'package.json'
        data = None
        if manifest.is_file():
            try:
                data = json.loads(manifest.read_text(encoding='utf-8'))
            except (OSError, ValueError) as e:
                raise BundleError(f"Invalid package.json {manifest}: {e}")
            if not isinstance(data, dict):
                raise BundleError(f"Invalid package.json {manifest}: root must be an object")
        self.package_cache[key] = data
        return data

    @property
    def package_files(self) -> Set[Path]:
        """package.json files read so far."""
        return {
            Path(directory) / 'package.json'
            for directory, data in self.package_cache.items()
            if data is not None
        }

    def _load(self, candidate: Path) -> Optional[Path]:
        return self._load_file(candidate) or self._load_directory(candidate)

    def _load_file(self, candidate: Path) -> Optional[Path]:
        if candidate.is_file():
            return candidate
        for ext in self.extensions:
            with_ext = candidate.with_name(candidate.name + ext)
            if with_ext.is_file():
                return with_ext
        return None

    def _load_directory(self, candidate: Path) -> Optional[Path]:
        if not candidate.is_dir():
            return None
        package = self.read_package(candidate.resolve())
        if package:
            for key in ('browser', 'main'):
                entry = package.get(key)
                if isinstance(entry, str) and entry:
                    target = candidate / entry
                    found = self._load_file(target) or self._load_index(target)
                    if found is not None:
                        return found
        return self._load_index(candidate)

    def _load_index(self, directory: Path) -> Optional[Path]:
        if not directory.is_dir():
            return None
        return self._load_file(directory / 'index')

    @staticmethod
    def _node_modules_dirs(start: Path) -> Iterator[Path]:
        start = start.resolve()
        for directory in (start, *start.parents):
            if directory.name == INSTALL_DIR:
                continue
            yield directory / INSTALL_DIR

    @staticmethod
    def _is_within(path: Path, root: Path) -> bool:
        try:
            path.relative_to(root.resolve())
            return True
        except ValueError:
            return False
