"""Copying static files and markup into the build directory."""

import hashlib
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Union

from assetflow.errors import PipelineIOError

logger = logging.getLogger(__name__)

_CACHE_BREAK = re.compile(r'\{\{\s*cache-break:\s*([^}\s]+)\s*\}\}')


def expand(base: Path, pattern: str) -> List[Path]:
    """Return the files under ``base`` matching a glob, sorted.

    Files inside node_modules are never returned.
    """
    pattern = pattern.replace('\\', '/').lstrip('/')
    while pattern.startswith('./'):
        pattern = pattern[2:]
    return sorted(
        path for path in Path(base).glob(pattern)
        if path.is_file() and 'node_modules' not in path.relative_to(base).parts
    )


def glob_base(pattern: str) -> str:
    """Return the static directory prefix of a pattern.

    Files are copied relative to it, so "app/assets/**/*" copies
    "app/assets/img/a.png" to "<dest>/img/a.png".

    Examples:
        "app/assets/**/*" -> "app/assets"
        "app/index.html" -> "app"
        "*.html" -> ""
    """
    parts = pattern.replace('\\', '/').split('/')
    static = []
    for part in parts[:-1]:
        if any(ch in part for ch in '*?['):
            break
        static.append(part)
    return '/'.join(p for p in static if p and p != '.')


def file_md5(path: Union[str, Path]) -> str:
    """Compute the md5 hex digest of a file."""
    digest = hashlib.md5()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()


def clean(path: Path) -> None:
    """Delete a build directory and everything in it."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise PipelineIOError(f"Cannot clean {path}: {e}")


@dataclass
class StaticCopier:
    """Copies files matching a glob, preserving layout below the glob base."""

    base: Path

    def copy(self, pattern: str, dest: Path) -> List[Path]:
        """Copy files matching ``pattern`` into ``dest``.

        Returns:
            The written paths

        Raises:
            PipelineIOError: If a file cannot be copied
        """
        root = self.base / glob_base(pattern)
        written = []
        for source in expand(self.base, pattern):
            target = Path(dest) / source.relative_to(root)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
            except OSError as e:
                raise PipelineIOError(f"Cannot copy {source} to {target}: {e}")
            written.append(target)
        return written


@dataclass
class MarkupCopier:
    """Copies HTML into the build directory, filling in placeholders.

    Two substitutions are made:
    - every configured parameter key is replaced by its value
    - ``{{cache-break:PATH}}`` becomes ``PATH?<hash>``, where the hash is
      taken from the built file, so browsers refetch changed bundles
    """

    base: Path
    build_dir: Path
    parameters: Dict[str, str] = field(default_factory=dict)

    def copy(self, pattern: str) -> List[Path]:
        root = self.base / glob_base(pattern)
        written = []
        for source in expand(self.base, pattern):
            target = self.build_dir / source.relative_to(root)
            try:
                text = source.read_text(encoding='utf-8')
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(self.render(text), encoding='utf-8')
            except OSError as e:
                raise PipelineIOError(f"Cannot copy {source} to {target}: {e}")
            written.append(target)
        return written

    def render(self, text: str) -> str:
        if self.parameters:
            # Longest key first so overlapping keys resolve predictably.
            keys = sorted(self.parameters, key=len, reverse=True)
            pattern = re.compile('|'.join(re.escape(k) for k in keys))
            text = pattern.sub(lambda m: self.parameters.get(m.group(0)) or '', text)
        return _CACHE_BREAK.sub(lambda m: self.cache_break(m.group(1)), text)

    def cache_break(self, reference: str) -> str:
        built = self.build_dir / reference.lstrip('/')
        if not built.is_file():
            logger.warning("cache-break: %s not found in %s", reference, self.build_dir)
            return reference
        return f"{reference}?{file_md5(built)[:10]}"
