"""Source transforms applied to modules before they are bundled.

Transforms run in list order; each one sees the output of the previous.
Users can subclass Transform for other preprocessors.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from assetflow.errors import BundleError, ToolError
from assetflow.tools.shell import CommandTemplate, check_result, run_command
from assetflow.watch.classify import in_install_dir

from .resolver import INSTALL_DIR

_HTML_COMMENT = re.compile(r'<!--.*?-->', re.DOTALL)
_BETWEEN_TAGS = re.compile(r'>\s+<')
_WHITESPACE = re.compile(r'\s+')


@dataclass
class Transform(ABC):
    """Base class for module source transforms.

    Transforms are local: modules inside node_modules are bundled as
    published unless ``global_transform`` is set.

    Attributes:
        extensions: File suffixes this transform handles; these are also
            probed when resolving extension-less requires
        global_transform: Also transform installed dependencies
    """

    extensions: Tuple[str, ...] = ()
    global_transform: bool = False

    def applies_to(self, path: Path) -> bool:
        if path.suffix not in self.extensions:
            return False
        return self.global_transform or not in_install_dir(path.as_posix(), INSTALL_DIR)

    @abstractmethod
    def apply(self, path: Path, source: str) -> str:
        """Return the transformed source of ``path``."""
        pass


@dataclass
class StringifyTransform(Transform):
    """Turn text files (HTML templates) into modules exporting a string.

    Example:
        require('./template.html')  // -> "<div>...</div>"
    """

    extensions: Tuple[str, ...] = ('.html',)
    minify: bool = True

    def apply(self, path: Path, source: str) -> str:
        text = minify_html(source) if self.minify else source
        return f"module.exports = {json.dumps(text)};\n"


@dataclass
class CommandTransform(Transform):
    """Pipe module source through an external command (e.g. babel).

    The command reads the source on stdin and writes the result to stdout;
    ``{path}`` in the command is replaced by the module path.
    """

    extensions: Tuple[str, ...] = ('.js', '.jsx')
    command: List[str] = field(default_factory=list)
    cwd: Optional[Path] = None

    def apply(self, path: Path, source: str) -> str:
        argv = CommandTemplate(self.command).format(path=str(path))
        try:
            result = check_result(run_command(argv, cwd=self.cwd, input_text=source))
        except ToolError as e:
            raise BundleError(f"Transform failed for {path}: {e}", e.output)
        return result.stdout


def minify_html(text: str) -> str:
    """Drop comments and whitespace between tags."""
    text = _HTML_COMMENT.sub('', text)
    text = _BETWEEN_TAGS.sub('><', text)
    return _WHITESPACE.sub(' ', text).strip()


def apply_transforms(transforms: Sequence[Transform], path: Path, source: str) -> str:
    """Run every applicable transform over ``source`` in order."""
    for transform in transforms:
        if transform.applies_to(path):
            source = transform.apply(path, source)
    return source


def transform_extensions(transforms: Sequence[Transform]) -> Tuple[str, ...]:
    """All extensions handled by ``transforms``, without duplicates."""
    seen: List[str] = []
    for transform in transforms:
        for ext in transform.extensions:
            if ext not in seen:
                seen.append(ext)
    return tuple(seen)
