"""Classification of changed paths into categories.

Pattern syntax (paths are relative to the project base, "/"-separated):
- ``*`` matches any characters except "/"
- ``?`` matches a single character except "/"
- ``**`` matches any number of directories (``**/`` may match none)

Example:
    classifier = Classifier.from_mapping({
        'asset': 'assets/**',
        'style': '*.less',
        'manifest': 'package.json',
    })
    classifier.classify('assets/a.png')  # Category.ASSET
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union


class Category(Enum):
    """What kind of source a changed path is."""
    MANIFEST = "manifest"
    SCRIPT = "script"
    STYLESHEET = "stylesheet"
    MARKUP = "markup"
    ASSET = "asset"

    @classmethod
    def from_name(cls, name: Union[str, 'Category']) -> 'Category':
        """Look up a category by value or common alias ("style", "html")."""
        if isinstance(name, Category):
            return name
        key = name.strip().lower()
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = ', '.join(c.value for c in cls)
            raise ValueError(f"Unknown category '{name}'. Valid categories: {valid}")


_ALIASES = {
    'style': 'stylesheet',
    'styles': 'stylesheet',
    'less': 'stylesheet',
    'html': 'markup',
    'js': 'script',
    'assets': 'asset',
    'package': 'manifest',
}

# First matching category wins.
PRIORITY: Tuple[Category, ...] = (
    Category.MANIFEST,
    Category.SCRIPT,
    Category.STYLESHEET,
    Category.MARKUP,
    Category.ASSET,
)


@dataclass(frozen=True)
class ChangeEvent:
    """A classified filesystem change."""
    path: str
    category: Category


def compile_glob(pattern: str) -> 're.Pattern':
    """Compile a glob pattern into an anchored regex.

    Examples:
        "*.less" matches "main.less" but not "app/main.less"
        "app/**/*.less" matches "app/main.less" and "app/a/b/main.less"
        "assets/**" matches everything below "assets/"
    """
    pattern = normalize_path(pattern)
    parts: List[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith('**/', i):
            parts.append('(?:.*/)?')
            i += 3
        elif pattern.startswith('**', i):
            parts.append('.*')
            i += 2
        elif pattern[i] == '*':
            parts.append('[^/]*')
            i += 1
        elif pattern[i] == '?':
            parts.append('[^/]')
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile('^' + ''.join(parts) + '$')


def normalize_path(path: str) -> str:
    """Use "/" separators and drop a leading "./"."""
    path = path.replace('\\', '/')
    while path.startswith('./'):
        path = path[2:]
    return path


@dataclass
class Classifier:
    """Assigns each path to exactly one category, in PRIORITY order."""

    patterns: Dict[Category, List[str]] = field(default_factory=dict)

    _compiled: List[Tuple[Category, List['re.Pattern']]] = field(
        init=False, repr=False, default_factory=list
    )

    def __post_init__(self):
        self._compiled = [
            (category, [compile_glob(p) for p in self.patterns[category]])
            for category in PRIORITY
            if self.patterns.get(category)
        ]

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[Union[str, Category], Union[str, Iterable[str]]]
    ) -> 'Classifier':
        """Build a classifier from ``{category-name: pattern(s)}``."""
        patterns: Dict[Category, List[str]] = {}
        for name, value in mapping.items():
            category = Category.from_name(name)
            values = [value] if isinstance(value, str) else list(value)
            patterns.setdefault(category, []).extend(values)
        return cls(patterns=patterns)

    def classify(self, path: str) -> Optional[Category]:
        """Return the category of ``path``, or None if nothing matches."""
        path = normalize_path(path)
        for category, regexes in self._compiled:
            if any(regex.match(path) for regex in regexes):
                return category
        return None

    def event_for(self, path: str) -> Optional[ChangeEvent]:
        """Return a ChangeEvent for ``path``, or None if it is unmatched."""
        category = self.classify(path)
        if category is None:
            return None
        return ChangeEvent(path=normalize_path(path), category=category)


def is_manifest(path: str) -> bool:
    """True for dependency manifests: files named exactly package.json."""
    return PurePosixPath(normalize_path(path)).name == 'package.json'


def in_install_dir(path: str, install_dir: str = 'node_modules') -> bool:
    """True if ``path`` lies inside a dependency-installation directory."""
    return install_dir in PurePosixPath(normalize_path(path)).parts
