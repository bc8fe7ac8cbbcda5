"""Filesystem watching and change classification."""

from .classify import (
    PRIORITY,
    Category,
    ChangeEvent,
    Classifier,
    compile_glob,
    in_install_dir,
    is_manifest,
)
from .source import WatchSource

__all__ = [
    'PRIORITY',
    'Category',
    'ChangeEvent',
    'Classifier',
    'WatchSource',
    'compile_glob',
    'in_install_dir',
    'is_manifest',
]
