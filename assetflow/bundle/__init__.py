"""CommonJS script bundling with incremental rebuilds.

Example:
    from assetflow.bundle import BundleSession, CommandTransform

    session = BundleSession(
        'app/main.jsx',
        transforms=[CommandTransform(command=['npx', 'babel', '--filename', '{path}'])],
        watch_mode=True,
        on_update=lambda paths: print('changed:', paths),
    )
    result = session.bundle()   # cold
    result = session.bundle()   # served from cache
"""

from .resolver import Resolver
from .session import BundleResult, BundleSession, ModuleRecord
from .sourcemap import SourceMapBuilder, encode_vlq
from .transforms import CommandTransform, StringifyTransform, Transform, minify_html

__all__ = [
    'BundleResult',
    'BundleSession',
    'CommandTransform',
    'ModuleRecord',
    'Resolver',
    'SourceMapBuilder',
    'StringifyTransform',
    'Transform',
    'encode_vlq',
    'minify_html',
]
