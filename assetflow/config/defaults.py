"""Default paths and the merge helper used to apply user overrides."""

import copy
from typing import Any, Dict, List, Optional

DEFAULT_PATHS: Dict[str, Any] = {
    'base': None,  # config file directory, or cwd when there is none
    'html': 'app/index.html',
    'all_less': 'app/**/*.less',
    'less': 'app/main.less',
    'lint': ['app/**/*.js', 'app/**/*.jsx'],
    'js': 'app/main.jsx',
    'assets': 'app/assets/**/*',
    'build': 'build/',
}

DEFAULT_OPTIONS: Dict[str, Any] = {
    'compress_js': True,
    'source_maps': True,
    'compress_css': True,
    'detect_globals': True,
    'insert_globals': False,
    'disable_lint': False,
    'fail_on_lint': False,
    'js_out': None,
    'disable_babel': False,
    'enable_stringify': False,
    'port': 4000,
    'silent': False,
    'autoprefix': None,
    'debounce': 0.1,
}

DEFAULT_COMMANDS: Dict[str, List[str]] = {
    'less': ['npx', 'lessc', '{compress}', '{autoprefix}', '{entry}', '{output}'],
    'lint': ['npx', 'eslint', '--format', 'unix'],
    'babel': ['npx', 'babel', '--filename', '{path}'],
    'minify': [
        'npx', 'terser', '{input}', '--compress', 'drop_debugger=false', '--mangle',
        '--output', '{output}', '{source_map}', '{source_map_options}',
    ],
    'prune': ['npm', 'prune'],
    'install': ['npm', 'install'],
}


def merge(defaults: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge ``overrides`` over ``defaults`` without mutating either.

    Nested mappings are merged key by key; any other value in ``overrides``
    (lists included) replaces the default outright. ``None`` overrides are
    ignored so that an empty YAML key keeps the default.

    Example:
        merge({'a': 1, 'b': {'c': 2}}, {'b': {'d': 3}})
        # -> {'a': 1, 'b': {'c': 2, 'd': 3}}
    """
    result = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def top_directory(pattern: str) -> str:
    """Return the last directory of a path pattern that has no wildcard.

    Examples:
        "app/assets/**/*" -> "assets"
        "static/*" -> "static"
        "assets" -> "assets"
    """
    parts = [part for part in pattern.replace('\\', '/').split('/')
             if part and '*' not in part]
    return parts[-1] if parts else ''
