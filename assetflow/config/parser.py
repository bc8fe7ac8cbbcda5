"""YAML parsing and validation of pipeline configuration.

Example assetflow.yaml:
    options:
      compress_js: false
      port: 8080

    paths:
      js: app/main.js
      build: dist/

    parameters:
      API_ROOT: https://api.example.com

    commands:
      minify: [npx, terser, '{input}', --compress, -o, '{output}']
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from assetflow.errors import ConfigError

from .defaults import DEFAULT_COMMANDS, DEFAULT_OPTIONS, DEFAULT_PATHS, merge

DEFAULT_CONFIG_NAME = 'assetflow.yaml'

_BOOL_OPTIONS = (
    'compress_js', 'source_maps', 'compress_css', 'detect_globals',
    'insert_globals', 'disable_lint', 'fail_on_lint', 'disable_babel',
    'enable_stringify', 'silent',
)
_STRING_PATHS = ('html', 'all_less', 'less', 'js', 'assets', 'build')


@dataclass
class Paths:
    """Project paths, relative to ``base`` unless absolute."""

    base: Path
    html: str
    all_less: str
    less: str
    lint: List[str]
    js: str
    assets: str
    build: str

    def resolve(self, relative: Union[str, Path]) -> Path:
        """Resolve a path against the project base."""
        return (self.base / relative).resolve()

    @property
    def build_dir(self) -> Path:
        return self.resolve(self.build)


@dataclass
class Options:
    """Build options. See DEFAULT_OPTIONS for defaults."""

    compress_js: bool = True
    source_maps: bool = True
    compress_css: bool = True
    detect_globals: bool = True
    insert_globals: bool = False
    disable_lint: bool = False
    fail_on_lint: bool = False
    js_out: Optional[str] = None
    disable_babel: bool = False
    enable_stringify: bool = False
    port: int = 4000
    silent: bool = False
    autoprefix: Optional[str] = None
    debounce: float = 0.1


@dataclass
class PipelineConfig:
    """Parsed and validated pipeline configuration."""

    paths: Paths
    options: Options = field(default_factory=Options)
    parameters: Dict[str, str] = field(default_factory=dict)
    commands: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_COMMANDS.items()}
    )

    @property
    def js_out(self) -> str:
        """File name of the bundled script inside the build directory."""
        if self.options.js_out:
            return self.options.js_out
        name = Path(self.paths.js).name
        if name.endswith('.jsx'):
            name = name[:-len('.jsx')] + '.js'
        return name


def parse_config_file(
    path: Union[str, Path],
    base_path: Optional[Union[str, Path]] = None,
) -> PipelineConfig:
    """Parse and validate a configuration file.

    Args:
        path: Path to the YAML file
        base_path: Override for ``paths.base``; defaults to the value in
            the file, then to the file's directory

    Returns:
        PipelineConfig with defaults applied

    Raises:
        ConfigError: If the file is invalid
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax in {path}: {e}")

    return build_config(data, base_path=base_path, config_dir=path.parent)


def parse_config_string(
    content: str,
    base_path: Optional[Union[str, Path]] = None,
) -> PipelineConfig:
    """Parse configuration from a YAML string.

    Relative ``paths.base`` values resolve against the current directory.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    return build_config(data, base_path=base_path, config_dir=Path.cwd())


def build_config(
    data: Any,
    base_path: Optional[Union[str, Path]] = None,
    config_dir: Optional[Path] = None,
) -> PipelineConfig:
    """Validate a parsed YAML document and apply defaults.

    Args:
        data: Parsed YAML (``None`` for an empty document)
        base_path: Override for ``paths.base``
        config_dir: Directory relative bases resolve against

    Raises:
        ConfigError: If validation fails
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping")

    config_dir = config_dir or Path.cwd()

    for section in ('options', 'paths', 'parameters', 'commands'):
        if section in data and data[section] is not None and not isinstance(data[section], dict):
            raise ConfigError(f"'{section}' must be a mapping")

    unknown = set(data) - {'options', 'paths', 'parameters', 'commands'}
    if unknown:
        raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

    paths = _validate_paths(merge(DEFAULT_PATHS, data.get('paths')), base_path, config_dir)
    options = _validate_options(merge(DEFAULT_OPTIONS, data.get('options')))
    parameters = _validate_parameters(data.get('parameters') or {})
    commands = _validate_commands(merge(DEFAULT_COMMANDS, data.get('commands')))

    return PipelineConfig(
        paths=paths,
        options=options,
        parameters=parameters,
        commands=commands,
    )


def _validate_paths(
    raw: Dict[str, Any],
    base_path: Optional[Union[str, Path]],
    config_dir: Path,
) -> Paths:
    unknown = set(raw) - set(DEFAULT_PATHS)
    if unknown:
        raise ConfigError(f"Unknown path(s): {', '.join(sorted(unknown))}")

    for name in _STRING_PATHS:
        if not isinstance(raw[name], str) or not raw[name]:
            raise ConfigError(f"paths.{name} must be a non-empty string")

    lint = raw['lint']
    if isinstance(lint, str):
        lint = [lint]
    if not isinstance(lint, list) or not all(isinstance(p, str) for p in lint):
        raise ConfigError("paths.lint must be a string or a list of strings")

    base = base_path if base_path is not None else raw['base']
    if base is None:
        base = config_dir
    elif not isinstance(base, (str, Path)):
        raise ConfigError("paths.base must be a string")
    base = (config_dir / Path(base)).resolve()

    return Paths(
        base=base,
        html=raw['html'],
        all_less=raw['all_less'],
        less=raw['less'],
        lint=list(lint),
        js=raw['js'],
        assets=raw['assets'],
        build=raw['build'],
    )


def _validate_options(raw: Dict[str, Any]) -> Options:
    unknown = set(raw) - set(DEFAULT_OPTIONS)
    if unknown:
        raise ConfigError(f"Unknown option(s): {', '.join(sorted(unknown))}")

    for name in _BOOL_OPTIONS:
        if not isinstance(raw[name], bool):
            raise ConfigError(f"options.{name} must be true or false")

    port = raw['port']
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
        raise ConfigError("options.port must be an integer between 0 and 65535")

    debounce = raw['debounce']
    if isinstance(debounce, bool) or not isinstance(debounce, (int, float)) or debounce < 0:
        raise ConfigError("options.debounce must be a non-negative number")

    for name in ('js_out', 'autoprefix'):
        if raw[name] is not None and not isinstance(raw[name], str):
            raise ConfigError(f"options.{name} must be a string")

    return Options(**{**raw, 'debounce': float(debounce)})


def _validate_parameters(raw: Dict[str, Any]) -> Dict[str, str]:
    parameters = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key:
            raise ConfigError("parameters keys must be non-empty strings")
        if isinstance(value, (dict, list)):
            raise ConfigError(f"parameters.{key} must be a scalar value")
        parameters[key] = '' if value is None else str(value)
    return parameters


def _validate_commands(raw: Dict[str, Any]) -> Dict[str, List[str]]:
    commands = {}
    for name, argv in raw.items():
        if isinstance(argv, str):
            argv = argv.split()
        if (not isinstance(argv, list) or not argv
                or not all(isinstance(part, str) for part in argv)):
            raise ConfigError(f"commands.{name} must be a non-empty list of strings")
        commands[name] = list(argv)
    return commands
