"""Pipeline configuration loaded from assetflow.yaml.

Usage:
    from assetflow.config import parse_config_file
    config = parse_config_file('assetflow.yaml')
    print(config.paths.build_dir)
"""

from .defaults import DEFAULT_COMMANDS, DEFAULT_OPTIONS, DEFAULT_PATHS, merge, top_directory
from .parser import (
    DEFAULT_CONFIG_NAME,
    Options,
    Paths,
    PipelineConfig,
    build_config,
    parse_config_file,
    parse_config_string,
)

__all__ = [
    'DEFAULT_COMMANDS',
    'DEFAULT_CONFIG_NAME',
    'DEFAULT_OPTIONS',
    'DEFAULT_PATHS',
    'Options',
    'Paths',
    'PipelineConfig',
    'build_config',
    'merge',
    'parse_config_file',
    'parse_config_string',
    'top_directory',
]
