"""Command line entry point.

Usage:
    python -m assetflow [build|watch|serve|wserve|clean] [options]

Example:
    python -m assetflow build
    python -m assetflow watch --config site/assetflow.yaml -v
    python -m assetflow wserve --port 8080
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from assetflow.config import DEFAULT_CONFIG_NAME, PipelineConfig, build_config, parse_config_file
from assetflow.errors import PipelineError
from assetflow.logging_setup import setup_logging

COMMANDS = ('build', 'watch', 'serve', 'wserve', 'watch-and-serve', 'clean')


def load_config(
    config_path: Optional[str],
    base_path: Optional[str] = None,
) -> PipelineConfig:
    """Load the config file, or defaults if none was given and none exists.

    Raises:
        FileNotFoundError: If an explicitly given file does not exist
    """
    if config_path is not None:
        return parse_config_file(config_path, base_path=base_path)
    default = Path(DEFAULT_CONFIG_NAME)
    if default.exists():
        return parse_config_file(default, base_path=base_path)
    return build_config({}, base_path=base_path, config_dir=Path.cwd())


async def run_command_name(pipeline, command: str) -> None:
    if command == 'build':
        await pipeline.build()
    elif command == 'clean':
        await pipeline.runner.run('clean')
    elif command == 'watch':
        await pipeline.watch()
    elif command == 'serve':
        await pipeline.serve()
    else:
        await pipeline.watch(serve=True)


def main(args: Optional[List[str]] = None) -> int:
    """CLI entry point.

    Args:
        args: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    from assetflow.pipeline import Pipeline

    parser = argparse.ArgumentParser(
        description='Build, watch and serve front-end assets',
        prog='python -m assetflow',
    )
    parser.add_argument(
        'command',
        nargs='?',
        default='build',
        choices=COMMANDS,
        help='What to do (default: build)',
    )
    parser.add_argument(
        '-c', '--config',
        default=None,
        help=f'Path to the config file (default: {DEFAULT_CONFIG_NAME} if present)',
    )
    parser.add_argument(
        '--base-path',
        default=None,
        help='Override the project base directory',
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Port for serve/wserve (default: options.port)',
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Print debug output',
    )
    parser.add_argument(
        '--silent',
        action='store_true',
        help='Only print errors',
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show the resolved configuration without running anything',
    )

    parsed = parser.parse_args(args)

    try:
        config = load_config(parsed.config, parsed.base_path)
    except (FileNotFoundError, PipelineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if parsed.port is not None:
        config.options.port = parsed.port

    if parsed.dry_run:
        print(f"Base: {config.paths.base}")
        print(f"Build: {config.paths.build_dir}")
        print(f"Script: {config.paths.js} -> {config.js_out}")
        print(f"Stylesheet: {config.paths.less}")
        print(f"Options: {config.options}")
        if config.parameters:
            print(f"Parameters: {', '.join(sorted(config.parameters))}")
        return 0

    setup_logging(verbose=parsed.verbose, silent=parsed.silent or config.options.silent)
    pipeline = Pipeline(config)

    try:
        asyncio.run(run_command_name(pipeline, parsed.command))
    except KeyboardInterrupt:
        print("\nStopped.", file=sys.stderr)
        return 0
    except PipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        if parsed.verbose and e.output:
            print(e.output, file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
