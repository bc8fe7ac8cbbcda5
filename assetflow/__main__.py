"""CLI entry point for the assetflow package.

Usage:
    python -m assetflow [build|watch|serve|wserve|clean] [options]
"""

from .cli import main
import sys

if __name__ == '__main__':
    sys.exit(main())
