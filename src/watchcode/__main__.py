"""
Entry point for running watchcode as a module: python -m watchcode

This allows the package to be executed directly:
    python -m watchcode --watch-dir /downloads
    python -m watchcode --help
"""

import sys

from watchcode.cli import main

if __name__ == "__main__":
    sys.exit(main())
