"""
Entry point for running netscan as a module.

This allows the package to be executed with: python -m netscan
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
