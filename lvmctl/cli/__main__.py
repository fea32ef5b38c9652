#!/usr/bin/env python3
"""
Entry point for lvmctl CLI tool.
"""

import sys

from lvmctl.cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
