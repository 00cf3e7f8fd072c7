"""Run the segarc command line."""

from __future__ import annotations

import sys

from segarc.cli import main

if __name__ == "__main__":
    sys.exit(main())
