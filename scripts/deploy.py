#!/usr/bin/env python3
"""Deploy the Puzzle contract to the development chain.

Usage:
    python3 scripts/deploy.py [--state chain.json] [--base-uri URI]

Prints `Contract deployed to: <address>` and exits 0, or prints the error
and exits 1.
"""

import os
import sys

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from puzzlenft.deploy import run_main  # noqa: E402

if __name__ == "__main__":
    sys.exit(run_main())
