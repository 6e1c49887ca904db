#!/usr/bin/env python3
"""List products without dept:/cat: tags. Writes UNCATEGORIZED_CSV."""

import sys
from pathlib import Path

# Add parent for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import settings
from jobs import export_uncategorized, run_cli


def main() -> int:
    return run_cli(export_uncategorized, settings)


if __name__ == "__main__":
    sys.exit(main())
