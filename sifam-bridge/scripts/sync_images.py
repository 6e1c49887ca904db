#!/usr/bin/env python3
"""Import SIFAM photos into Shopify and attach them to their variants."""

import sys
from pathlib import Path

# Add parent for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import settings
from jobs import run_image_sync, run_cli


def main() -> int:
    return run_cli(run_image_sync, settings)


if __name__ == "__main__":
    sys.exit(main())
