#!/usr/bin/env python3
"""Add dept:/cat: tags to Shopify products from the SKU prefix map."""

import sys
from pathlib import Path

# Add parent for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import settings
from jobs import run_category_sync, run_cli


def main() -> int:
    return run_cli(run_category_sync, settings)


if __name__ == "__main__":
    sys.exit(main())
