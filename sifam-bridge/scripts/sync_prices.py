#!/usr/bin/env python3
"""Sync SIFAM PRIX_PUBLIC (HT, plus VAT_RATE) into Shopify variant prices."""

import sys
from pathlib import Path

# Add parent for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import settings
from jobs import run_price_sync, run_cli


def main() -> int:
    return run_cli(run_price_sync, settings)


if __name__ == "__main__":
    sys.exit(main())
