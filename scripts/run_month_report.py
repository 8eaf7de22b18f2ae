#!/usr/bin/env python3
"""
Month Roster - Compute, edit and export one month of the physician roster

Usage:
  python scripts/run_month_report.py --month 2024-03 --store data/store.json

Outputs to outputs/ directory.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from shift_roster.month_report import main

if __name__ == "__main__":
    main()
