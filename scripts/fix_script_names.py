#!/usr/bin/env python3
"""
Strip leading 5-6 digit date stamps (e.g. "210601威塔课程") from script names.

Renames that would collide with an existing script are skipped and listed.

Usage:
    python scripts/fix_script_names.py [--dry-run]
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scriptboard.models.base import SessionLocal, init_db
from scriptboard.services.script_service import ScriptService
from scriptboard.services.stats_processor import run_stats_recompute


def main():
    parser = argparse.ArgumentParser(description="Remove date-stamp prefixes from script names")
    parser.add_argument("--dry-run", action="store_true", help="Only report planned renames")
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        result = ScriptService(db).strip_name_date_stamps(dry_run=args.dry_run)
    finally:
        db.close()

    for old, new in result["renamed"]:
        print(f"{'Would rename' if args.dry_run else 'Renamed'}: {old} -> {new}")
    for old, new in result["skipped"]:
        print(f"Skipped (name conflict): {old} -> {new}")

    print(f"\nDone: {len(result['renamed'])} renamed, {len(result['skipped'])} skipped")

    if result["renamed"] and not args.dry_run:
        run_stats_recompute()


if __name__ == "__main__":
    main()
