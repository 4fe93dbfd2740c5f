#!/usr/bin/env python3
"""
Rebuild every statistics table from the current scripts and spend rows.

Usage:
    python scripts/recompute_stats.py [--channel-only]
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scriptboard.models.base import SessionLocal, init_db
from scriptboard.services.stats_processor import StatsProcessor
from scriptboard.utils.logger import log


def main():
    parser = argparse.ArgumentParser(description="Recompute script and channel statistics")
    parser.add_argument("--channel-only", action="store_true", help="Only rebuild channel x period stats")
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        processor = StatsProcessor(db)
        if args.channel_only:
            result = processor.recalculate_channel_period_stats()
        else:
            result = processor.recompute_all()
    except Exception as e:
        db.rollback()
        log.error(f"Recompute failed: {str(e)}")
        sys.exit(1)
    finally:
        db.close()

    print("=" * 60)
    print(result)
    print("=" * 60)


if __name__ == "__main__":
    main()
