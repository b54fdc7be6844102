"""
NOVA Maintenance — scheduled housekeeping
==========================================
Standalone entry point.  Run on a schedule (cron, CI) to:
  1. Delete burn messages older than 24 hours (unless saved or pinned)
  2. Recompute active goals from workout and meal history

Usage:
    python maintenance.py                 # Both steps
    python maintenance.py --cleanup-only  # Burn messages only
    python maintenance.py --sync-only     # Goal sync only
"""

from __future__ import annotations

import argparse
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("maintenance")

from pipeline.maintenance_pipeline import MaintenancePipeline  # noqa: E402
from platform_client import PlatformClient  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="NOVA maintenance job")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--cleanup-only", action="store_true",
                       help="Only delete expired burn messages")
    group.add_argument("--sync-only", action="store_true",
                       help="Only reconcile goals")
    args = parser.parse_args(argv)

    pipeline = MaintenancePipeline(PlatformClient())
    success = pipeline.run(skip_cleanup=args.sync_only, skip_sync=args.cleanup_only)
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
