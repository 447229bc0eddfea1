#!/usr/bin/env python3
"""
Deactivation Run
Archives and deactivates every account whose grace period has ended.

Intended for cron (once daily). Exits non-zero when any account failed;
failed accounts stay due and are retried on the next run.

Usage:
    python -m scripts.process_deactivations [--dry-run]
"""
import json
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ezapply.database import SessionLocal
from ezapply.logging_config import configure_logging
from ezapply.services.lifecycle import DeactivationScheduler


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if any(arg not in ("--dry-run",) for arg in argv):
        print(__doc__)
        return 2

    configure_logging()
    db = SessionLocal()
    try:
        scheduler = DeactivationScheduler(db)

        if "--dry-run" in argv:
            due = scheduler.due_accounts()
            print(f"{len(due)} account(s) due for deactivation")
            for user in due:
                print(f"  {user.id}  {user.email}  scheduled {user.deactivation_scheduled_at.isoformat()}")
            return 0

        report = scheduler.run()
        print(json.dumps(report, indent=2, default=str))
        return 1 if report["errors"] else 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
