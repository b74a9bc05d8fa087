#!/usr/bin/env python3
"""
Mark overdue pending invitations as expired.

Meant to run on a schedule (cron, Kubernetes CronJob). Acceptance already
rejects overdue invitations on its own; this keeps stored statuses honest
for listings.

Usage:
    python scripts/expire_invitations.py
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.database.database import SessionLocal
from src.monitoring.logging_config import configure_logging
from src.services.invitation_service import InvitationService


def main() -> int:
    configure_logging()
    db = SessionLocal()
    try:
        count = InvitationService.expire_stale_invitations(db)
    finally:
        db.close()
    print(f"Expired {count} invitation(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
