#!/usr/bin/env python3
"""
Grant a role to an existing identity.

Used to seed the first superadmin, who can then bootstrap organizations.

Usage:
    python scripts/grant_role.py admin@example.com superadmin
"""

import argparse
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.database.database import SessionLocal
from src.monitoring.logging_config import configure_logging
from src.services.credentials import get_credential_backend
from src.services.role_service import RoleService
from src.templates.role_definitions import AppRole


def main() -> int:
    parser = argparse.ArgumentParser(description="Grant a role to an identity")
    parser.add_argument("email", help="Email of the identity")
    parser.add_argument("role", choices=[role.value for role in AppRole], help="Role to grant")
    args = parser.parse_args()

    configure_logging()
    db = SessionLocal()
    try:
        identity = get_credential_backend(db).find_identity_by_email(args.email)
        if not identity:
            print(f"No identity found for {args.email}", file=sys.stderr)
            return 1
        RoleService(db).grant_role(identity.id, args.role)
    finally:
        db.close()

    print(f"Granted {args.role} to {args.email} ({identity.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
