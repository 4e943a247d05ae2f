#!/usr/bin/env python3
"""Grant a role label to an existing user (idempotent, audited).

Usage:
  python scripts/grant_role.py --email owner@example.com --role agency_owner
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.portal.constants import ROLE_ADMINISTRATOR, ROLES  # noqa: E402
from app.portal.models import Profile  # noqa: E402
from app.portal.rbac import assign_role, sync_roles_and_permissions  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--role", default=ROLE_ADMINISTRATOR, choices=sorted(ROLES), help="Role label to grant")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///portal.db").strip()
    with script_session(db_url) as s:
        sync_roles_and_permissions(s)
        user = s.query(Profile).filter(Profile.email == args.email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            sys.exit(1)
        if assign_role(s, user, args.role, actor=None):
            print(f"{ROLES[args.role]} role granted to {user.email}")
        else:
            print(f"{user.email} already has the {ROLES[args.role]} role")


if __name__ == "__main__":
    main()
