#!/usr/bin/env python3
"""Set a user's role by role abbreviation (idempotent).

Usage:
  python scripts/set_user_role.py --email someone@example.com --role SA
"""

import argparse
import os
import sys
from pathlib import Path

from sqlalchemy import func, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.portal.audit import record_event  # noqa: E402
from app.portal.models import Role, User  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--role", required=True, help="Role abbreviation, e.g. SA")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///portal.db").strip()
    with script_session(db_url) as s:
        user = s.scalars(select(User).where(func.lower(User.email) == args.email.strip().lower())).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        role = s.scalars(select(Role).where(Role.abbreviation == args.role.strip())).one_or_none()
        if not role:
            print(f"Role not found: {args.role}. Run python scripts/init_db.py first.")
            return
        if user.role_id == role.id:
            print(f"User already has role {role.name}: {args.email}")
            return
        previous = user.role_id
        user.role_id = role.id
        record_event(
            s,
            actor=None,
            action="user.role_change",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"before": previous, "after": role.id},
        )
        print(f"Role {role.name} set for {args.email}")


if __name__ == "__main__":
    main()
