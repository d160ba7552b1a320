import os
import sys
from pathlib import Path

from sqlalchemy import select
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.portal.models import User  # noqa: E402
from app.portal.modules.access_control.seed import seed_catalogue, seed_roles, seed_superadmin_grants  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed roles, the module/tab catalogue, SuperAdmin grants and the admin user.
    Idempotent. Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@portal.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///portal.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        roles = seed_roles(s)
        superadmin = roles["SA"]

        user = s.scalars(select(User).where(User.email == admin_email)).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                is_active=True,
                role_id=superadmin.id,
            )
            s.add(user)
            s.flush()

        seed_catalogue(s)
        seed_superadmin_grants(s, superadmin.id, include_access_control=True, actor=user)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
