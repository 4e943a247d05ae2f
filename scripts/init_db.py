import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.portal.constants import ROLE_ADMINISTRATOR  # noqa: E402
from app.portal.models import Profile  # noqa: E402
from app.portal.rbac import sync_roles_and_permissions  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///portal.db").strip()

    # Direct engine/session so release can run this without importing app.wsgi.
    with script_session(db_url) as s:
        roles = sync_roles_and_permissions(s)

        admin = s.query(Profile).filter(Profile.email == admin_email).one_or_none()
        if not admin:
            admin = Profile(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                first_name="Portal",
                last_name="Administrator",
                is_active=True,
            )
            s.add(admin)
            print(f"Created admin user {admin_email}", flush=True)
        if roles[ROLE_ADMINISTRATOR] not in admin.roles:
            admin.roles.append(roles[ROLE_ADMINISTRATOR])


def main() -> None:
    from alembic import command
    from alembic.config import Config

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///portal.db").strip()
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")
    seed_only(database_url=db_url)
    print("Initialized DB + seeded roles and admin user.", flush=True)


if __name__ == "__main__":
    main()
