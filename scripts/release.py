"""
Release phase for the portal: apply Alembic migrations, then seed the role
labels, their permission grants and the bootstrap administrator.

Safe to re-run; existing passwords are never overwritten.

Usage:
  python scripts/release.py [--migrate-only]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def release_database_url() -> str:
    """DATABASE_URL for the release; SQLite is refused when ENV is production."""
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set for the release phase.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Production releases need a Postgres DATABASE_URL, not SQLite.")
    return db_url


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release(*, seed: bool = True) -> None:
    db_url = release_database_url()

    print("Applying portal migrations...", flush=True)
    migrate(db_url)

    if seed:
        from scripts import init_db

        print("Seeding portal roles and administrator...", flush=True)
        init_db.seed_only(database_url=db_url)
    print("Portal release finished.", flush=True)


def main() -> None:
    ap = argparse.ArgumentParser(description="Migrate and seed the portal database.")
    ap.add_argument("--migrate-only", action="store_true", help="Skip seeding roles and the administrator.")
    args = ap.parse_args()
    run_release(seed=not args.migrate_only)


if __name__ == "__main__":
    main()
