import argparse
import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.seacert.repository import SqlRepository
from app.seacert.seed import DEMO_USERS, seed_demo_users
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None, create_tables: bool = False) -> None:
    """
    Seed one demo account per role in an idempotent way.
    Does NOT overwrite an existing user's password.
    """
    password = os.environ.get("DEMO_PASSWORD") or "password"
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///seacert.db").strip()

    with script_session(db_url, create_tables=create_tables) as s:
        created = seed_demo_users(SqlRepository(s), password=password)

    print(f"Initialized database (seed_only); {len(created)} new user(s).")
    for username, email, _name, role, _unit, has_2fa in DEMO_USERS:
        print(f"  {role:<8} {username} <{email}>{' [2FA]' if has_2fa else ''}")
    print("Password: (from DEMO_PASSWORD)")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo users.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="create missing tables directly from the models (local sqlite only; use alembic elsewhere)",
    )
    args = parser.parse_args()
    seed_only(database_url=None, create_tables=args.create_tables)


if __name__ == "__main__":
    main()
