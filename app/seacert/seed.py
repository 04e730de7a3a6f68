"""
Idempotent demo accounts, one per role.

Used by scripts/init_db.py and by the in-memory repository on startup.
Existing users are never modified (passwords are not overwritten).
"""

from __future__ import annotations

import logging

from werkzeug.security import generate_password_hash

from app.seacert.credentials import new_otp_secret
from app.seacert.models import User
from app.seacert.repository import Repository
from app.seacert.utils import utcnow

logger = logging.getLogger(__name__)

DEMO_USERS = (
    # username, email, name, role, organizational unit, has_2fa
    ("expert1", "expert@example.com", "Ali Ahmadi", "expert", "Technical Unit", True),
    ("manager1", "manager@example.com", "Mohammad Rezaei", "manager", "Management", True),
    ("admin1", "admin@example.com", "Sara Mohammadi", "admin", "System Administration", False),
    ("client1", "client@example.com", "Hossein Karimi", "client", "Arya Marine Engineering", False),
)


def seed_demo_users(repo: Repository, *, password: str) -> list[User]:
    created = []
    for username, email, name, role, unit, has_2fa in DEMO_USERS:
        if repo.first(User, username=username) is not None:
            continue
        u = User(
            username=username,
            email=email,
            name=name,
            role=role,
            organizational_unit=unit,
            password_hash=generate_password_hash(password),
            has_2fa=has_2fa,
            otp_secret=new_otp_secret() if has_2fa else None,
            is_active=True,
            can_request_fast_track=False,
            created_at=utcnow(),
        )
        repo.add(u)
        created.append(u)
        logger.info("seeded demo user %s (%s)", username, role)
    return created
