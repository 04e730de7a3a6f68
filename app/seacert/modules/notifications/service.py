from __future__ import annotations

from typing import TYPE_CHECKING

from app.seacert.errors import NotFoundError, ValidationError
from app.seacert.utils import utcnow

from .models import Notification

if TYPE_CHECKING:
    from app.seacert.models import User
    from app.seacert.repository import Repository


VALID_TYPES = ("task", "warning", "info", "success")


def notify(
    repo: "Repository",
    user_id: int | None,
    *,
    type: str,
    title: str,
    message: str = "",
    link: str | None = None,
) -> Notification | None:
    """Queue an in-app notification. A missing recipient is silently skipped."""
    if user_id is None:
        return None
    if type not in VALID_TYPES:
        raise ValidationError(f"Invalid notification type. Must be one of: {', '.join(VALID_TYPES)}")
    n = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        link=link,
        is_read=False,
        created_at=utcnow(),
    )
    return repo.add(n)


def notify_role(repo: "Repository", role: str, **kwargs) -> list[Notification]:
    from app.seacert.models import User

    out = []
    for u in repo.list(User, role=role, is_active=True):
        n = notify(repo, u.id, **kwargs)
        if n is not None:
            out.append(n)
    return out


def list_notifications(repo: "Repository", user: "User", *, unread_only: bool = False) -> list[Notification]:
    """The user's notifications, newest first."""
    equals: dict[str, object] = {"user_id": user.id}
    if unread_only:
        equals["is_read"] = False
    rows = repo.list(Notification, **equals)
    return sorted(rows, key=lambda n: (n.created_at, n.id), reverse=True)


def mark_read(repo: "Repository", notification_id: int, user: "User") -> bool:
    """
    Mark one notification read. Returns True only when the flag actually
    changed, so repeating the call is a no-op.
    """
    n = repo.get(Notification, notification_id)
    if n is None or n.user_id != user.id:
        raise NotFoundError("Notification not found.")
    if n.is_read:
        return False
    repo.update(n, is_read=True)
    return True


def mark_all_read(repo: "Repository", user: "User") -> int:
    changed = 0
    for n in repo.list(Notification, user_id=user.id, is_read=False):
        repo.update(n, is_read=True)
        changed += 1
    return changed
