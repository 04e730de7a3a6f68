from __future__ import annotations

from flask import Blueprint, g, request

from app.seacert.db import get_repository
from app.seacert.modules.notifications.models import Notification
from app.seacert.modules.notifications.service import list_notifications, mark_all_read, mark_read
from app.seacert.rbac import require_permission
from app.seacert.utils import isoformat, parse_bool

bp = Blueprint("notifications", __name__)


def notification_json(n: Notification) -> dict:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "link": n.link,
        "is_read": n.is_read,
        "created_at": isoformat(n.created_at),
    }


@bp.get("/")
@require_permission("notifications.view")
def list_view():
    repo = get_repository()
    unread_only = bool(parse_bool(request.args.get("unread")))
    rows = list_notifications(repo, g.current_user, unread_only=unread_only)
    return {"notifications": [notification_json(n) for n in rows], "unread": sum(1 for n in rows if not n.is_read)}


@bp.post("/<int:notification_id>/read")
@require_permission("notifications.view")
def mark_read_view(notification_id: int):
    repo = get_repository()
    changed = mark_read(repo, notification_id, g.current_user)
    repo.commit()
    return {"ok": True, "changed": changed}


@bp.post("/read-all")
@require_permission("notifications.view")
def mark_all_read_view():
    repo = get_repository()
    changed = mark_all_read(repo, g.current_user)
    repo.commit()
    return {"ok": True, "changed": changed}
