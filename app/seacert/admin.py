from __future__ import annotations

from flask import Blueprint, g, request

from app.seacert.audit import list_events, record_event
from app.seacert.auth import user_json
from app.seacert.dashboard import dashboard_stats
from app.seacert.db import get_repository
from app.seacert.errors import NotFoundError, ValidationError
from app.seacert.models import ROLES, AuditEvent, User
from app.seacert.modules.notifications.service import notify
from app.seacert.rbac import require_permission
from app.seacert.repository import Repository
from app.seacert.utils import isoformat, parse_bool, parse_datetime

bp = Blueprint("admin", __name__)


def _get_user(repo: Repository, user_id: int) -> User:
    u = repo.get(User, user_id)
    if u is None:
        raise NotFoundError("User not found.")
    return u


def update_user_role(repo: Repository, user_id: int, role: str, actor: User) -> User:
    role = (role or "").strip().lower()
    if role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    u = _get_user(repo, user_id)
    if u.role == role:
        return u
    old_role = u.role
    repo.update(u, role=role)
    record_event(
        repo,
        actor=actor,
        event_type="user_role_change",
        description=f"Changed role of {u.username}: {old_role} -> {role}",
        entity_type="user",
        entity_id=u.id,
        metadata={"from": old_role, "to": role},
    )
    return u


def set_fast_track_permission(repo: Repository, user_id: int, allowed: bool, actor: User) -> User:
    u = _get_user(repo, user_id)
    if u.role != "client":
        raise ValidationError("Fast-track permission applies to client accounts only.")
    if u.can_request_fast_track == allowed:
        return u
    repo.update(u, can_request_fast_track=allowed)
    record_event(
        repo,
        actor=actor,
        event_type="fast_track_permission",
        description=f"{'Granted' if allowed else 'Revoked'} fast-track permission for {u.username}",
        entity_type="user",
        entity_id=u.id,
        metadata={"can_request_fast_track": allowed},
    )
    notify(
        repo,
        u.id,
        type="info",
        title="Fast-track permission updated",
        message="You may now request fast-track review." if allowed else "Fast-track review is no longer available.",
    )
    return u


def audit_event_json(e: AuditEvent) -> dict:
    return {
        "id": e.id,
        "user_id": e.actor_user_id,
        "user_name": e.actor_name,
        "user_role": e.actor_role,
        "event_type": e.event_type,
        "description": e.description,
        "entity_type": e.entity_type,
        "entity_id": e.entity_id,
        "timestamp": isoformat(e.created_at),
        "ip_address": e.ip_address,
    }


@bp.get("/dashboard")
@require_permission("dashboard.view")
def dashboard():
    return {"role": g.current_user.role, "stats": dashboard_stats(get_repository(), g.current_user)}


@bp.get("/users")
@require_permission("users.view")
def list_users():
    repo = get_repository()
    users = repo.list(User)
    role = (request.args.get("role") or "").strip()
    if role:
        users = [u for u in users if u.role == role]
    return {"users": [user_json(u) for u in users]}


@bp.patch("/users/<int:user_id>/role")
@require_permission("users.role")
def change_role(user_id: int):
    repo = get_repository()
    data = request.get_json(silent=True) or {}
    u = update_user_role(repo, user_id, data.get("role") or "", g.current_user)
    repo.commit()
    return {"user": user_json(u)}


@bp.patch("/users/<int:user_id>/fast-track")
@require_permission("users.fast_track")
def change_fast_track(user_id: int):
    repo = get_repository()
    data = request.get_json(silent=True) or {}
    allowed = parse_bool(data.get("can_request_fast_track"))
    if allowed is None:
        raise ValidationError("can_request_fast_track is required.")
    u = set_fast_track_permission(repo, user_id, allowed, g.current_user)
    repo.commit()
    return {"user": user_json(u)}


@bp.get("/audit")
@require_permission("audit.view")
def audit_log():
    try:
        date_from = parse_datetime(request.args.get("date_from"))
        date_to = parse_datetime(request.args.get("date_to"))
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 dates.")
    events = list_events(
        get_repository(),
        event_type=(request.args.get("event_type") or "").strip() or None,
        user_id=request.args.get("user_id", type=int),
        date_from=date_from,
        date_to=date_to,
    )
    return {"events": [audit_event_json(e) for e in events]}
