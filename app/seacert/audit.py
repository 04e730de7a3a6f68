from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from flask import g, has_request_context, request

from app.seacert.models import AuditEvent, User
from app.seacert.repository import Repository
from app.seacert.utils import utcnow


def record_event(
    repo: Repository,
    *,
    actor: User | None,
    event_type: str,
    description: str = "",
    entity_type: str | None = None,
    entity_id: str | int | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.
    """
    rid = request_id
    ip = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        ip = request.remote_addr
    ev = AuditEvent(
        created_at=utcnow(),
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_name=actor.name if actor else None,
        actor_role=actor.role if actor else None,
        event_type=event_type,
        description=description,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip_address=ip,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
    )
    return repo.add(ev)


def list_events(
    repo: Repository,
    *,
    event_type: str | None = None,
    user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[AuditEvent]:
    """Filtered audit trail, newest first."""
    equals: dict[str, Any] = {}
    if event_type:
        equals["event_type"] = event_type
    if user_id is not None:
        equals["actor_user_id"] = user_id
    events = repo.list(AuditEvent, **equals)
    if date_from is not None:
        events = [e for e in events if e.created_at >= date_from]
    if date_to is not None:
        events = [e for e in events if e.created_at <= date_to]
    return sorted(events, key=lambda e: (e.created_at, e.id), reverse=True)
