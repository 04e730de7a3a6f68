"""
Project service layer.
Handles project creation, filtering, edits and the project status lifecycle.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.seacert.audit import record_event
from app.seacert.errors import NotFoundError, PermissionDeniedError, ValidationError, WorkflowError
from app.seacert.models import STAFF_ROLES
from app.seacert.utils import next_sequential_code, parse_datetime, utcnow

from .models import Project

if TYPE_CHECKING:
    from app.seacert.models import User
    from app.seacert.repository import Repository

logger = logging.getLogger(__name__)

VALID_STATUSES = ("draft", "under_review", "approved", "rejected", "archived")

# Explicit transitions. "approved" is only reached through certificate issuance
# (see mark_approved), never through this table.
STATUS_TRANSITIONS = {
    "draft": {"under_review"},
    "under_review": {"rejected"},
    "approved": {"archived"},
    "rejected": {"archived"},
    "archived": set(),
}

CODE_WIDTH = 3


def validate_project_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate project creation/update payload. Returns list of errors."""
    errors = []
    title = (payload.get("title") or "").strip()
    if not partial and not title:
        errors.append("Title is required.")
    if partial and "title" in payload and not title:
        errors.append("Title cannot be blank.")
    deadline = payload.get("deadline")
    if deadline:
        try:
            parse_datetime(deadline)
        except ValueError:
            errors.append("Deadline must be an ISO-8601 date.")
    return errors


def next_project_code(repo: "Repository", prefix: str = "MRN") -> str:
    return next_sequential_code((p.code for p in repo.list(Project)), prefix=prefix, width=CODE_WIDTH)


def _check_fast_track(user: "User", requested: bool) -> None:
    if not requested:
        return
    if user.role == "client" and not user.can_request_fast_track:
        raise PermissionDeniedError("Fast-track review requires permission from a manager.")


def create_project(repo: "Repository", payload: dict, user: "User", *, code_prefix: str = "MRN") -> Project:
    """Create a new draft project owned by the acting user."""
    errors = validate_project_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    is_fast_track = bool(payload.get("is_fast_track"))
    _check_fast_track(user, is_fast_track)

    now = utcnow()
    project = Project(
        code=next_project_code(repo, code_prefix),
        title=(payload.get("title") or "").strip(),
        description=(payload.get("description") or "").strip(),
        organizational_unit=(payload.get("organizational_unit") or user.organizational_unit or "").strip(),
        status="draft",
        is_fast_track=is_fast_track,
        client_user_id=user.id,
        client_name=user.name,
        deadline=parse_datetime(payload.get("deadline")),
        created_at=now,
        updated_at=now,
    )
    repo.add(project)

    record_event(
        repo,
        actor=user,
        event_type="project_create",
        description=f"Created project {project.code}",
        entity_type="project",
        entity_id=project.id,
        metadata={"code": project.code, "title": project.title, "is_fast_track": project.is_fast_track},
    )
    logger.info("project created code=%s by user_id=%s", project.code, user.id)
    return project


def get_project(repo: "Repository", project_id: int) -> Project:
    project = repo.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project not found.")
    return project


def can_view_project(user: "User", project: Project) -> bool:
    if user.role in STAFF_ROLES:
        return True
    return project.client_user_id == user.id


def get_project_for(repo: "Repository", project_id: int, user: "User") -> Project:
    """get_project, but a client asking for someone else's project gets NotFound."""
    project = get_project(repo, project_id)
    if not can_view_project(user, project):
        raise NotFoundError("Project not found.")
    return project


def list_projects(
    repo: "Repository",
    user: "User | None" = None,
    *,
    status: str | None = None,
    is_fast_track: bool | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[Project]:
    """Projects matching every given filter, in creation order."""
    projects = repo.list(Project)
    if user is not None and user.role not in STAFF_ROLES:
        projects = [p for p in projects if p.client_user_id == user.id]
    if status:
        projects = [p for p in projects if p.status == status]
    if is_fast_track is not None:
        projects = [p for p in projects if p.is_fast_track == is_fast_track]
    if search:
        needle = search.strip().lower()
        projects = [p for p in projects if needle in p.title.lower() or needle in p.code.lower()]
    if date_from is not None:
        projects = [p for p in projects if p.created_at >= date_from]
    if date_to is not None:
        projects = [p for p in projects if p.created_at <= date_to]
    return projects


def update_project(repo: "Repository", project: Project, payload: dict, user: "User") -> Project:
    """Update editable project fields (never status or code)."""
    if user.role == "client" and project.client_user_id != user.id:
        raise NotFoundError("Project not found.")
    if project.status in ("approved", "archived"):
        raise WorkflowError(f"Project {project.code} is {project.status} and can no longer be edited.")

    errors = validate_project_payload(payload, partial=True)
    if errors:
        raise ValidationError(" ".join(errors))

    values: dict[str, object] = {}
    changes = {}

    if "title" in payload:
        new_title = (payload.get("title") or "").strip()
        if new_title != project.title:
            values["title"] = new_title
            changes["title"] = {"old": project.title, "new": new_title}

    if "description" in payload:
        new_description = (payload.get("description") or "").strip()
        if new_description != project.description:
            values["description"] = new_description
            changes["description"] = {"old": "...", "new": "..."}  # Don't log full text

    if "organizational_unit" in payload:
        new_unit = (payload.get("organizational_unit") or "").strip()
        if new_unit != project.organizational_unit:
            values["organizational_unit"] = new_unit
            changes["organizational_unit"] = {"old": project.organizational_unit, "new": new_unit}

    if "deadline" in payload:
        new_deadline = parse_datetime(payload.get("deadline"))
        if new_deadline != project.deadline:
            values["deadline"] = new_deadline
            changes["deadline"] = {"old": str(project.deadline), "new": str(new_deadline)}

    if "is_fast_track" in payload:
        new_fast_track = bool(payload.get("is_fast_track"))
        if new_fast_track != project.is_fast_track:
            values["is_fast_track"] = new_fast_track
            changes["is_fast_track"] = {"old": project.is_fast_track, "new": new_fast_track}

    if not values:
        return project

    # Nothing is written until every check has passed.
    if "is_fast_track" in values:
        _check_fast_track(user, bool(values["is_fast_track"]))

    repo.update(project, **values, updated_at=utcnow())
    record_event(
        repo,
        actor=user,
        event_type="project_update",
        description=f"Updated project {project.code}",
        entity_type="project",
        entity_id=project.id,
        metadata={"code": project.code, "changes": changes},
    )
    return project


def can_transition_to(project: Project, new_status: str) -> tuple[bool, list[str]]:
    """Check if project can move to new_status through an explicit action."""
    errors = []

    if project.status not in STATUS_TRANSITIONS:
        errors.append(f"Current status '{project.status}' is invalid")
        return False, errors

    if new_status not in STATUS_TRANSITIONS[project.status]:
        errors.append(f"Cannot transition from '{project.status}' to '{new_status}'")
        return False, errors

    return True, []


def _transition(repo: "Repository", project: Project, new_status: str, user: "User", *, event_type: str, reason: str | None) -> Project:
    ok, errors = can_transition_to(project, new_status)
    if not ok:
        raise WorkflowError("; ".join(errors))

    old_status = project.status
    repo.update(project, status=new_status, updated_at=utcnow())
    record_event(
        repo,
        actor=user,
        event_type=event_type,
        description=reason or f"Project {project.code}: {old_status} -> {new_status}",
        entity_type="project",
        entity_id=project.id,
        metadata={"code": project.code, "from": old_status, "to": new_status},
    )
    return project


def submit_project(repo: "Repository", project: Project, user: "User") -> Project:
    """draft -> under_review."""
    if user.role == "client" and project.client_user_id != user.id:
        raise NotFoundError("Project not found.")
    return _transition(repo, project, "under_review", user, event_type="project_submit", reason=None)


def reject_project(repo: "Repository", project: Project, user: "User", reason: str) -> Project:
    """under_review -> rejected (managers only)."""
    if user.role != "manager":
        raise PermissionDeniedError("Only managers may reject a project.")
    if not (reason or "").strip():
        raise ValidationError("Rejecting a project requires a reason.")
    return _transition(repo, project, "rejected", user, event_type="project_reject", reason=reason.strip())


def archive_project(repo: "Repository", project: Project, user: "User") -> Project:
    """approved | rejected -> archived."""
    return _transition(repo, project, "archived", user, event_type="project_archive", reason=None)


def mark_approved(repo: "Repository", project: Project) -> Project:
    """Certificate issuance side effect; bypasses the transition table."""
    repo.update(project, status="approved", updated_at=utcnow())
    return project
