from __future__ import annotations

from flask import Blueprint, current_app, g, request

from app.seacert.db import get_repository
from app.seacert.errors import ValidationError
from app.seacert.modules.documents.admin import document_json
from app.seacert.modules.documents.service import list_project_documents, upload_document
from app.seacert.modules.projects.models import Project
from app.seacert.modules.projects.service import (
    VALID_STATUSES,
    archive_project,
    create_project,
    get_project_for,
    list_projects,
    reject_project,
    submit_project,
    update_project,
)
from app.seacert.rbac import require_permission
from app.seacert.storage import storage_from_config
from app.seacert.utils import isoformat, parse_bool, parse_datetime

bp = Blueprint("projects", __name__)


def project_json(p: Project) -> dict:
    return {
        "id": p.id,
        "code": p.code,
        "title": p.title,
        "description": p.description,
        "organizational_unit": p.organizational_unit,
        "status": p.status,
        "is_fast_track": p.is_fast_track,
        "client_id": p.client_user_id,
        "client_name": p.client_name,
        "created_at": isoformat(p.created_at),
        "updated_at": isoformat(p.updated_at),
        "deadline": isoformat(p.deadline),
    }


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else dict(request.form)


@bp.get("/")
@require_permission("projects.view")
def list_view():
    status = (request.args.get("status") or "").strip() or None
    if status and status not in VALID_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    try:
        date_from = parse_datetime(request.args.get("date_from"))
        date_to = parse_datetime(request.args.get("date_to"))
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 dates.")

    projects = list_projects(
        get_repository(),
        g.current_user,
        status=status,
        is_fast_track=parse_bool(request.args.get("fast_track")),
        search=(request.args.get("search") or "").strip() or None,
        date_from=date_from,
        date_to=date_to,
    )
    return {"projects": [project_json(p) for p in projects]}


@bp.post("/")
@require_permission("projects.create")
def create_view():
    repo = get_repository()
    p = create_project(
        repo,
        _json_body(),
        g.current_user,
        code_prefix=current_app.config.get("PROJECT_CODE_PREFIX") or "MRN",
    )
    repo.commit()
    return {"project": project_json(p)}, 201


@bp.get("/<int:project_id>")
@require_permission("projects.view")
def detail_view(project_id: int):
    repo = get_repository()
    p = get_project_for(repo, project_id, g.current_user)
    return {
        "project": project_json(p),
        "documents": [document_json(d, p) for d in list_project_documents(repo, p.id)],
    }


@bp.patch("/<int:project_id>")
@require_permission("projects.edit")
def update_view(project_id: int):
    repo = get_repository()
    p = get_project_for(repo, project_id, g.current_user)
    update_project(repo, p, _json_body(), g.current_user)
    repo.commit()
    return {"project": project_json(p)}


@bp.post("/<int:project_id>/submit")
@require_permission("projects.submit")
def submit_view(project_id: int):
    repo = get_repository()
    p = get_project_for(repo, project_id, g.current_user)
    submit_project(repo, p, g.current_user)
    repo.commit()
    return {"project": project_json(p)}


@bp.post("/<int:project_id>/reject")
@require_permission("projects.reject")
def reject_view(project_id: int):
    repo = get_repository()
    p = get_project_for(repo, project_id, g.current_user)
    reject_project(repo, p, g.current_user, _json_body().get("reason") or "")
    repo.commit()
    return {"project": project_json(p)}


@bp.post("/<int:project_id>/archive")
@require_permission("projects.archive")
def archive_view(project_id: int):
    repo = get_repository()
    p = get_project_for(repo, project_id, g.current_user)
    archive_project(repo, p, g.current_user)
    repo.commit()
    return {"project": project_json(p)}


@bp.get("/<int:project_id>/documents")
@require_permission("documents.view")
def documents_view(project_id: int):
    repo = get_repository()
    p = get_project_for(repo, project_id, g.current_user)
    return {"documents": [document_json(d, p) for d in list_project_documents(repo, p.id)]}


@bp.post("/<int:project_id>/documents")
@require_permission("documents.upload")
def upload_view(project_id: int):
    repo = get_repository()
    p = get_project_for(repo, project_id, g.current_user)

    f = request.files.get("file")
    if not f or not f.filename:
        raise ValidationError("Choose a file to upload.")
    try:
        deadline = parse_datetime(request.form.get("deadline"))
    except ValueError:
        raise ValidationError("Deadline must be an ISO-8601 date.")

    storage = storage_from_config(current_app.config)
    d = upload_document(
        repo,
        storage,
        p,
        f.read(),
        f.filename,
        g.current_user,
        content_type=(f.mimetype or "application/octet-stream").strip(),
        doc_type=request.form.get("type"),
        deadline=deadline,
    )
    repo.commit()
    return {"document": document_json(d, p)}, 201
