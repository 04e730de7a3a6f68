from __future__ import annotations

import io

from flask import Blueprint, current_app, g, request, send_file

from app.seacert.audit import record_event
from app.seacert.db import get_repository
from app.seacert.errors import ValidationError
from app.seacert.modules.documents.models import Document, DocumentVersion, ReviewComment
from app.seacert.modules.documents.service import (
    add_comment,
    assign_expert,
    get_document_for,
    list_comments,
    list_documents,
    list_versions,
    open_document_file,
    review_document,
    upload_new_version,
)
from app.seacert.modules.projects.models import Project
from app.seacert.rbac import require_permission
from app.seacert.storage import storage_from_config
from app.seacert.utils import isoformat, parse_bool, parse_datetime

bp = Blueprint("documents", __name__)


def document_json(d: Document, project: Project | None = None) -> dict:
    return {
        "id": d.id,
        "project_id": d.project_id,
        "project_title": project.title if project else None,
        "type": d.doc_type,
        "file_name": d.file_name,
        "file_url": d.file_url,
        "sha256": d.sha256,
        "size_bytes": d.size_bytes,
        "version": d.version,
        "status": d.status,
        "uploaded_by": d.uploaded_by,
        "uploaded_at": isoformat(d.uploaded_at),
        "reviewed_by": d.reviewed_by,
        "reviewed_at": isoformat(d.reviewed_at),
        "assigned_expert_id": d.assigned_expert_id,
        "assigned_expert_name": d.assigned_expert_name,
        "deadline": isoformat(d.deadline),
    }


def version_json(v: DocumentVersion) -> dict:
    return {
        "id": v.id,
        "document_id": v.document_id,
        "version": v.version,
        "file_name": v.file_name,
        "file_url": v.file_url,
        "changes": v.changes,
        "uploaded_by": v.uploaded_by,
        "uploaded_at": isoformat(v.uploaded_at),
    }


def comment_json(c: ReviewComment) -> dict:
    return {
        "id": c.id,
        "document_id": c.document_id,
        "user_id": c.user_id,
        "user_name": c.user_name,
        "user_role": c.user_role,
        "content": c.content,
        "is_internal": c.is_internal,
        "created_at": isoformat(c.created_at),
    }


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else dict(request.form)


@bp.get("/")
@require_permission("documents.view")
def list_view():
    repo = get_repository()
    project_id = request.args.get("project_id", type=int)
    docs = list_documents(
        repo,
        g.current_user,
        status=(request.args.get("status") or "").strip() or None,
        project_id=project_id,
        assigned_to_me=bool(parse_bool(request.args.get("mine"))),
    )
    projects = {p.id: p for p in repo.list(Project)}
    return {"documents": [document_json(d, projects.get(d.project_id)) for d in docs]}


@bp.get("/<int:doc_id>")
@require_permission("documents.view")
def detail_view(doc_id: int):
    repo = get_repository()
    d = get_document_for(repo, doc_id, g.current_user)
    out = document_json(d, repo.get(Project, d.project_id))
    out["versions"] = [version_json(v) for v in list_versions(repo, d)]
    return {"document": out}


@bp.post("/<int:doc_id>/versions")
@require_permission("documents.upload")
def upload_version_view(doc_id: int):
    repo = get_repository()
    d = get_document_for(repo, doc_id, g.current_user)

    f = request.files.get("file")
    if not f or not f.filename:
        raise ValidationError("Choose a file to upload.")

    storage = storage_from_config(current_app.config)
    upload_new_version(
        repo,
        storage,
        d,
        f.read(),
        f.filename,
        g.current_user,
        content_type=(f.mimetype or "application/octet-stream").strip(),
        changes=request.form.get("changes") or "",
    )
    repo.commit()
    return {"document": document_json(d, repo.get(Project, d.project_id))}, 201


@bp.post("/<int:doc_id>/assign")
@require_permission("documents.assign")
def assign_view(doc_id: int):
    repo = get_repository()
    d = get_document_for(repo, doc_id, g.current_user)
    data = _json_body()
    expert_id = data.get("expert_id")
    if expert_id in (None, ""):
        raise ValidationError("expert_id is required.")
    try:
        expert_id = int(expert_id)
    except (TypeError, ValueError):
        raise ValidationError("expert_id must be an integer.")
    try:
        deadline = parse_datetime(data.get("deadline"))
    except ValueError:
        raise ValidationError("Deadline must be an ISO-8601 date.")
    assign_expert(repo, d, expert_id, g.current_user, deadline=deadline)
    repo.commit()
    return {"document": document_json(d, repo.get(Project, d.project_id))}


@bp.post("/<int:doc_id>/review")
@require_permission("documents.review")
def review_view(doc_id: int):
    repo = get_repository()
    d = get_document_for(repo, doc_id, g.current_user)
    data = _json_body()
    review_document(repo, d, data.get("action") or "", g.current_user, comment=data.get("comment"))
    repo.commit()
    return {"document": document_json(d, repo.get(Project, d.project_id))}


@bp.get("/<int:doc_id>/comments")
@require_permission("documents.view")
def comments_view(doc_id: int):
    repo = get_repository()
    d = get_document_for(repo, doc_id, g.current_user)
    return {"comments": [comment_json(c) for c in list_comments(repo, d, g.current_user)]}


@bp.post("/<int:doc_id>/comments")
@require_permission("documents.comment")
def add_comment_view(doc_id: int):
    repo = get_repository()
    d = get_document_for(repo, doc_id, g.current_user)
    data = _json_body()
    c = add_comment(
        repo,
        d,
        data.get("content") or "",
        g.current_user,
        is_internal=bool(parse_bool(data.get("is_internal"))),
    )
    repo.commit()
    return {"comment": comment_json(c)}, 201


@bp.get("/<int:doc_id>/download")
@require_permission("documents.view")
def download_view(doc_id: int):
    repo = get_repository()
    d = get_document_for(repo, doc_id, g.current_user)
    storage = storage_from_config(current_app.config)
    data = open_document_file(storage, d)

    record_event(
        repo,
        actor=g.current_user,
        event_type="document_download",
        description=f"Downloaded {d.file_name} (v{d.version})",
        entity_type="document",
        entity_id=d.id,
    )
    repo.commit()

    return send_file(
        io.BytesIO(data),
        mimetype=d.content_type,
        as_attachment=True,
        download_name=d.file_name,
        max_age=0,
    )
