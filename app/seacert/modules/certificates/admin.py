from __future__ import annotations

from flask import Blueprint, current_app, g, request

from app.seacert.db import get_repository
from app.seacert.errors import NotFoundError, ValidationError
from app.seacert.models import STAFF_ROLES
from app.seacert.modules.certificates.models import Certificate, DigitalSignature
from app.seacert.modules.certificates.service import (
    get_certificate,
    get_certificate_for_project,
    issue_certificate,
    list_certificates,
    list_signatures,
    revoke_certificate,
    verify_certificate,
)
from app.seacert.modules.projects.models import Project
from app.seacert.modules.projects.service import get_project_for
from app.seacert.rbac import require_permission
from app.seacert.repository import Repository
from app.seacert.utils import isoformat

bp = Blueprint("certificates", __name__)


def signature_json(sig: DigitalSignature) -> dict:
    return {
        "id": sig.id,
        "user_id": sig.user_id,
        "user_name": sig.user_name,
        "level": sig.level,
        "timestamp": isoformat(sig.timestamp),
        "certificate_id": sig.certificate_id,
    }


def certificate_json(repo: Repository, c: Certificate) -> dict:
    return {
        "id": c.id,
        "certificate_number": c.certificate_number,
        "project_id": c.project_id,
        "project_title": c.project_title,
        "issue_date": isoformat(c.issue_date),
        "expiry_date": isoformat(c.expiry_date),
        "status": c.status,
        "issued_by": c.issued_by,
        "verification_code": c.verification_code,
        "digital_signatures": [signature_json(s) for s in list_signatures(repo, c)],
    }


def _visible_project_ids(repo: Repository) -> set[int] | None:
    user = g.current_user
    if user.role in STAFF_ROLES:
        return None
    return {p.id for p in repo.list(Project, client_user_id=user.id)}


@bp.get("/")
@require_permission("certificates.view")
def list_view():
    repo = get_repository()
    status = (request.args.get("status") or "").strip() or None
    certs = list_certificates(repo, status=status, project_ids=_visible_project_ids(repo))
    return {"certificates": [certificate_json(repo, c) for c in certs]}


@bp.post("/")
@require_permission("certificates.issue")
def issue_view():
    repo = get_repository()
    data = request.get_json(silent=True) or {}
    try:
        project_id = int(data.get("project_id"))
    except (TypeError, ValueError):
        raise ValidationError("project_id is required.")

    cfg = current_app.config
    cert = issue_certificate(
        repo,
        project_id,
        g.current_user,
        number_prefix=cfg.get("CERTIFICATE_NUMBER_PREFIX") or "SEA",
        validity_days=int(cfg.get("CERTIFICATE_VALIDITY_DAYS") or 365),
        require_approved_documents=bool(cfg.get("CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS")),
    )
    repo.commit()
    return {"certificate": certificate_json(repo, cert)}, 201


@bp.get("/<int:certificate_id>")
@require_permission("certificates.view")
def detail_view(certificate_id: int):
    repo = get_repository()
    cert = get_certificate(repo, certificate_id)
    visible = _visible_project_ids(repo)
    if visible is not None and cert.project_id not in visible:
        raise NotFoundError("Certificate not found.")
    return {"certificate": certificate_json(repo, cert)}


@bp.get("/project/<int:project_id>")
@require_permission("certificates.view")
def for_project_view(project_id: int):
    repo = get_repository()
    project = get_project_for(repo, project_id, g.current_user)
    cert = get_certificate_for_project(repo, project.id)
    return {"certificate": certificate_json(repo, cert) if cert else None}


@bp.post("/<int:certificate_id>/revoke")
@require_permission("certificates.revoke")
def revoke_view(certificate_id: int):
    repo = get_repository()
    cert = get_certificate(repo, certificate_id)
    data = request.get_json(silent=True) or {}
    revoke_certificate(repo, cert, g.current_user, data.get("reason") or "")
    repo.commit()
    return {"certificate": certificate_json(repo, cert)}


@bp.get("/verify/<string:number>")
def verify_view(number: str):
    """Public lookup used by the QR code on printed certificates."""
    repo = get_repository()
    cert = verify_certificate(repo, number)
    if cert is None:
        return {"valid": False, "certificate": None}, 404
    return {"valid": cert.status == "active", "certificate": certificate_json(repo, cert)}
