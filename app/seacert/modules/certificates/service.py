"""
Certificate issuance, lookup and revocation.

Issuing a certificate is the only way a project becomes "approved".
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from app.seacert.audit import record_event
from app.seacert.errors import NotFoundError, PermissionDeniedError, ValidationError, WorkflowError
from app.seacert.modules.documents.models import Document
from app.seacert.modules.notifications.service import notify
from app.seacert.modules.projects.service import get_project, mark_approved
from app.seacert.utils import next_sequential_code, utcnow

from .models import Certificate, DigitalSignature

if TYPE_CHECKING:
    from app.seacert.models import User
    from app.seacert.repository import Repository

logger = logging.getLogger(__name__)

VALID_STATUSES = ("active", "revoked", "superseded")
# Issuance is signed at manager level.
ISSUER_SIGNATURE_LEVEL = "level2"
ISSUER_ROLES = ("manager", "admin")

NUMBER_WIDTH = 6


def next_certificate_number(repo: "Repository", prefix: str = "SEA") -> str:
    return next_sequential_code(
        (c.certificate_number for c in repo.list(Certificate)),
        prefix=prefix,
        width=NUMBER_WIDTH,
    )


def verification_code_for(certificate_number: str) -> str:
    return f"QR-{certificate_number}"


def unapproved_documents(repo: "Repository", project_id: int) -> list[Document]:
    return [d for d in repo.list(Document, project_id=project_id) if d.status != "final_approved"]


def issue_certificate(
    repo: "Repository",
    project_id: int,
    user: "User",
    *,
    number_prefix: str = "SEA",
    validity_days: int = 365,
    require_approved_documents: bool = False,
) -> Certificate:
    """
    Issue a certificate for a project and approve the project.

    Any certificate of the project that is still active is superseded.
    With require_approved_documents, every document of the project must be
    final_approved (and there must be at least one).
    """
    if user.role not in ISSUER_ROLES:
        raise PermissionDeniedError("Only managers and administrators may issue certificates.")

    project = get_project(repo, project_id)

    if require_approved_documents:
        docs = repo.list(Document, project_id=project.id)
        if not docs:
            raise WorkflowError(f"Project {project.code} has no documents to certify.")
        pending = unapproved_documents(repo, project.id)
        if pending:
            names = ", ".join(d.file_name for d in pending)
            raise WorkflowError(f"Documents without final approval: {names}")

    now = utcnow()
    number = next_certificate_number(repo, number_prefix)

    superseded = []
    for old in repo.list(Certificate, project_id=project.id, status="active"):
        repo.update(old, status="superseded")
        superseded.append(old.certificate_number)

    cert = Certificate(
        certificate_number=number,
        project_id=project.id,
        project_title=project.title,
        issue_date=now,
        expiry_date=now + timedelta(days=validity_days),
        status="active",
        issued_by=user.name,
        issued_by_user_id=user.id,
        verification_code=verification_code_for(number),
    )
    repo.add(cert)
    repo.add(
        DigitalSignature(
            certificate_id=cert.id,
            user_id=user.id,
            user_name=user.name,
            level=ISSUER_SIGNATURE_LEVEL,
            timestamp=now,
        )
    )

    mark_approved(repo, project)

    record_event(
        repo,
        actor=user,
        event_type="certificate_issue",
        description=f"Issued certificate {number} for project {project.code}",
        entity_type="certificate",
        entity_id=cert.id,
        metadata={"project_id": project.id, "certificate_number": number, "superseded": superseded},
    )
    notify(
        repo,
        project.client_user_id,
        type="success",
        title="Certificate issued",
        message=f'Certificate {number} was issued for project "{project.title}".',
        link=f"/projects/{project.id}",
    )
    logger.info("certificate %s issued for project %s by user_id=%s", number, project.code, user.id)
    return cert


def list_signatures(repo: "Repository", certificate: Certificate) -> list[DigitalSignature]:
    return repo.list(DigitalSignature, certificate_id=certificate.id)


def get_certificate(repo: "Repository", certificate_id: int) -> Certificate:
    cert = repo.get(Certificate, certificate_id)
    if cert is None:
        raise NotFoundError("Certificate not found.")
    return cert


def get_certificate_for_project(repo: "Repository", project_id: int) -> Certificate | None:
    """The project's current certificate: the active one, else the newest."""
    certs = repo.list(Certificate, project_id=project_id)
    if not certs:
        return None
    for c in reversed(certs):
        if c.status == "active":
            return c
    return certs[-1]


def verify_certificate(repo: "Repository", certificate_number: str) -> Certificate | None:
    """Look up a certificate by its number or its verification code."""
    needle = (certificate_number or "").strip().upper()
    if not needle:
        return None
    cert = repo.first(Certificate, certificate_number=needle)
    if cert is None:
        cert = repo.first(Certificate, verification_code=needle)
    return cert


def list_certificates(repo: "Repository", *, status: str | None = None, project_ids: set[int] | None = None) -> list[Certificate]:
    certs = repo.list(Certificate, status=status) if status else repo.list(Certificate)
    if project_ids is not None:
        certs = [c for c in certs if c.project_id in project_ids]
    return certs


def revoke_certificate(repo: "Repository", certificate: Certificate, user: "User", reason: str) -> Certificate:
    if user.role not in ISSUER_ROLES:
        raise PermissionDeniedError("Only managers and administrators may revoke certificates.")
    if not (reason or "").strip():
        raise ValidationError("Revocation requires a reason.")
    if certificate.status != "active":
        raise WorkflowError(f"Certificate {certificate.certificate_number} is already {certificate.status}.")

    repo.update(certificate, status="revoked", revoked_at=utcnow(), revoked_reason=reason.strip())
    record_event(
        repo,
        actor=user,
        event_type="certificate_revoke",
        description=f"Revoked certificate {certificate.certificate_number}",
        entity_type="certificate",
        entity_id=certificate.id,
        metadata={"reason": reason.strip()},
    )
    return certificate
