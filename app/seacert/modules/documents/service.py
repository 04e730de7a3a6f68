"""
Document service layer.

Covers upload and re-upload of review documents, expert assignment, the
two-stage review workflow and review comments.

Review outcome depends only on the action and the reviewer's role:

    approve           -> final_approved (manager) / approved_stage1 (expert)
    reject            -> rejected
    anything else     -> needs_revision
"""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.seacert.audit import record_event
from app.seacert.errors import NotFoundError, PermissionDeniedError, ValidationError, WorkflowError
from app.seacert.models import STAFF_ROLES, User
from app.seacert.modules.notifications.service import notify, notify_role
from app.seacert.modules.projects.models import Project
from app.seacert.modules.projects.service import can_view_project, get_project, submit_project
from app.seacert.utils import utcnow

from .models import Document, DocumentVersion, ReviewComment

if TYPE_CHECKING:
    from app.seacert.repository import Repository
    from app.seacert.storage import Storage

logger = logging.getLogger(__name__)

VALID_STATUSES = (
    "pending",
    "under_review",
    "approved_stage1",
    "awaiting_manager",
    "final_approved",
    "rejected",
    "needs_revision",
)

REVIEWER_ROLES = ("expert", "manager")

# No further review once a document reaches one of these.
CLOSED_STATUSES = frozenset({"final_approved", "rejected"})

# Stage-1 (expert) reviews; later stages belong to managers.
EXPERT_REVIEWABLE_STATUSES = frozenset({"pending", "under_review", "needs_revision"})

# Projects that no longer accept uploads.
FROZEN_PROJECT_STATUSES = frozenset({"approved", "rejected", "archived"})

DEFAULT_DOC_TYPE = "Marine technical document"


def resolve_review_status(action: str, reviewer_role: str) -> str:
    """Status a document moves to when `reviewer_role` performs `action`."""
    if action == "approve":
        return "final_approved" if reviewer_role == "manager" else "approved_stage1"
    if action == "reject":
        return "rejected"
    return "needs_revision"


def file_digest_and_bytes(file_bytes: bytes) -> tuple[str, int]:
    """Compute SHA256 digest and size."""
    h = hashlib.sha256()
    h.update(file_bytes)
    return (h.hexdigest(), len(file_bytes))


def sanitize_upload_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "document.bin"


def build_document_storage_key(project_code: str, sha256: str, filename: str) -> str:
    """Content-addressed key, so re-uploads never overwrite an earlier version."""
    return f"projects/{project_code}/{sha256[:16]}/{sanitize_upload_filename(filename)}"


def get_document(repo: "Repository", document_id: int) -> Document:
    d = repo.get(Document, document_id)
    if d is None:
        raise NotFoundError("Document not found.")
    return d


def get_document_for(repo: "Repository", document_id: int, user: User) -> Document:
    """get_document, hiding documents of other clients' projects."""
    d = get_document(repo, document_id)
    project = repo.get(Project, d.project_id)
    if project is None or not can_view_project(user, project):
        raise NotFoundError("Document not found.")
    return d


def list_project_documents(repo: "Repository", project_id: int) -> list[Document]:
    return repo.list(Document, project_id=project_id)


def list_documents(
    repo: "Repository",
    user: User,
    *,
    status: str | None = None,
    project_id: int | None = None,
    assigned_to_me: bool = False,
) -> list[Document]:
    equals: dict[str, object] = {}
    if status:
        equals["status"] = status
    if project_id is not None:
        equals["project_id"] = project_id
    if assigned_to_me:
        equals["assigned_expert_id"] = user.id
    docs = repo.list(Document, **equals)
    if user.role not in STAFF_ROLES:
        own = {p.id for p in repo.list(Project, client_user_id=user.id)}
        docs = [d for d in docs if d.project_id in own]
    return docs


def list_versions(repo: "Repository", document: Document) -> list[DocumentVersion]:
    return repo.list(DocumentVersion, document_id=document.id)


def _store_file(storage: "Storage", project: Project, file_bytes: bytes, filename: str, content_type: str) -> tuple[str, str, int]:
    sha256, size_bytes = file_digest_and_bytes(file_bytes)
    key = build_document_storage_key(project.code, sha256, filename)
    storage.put_bytes(key, file_bytes, content_type=content_type)
    return key, sha256, size_bytes


def upload_document(
    repo: "Repository",
    storage: "Storage",
    project: Project,
    file_bytes: bytes,
    filename: str,
    user: User,
    *,
    content_type: str = "application/octet-stream",
    doc_type: str | None = None,
    deadline: datetime | None = None,
) -> Document:
    """Upload a new document (version 1, pending) to a project."""
    if user.role == "client" and project.client_user_id != user.id:
        raise NotFoundError("Project not found.")
    if project.status in FROZEN_PROJECT_STATUSES:
        raise WorkflowError(f"Project {project.code} is {project.status}; documents can no longer be added.")
    if not file_bytes:
        raise ValidationError("Choose a file to upload.")

    key, sha256, size_bytes = _store_file(storage, project, file_bytes, filename, content_type)
    now = utcnow()
    doc = Document(
        project_id=project.id,
        doc_type=(doc_type or "").strip() or DEFAULT_DOC_TYPE,
        file_name=sanitize_upload_filename(filename),
        file_url=key,
        content_type=content_type,
        sha256=sha256,
        size_bytes=size_bytes,
        version=1,
        status="pending",
        uploaded_by=user.name,
        uploaded_by_user_id=user.id,
        uploaded_at=now,
        deadline=deadline,
    )
    repo.add(doc)
    repo.add(
        DocumentVersion(
            document_id=doc.id,
            version=1,
            file_name=doc.file_name,
            file_url=key,
            sha256=sha256,
            changes="Initial upload",
            uploaded_by=user.name,
            uploaded_at=now,
        )
    )

    record_event(
        repo,
        actor=user,
        event_type="document_upload",
        description=f"Uploaded {doc.file_name} (v1) to {project.code}",
        entity_type="document",
        entity_id=doc.id,
        metadata={"project_id": project.id, "filename": doc.file_name, "sha256": sha256, "size_bytes": size_bytes},
    )

    # First document submits a draft project for review.
    if project.status == "draft":
        submit_project(repo, project, user)

    notify_role(
        repo,
        "manager",
        type="task",
        title="New document awaiting assignment",
        message=f'"{doc.file_name}" was uploaded to project {project.code}.',
        link=f"/documents/{doc.id}",
    )
    return doc


def upload_new_version(
    repo: "Repository",
    storage: "Storage",
    document: Document,
    file_bytes: bytes,
    filename: str,
    user: User,
    *,
    content_type: str = "application/octet-stream",
    changes: str = "",
) -> Document:
    """Replace the file of a document; the review starts over at pending."""
    project = get_project(repo, document.project_id)
    if user.role == "client" and project.client_user_id != user.id:
        raise NotFoundError("Document not found.")
    if document.status == "final_approved":
        raise WorkflowError("A final-approved document cannot be replaced.")
    if project.status in FROZEN_PROJECT_STATUSES:
        raise WorkflowError(f"Project {project.code} is {project.status}; documents can no longer be changed.")
    if not file_bytes:
        raise ValidationError("Choose a file to upload.")

    key, sha256, size_bytes = _store_file(storage, project, file_bytes, filename, content_type)
    now = utcnow()
    old_version = document.version
    repo.update(
        document,
        version=old_version + 1,
        file_name=sanitize_upload_filename(filename),
        file_url=key,
        content_type=content_type,
        sha256=sha256,
        size_bytes=size_bytes,
        status="pending",
        uploaded_by=user.name,
        uploaded_by_user_id=user.id,
        uploaded_at=now,
        reviewed_by=None,
        reviewed_by_user_id=None,
        reviewed_at=None,
    )
    repo.add(
        DocumentVersion(
            document_id=document.id,
            version=document.version,
            file_name=document.file_name,
            file_url=key,
            sha256=sha256,
            changes=(changes or "").strip(),
            uploaded_by=user.name,
            uploaded_at=now,
        )
    )

    record_event(
        repo,
        actor=user,
        event_type="document_upload",
        description=f"Uploaded {document.file_name} (v{document.version}) to {project.code}",
        entity_type="document",
        entity_id=document.id,
        metadata={"from_version": old_version, "to_version": document.version, "sha256": sha256},
    )
    notify(
        repo,
        document.assigned_expert_id,
        type="task",
        title="Revised document ready for review",
        message=f'Version {document.version} of "{document.file_name}" was uploaded.',
        link=f"/documents/{document.id}",
    )
    return document


def assign_expert(
    repo: "Repository",
    document: Document,
    expert_id: int,
    user: User,
    *,
    deadline: datetime | None = None,
) -> Document:
    """Manager hands a document to an expert; pending documents move to under_review."""
    if user.role != "manager":
        raise PermissionDeniedError("Only managers may assign experts.")
    if document.status in CLOSED_STATUSES:
        raise WorkflowError(f"Document is {document.status}; it cannot be reassigned.")

    expert = repo.get(User, expert_id)
    if expert is None:
        raise NotFoundError("User not found.")
    if expert.role != "expert" or not expert.is_active:
        raise ValidationError("Documents can only be assigned to active experts.")

    changes: dict[str, object] = {"assigned_expert_id": expert.id, "assigned_expert_name": expert.name}
    if deadline is not None:
        changes["deadline"] = deadline
    if document.status == "pending":
        changes["status"] = "under_review"
    repo.update(document, **changes)

    record_event(
        repo,
        actor=user,
        event_type="document_assign",
        description=f"Assigned {document.file_name} to {expert.name}",
        entity_type="document",
        entity_id=document.id,
        metadata={"expert_id": expert.id, "deadline": str(document.deadline) if document.deadline else None},
    )
    notify(
        repo,
        expert.id,
        type="task",
        title="New document for review",
        message=f'"{document.file_name}" was assigned to you.',
        link=f"/documents/{document.id}",
    )
    return document


def review_document(
    repo: "Repository",
    document: Document,
    action: str,
    user: User,
    *,
    comment: str | None = None,
) -> Document:
    """Apply a review decision and its side effects (comment, audit, notifications)."""
    if user.role not in REVIEWER_ROLES:
        raise PermissionDeniedError("Only experts and managers may review documents.")
    if document.status in CLOSED_STATUSES:
        raise WorkflowError(f"Document is already {document.status}.")
    if user.role == "expert":
        if document.status not in EXPERT_REVIEWABLE_STATUSES:
            raise WorkflowError("Document is awaiting manager approval.")
        if document.assigned_expert_id is not None and document.assigned_expert_id != user.id:
            raise PermissionDeniedError("Document is assigned to another expert.")

    action = (action or "").strip()
    old_status = document.status
    new_status = resolve_review_status(action, user.role)
    now = utcnow()
    repo.update(
        document,
        status=new_status,
        reviewed_by=user.name,
        reviewed_by_user_id=user.id,
        reviewed_at=now,
    )

    text = (comment or "").strip()
    if text:
        repo.add(
            ReviewComment(
                document_id=document.id,
                user_id=user.id,
                user_name=user.name,
                user_role=user.role,
                content=text,
                is_internal=action == "approve",
                created_at=now,
            )
        )

    record_event(
        repo,
        actor=user,
        event_type="document_review",
        description=f"Reviewed {document.file_name}: {action or 'request_revision'}",
        entity_type="document",
        entity_id=document.id,
        metadata={"action": action, "from": old_status, "to": new_status},
    )
    _notify_review_outcome(repo, document, new_status)
    logger.info("document %s reviewed by user_id=%s: %s -> %s", document.id, user.id, old_status, new_status)
    return document


def _notify_review_outcome(repo: "Repository", document: Document, new_status: str) -> None:
    link = f"/documents/{document.id}"
    if new_status == "approved_stage1":
        notify_role(
            repo,
            "manager",
            type="task",
            title="Document awaiting final approval",
            message=f'"{document.file_name}" passed expert review.',
            link=link,
        )
    elif new_status == "final_approved":
        notify(
            repo,
            document.uploaded_by_user_id,
            type="success",
            title="Document approved",
            message=f'"{document.file_name}" received final approval.',
            link=link,
        )
    elif new_status == "rejected":
        notify(
            repo,
            document.uploaded_by_user_id,
            type="warning",
            title="Document rejected",
            message=f'"{document.file_name}" was rejected.',
            link=link,
        )
    else:
        notify(
            repo,
            document.uploaded_by_user_id,
            type="warning",
            title="Revision requested",
            message=f'"{document.file_name}" needs revision.',
            link=link,
        )


def add_comment(
    repo: "Repository",
    document: Document,
    content: str,
    user: User,
    *,
    is_internal: bool = False,
) -> ReviewComment:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty.")
    if is_internal and user.role not in STAFF_ROLES:
        raise PermissionDeniedError("Only staff may post internal comments.")
    c = ReviewComment(
        document_id=document.id,
        user_id=user.id,
        user_name=user.name,
        user_role=user.role,
        content=text,
        is_internal=bool(is_internal),
        created_at=utcnow(),
    )
    repo.add(c)
    record_event(
        repo,
        actor=user,
        event_type="document_comment",
        description=f"Commented on {document.file_name}",
        entity_type="document",
        entity_id=document.id,
        metadata={"comment_id": c.id, "is_internal": c.is_internal},
    )
    return c


def list_comments(repo: "Repository", document: Document, viewer: User) -> list[ReviewComment]:
    """Comments in posting order; internal ones only for staff."""
    comments = repo.list(ReviewComment, document_id=document.id)
    if viewer.role in STAFF_ROLES:
        return comments
    return [c for c in comments if not c.is_internal]


def open_document_file(storage: "Storage", document: Document) -> bytes:
    return storage.get_bytes(document.file_url)
