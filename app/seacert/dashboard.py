"""
Dashboard counters, computed from the stores and scoped to the viewer:

- clients see their own projects and the documents/certificates under them
- experts see documents assigned to them
- managers and admins see everything
"""

from __future__ import annotations

from datetime import datetime

from app.seacert.models import User
from app.seacert.modules.certificates.models import Certificate
from app.seacert.modules.documents.models import Document
from app.seacert.modules.projects.models import Project
from app.seacert.repository import Repository
from app.seacert.utils import utcnow

PENDING_REVIEW_STATUSES = frozenset({"pending", "under_review", "approved_stage1", "awaiting_manager"})
OPEN_PROJECT_STATUSES = frozenset({"draft", "under_review"})


def _average_review_days(docs: list[Document]) -> float:
    spans = [
        (d.reviewed_at - d.uploaded_at).total_seconds() / 86400
        for d in docs
        if d.reviewed_at is not None and d.uploaded_at is not None
    ]
    if not spans:
        return 0.0
    return round(sum(spans) / len(spans), 1)


def dashboard_stats(repo: Repository, user: User, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    projects = repo.list(Project)
    docs = repo.list(Document)
    certs = repo.list(Certificate)

    if user.role == "client":
        projects = [p for p in projects if p.client_user_id == user.id]
        ids = {p.id for p in projects}
        docs = [d for d in docs if d.project_id in ids]
        certs = [c for c in certs if c.project_id in ids]
    elif user.role == "expert":
        docs = [d for d in docs if d.assigned_expert_id == user.id]
        ids = {d.project_id for d in docs}
        projects = [p for p in projects if p.id in ids]
        certs = []

    if user.role == "expert":
        pending = [d for d in docs if d.status in ("pending", "under_review", "needs_revision")]
    elif user.role == "manager":
        pending = [d for d in docs if d.status in ("approved_stage1", "awaiting_manager")]
    else:
        pending = [d for d in docs if d.status in PENDING_REVIEW_STATUSES]

    overdue = [p for p in projects if p.status in OPEN_PROJECT_STATUSES and p.deadline is not None and p.deadline < now]

    return {
        "total_projects": len(projects),
        "pending_reviews": len(pending),
        "fast_track_projects": sum(1 for p in projects if p.is_fast_track),
        "overdue_projects": len(overdue),
        "avg_review_time": _average_review_days(docs),
        "certificates_issued": len(certs),
    }
