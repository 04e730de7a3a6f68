from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.seacert.utils import utcnow


class Base(DeclarativeBase):
    pass


ROLES = ("expert", "manager", "admin", "client")
STAFF_ROLES = frozenset({"expert", "manager", "admin"})


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)  # display name
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="client")  # expert, manager, admin, client
    organizational_unit: Mapped[str | None] = mapped_column(String(255), nullable=True)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    has_2fa: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    otp_secret: Mapped[str | None] = mapped_column(String(64), nullable=True)  # base32 TOTP seed

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_request_fast_track: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Nothing updates or deletes rows here; services only ever add them.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_events_event_type", "event_type"),
        Index("idx_audit_events_actor", "actor_user_id"),
        Index("idx_audit_events_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Actor is denormalised so the trail survives renames and role changes.
    actor_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(16), nullable=True)

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "document_review"
    description: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    entity_type: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "document"
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.seacert.modules.projects.models import Project  # noqa: E402,F401
from app.seacert.modules.documents.models import Document, DocumentVersion, ReviewComment  # noqa: E402,F401
from app.seacert.modules.certificates.models import Certificate, DigitalSignature  # noqa: E402,F401
from app.seacert.modules.notifications.models import Notification  # noqa: E402,F401
