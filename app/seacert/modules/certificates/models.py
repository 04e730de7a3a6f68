from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.seacert.models import Base
from app.seacert.utils import utcnow


class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        Index("idx_certificates_project", "project_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    certificate_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # e.g. "SEA-2025-000003"
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False)
    project_title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    # active -> revoked | superseded
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    issued_by: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    issued_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    verification_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # printed as QR

    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)


class DigitalSignature(Base):
    """Recorded attestation (signer, level, time). Not a cryptographic signature."""

    __tablename__ = "digital_signatures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    certificate_id: Mapped[int] = mapped_column(ForeignKey("certificates.id", ondelete="CASCADE"), nullable=False)

    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    level: Mapped[str] = mapped_column(String(16), nullable=False)  # level1, level2
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
