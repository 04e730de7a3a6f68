from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.seacert.models import Base
from app.seacert.utils import utcnow


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_status", "status"),
        Index("idx_projects_client", "client_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # e.g. "MRN-2025-004"
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    organizational_unit: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # draft -> under_review -> approved | rejected -> archived
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    is_fast_track: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    client_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
