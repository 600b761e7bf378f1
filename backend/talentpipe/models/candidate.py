from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from talentpipe.db.base import Base


class Candidate(Base):
    __tablename__ = "candidates"

    candidate_id: Mapped[int] = mapped_column("id", Integer, primary_key=True, autoincrement=True)

    full_name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vacancy_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Ordered [{"stage_name": ..., "interviewer_id": ...}] used to materialize stage rows.
    interview_stage_chain: Mapped[list | None] = mapped_column(JSON, nullable=True)
    current_stage_index: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(50), default="active", index=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_stage: Mapped[str | None] = mapped_column(String(255), nullable=True)
    dismissal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dismissal_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
