"""Quantitative control assessments (written by the assessment service)."""
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class ControlAssessment(Base):
    __tablename__ = "control_assessments"
    __table_args__ = (
        Index("ix_ca_control_assessed", "control_id", "assessed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    control_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False,
    )
    # 0 – 100
    score: Mapped[float] = mapped_column(Float, nullable=False)
    assessor: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(Text)
    assessed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
