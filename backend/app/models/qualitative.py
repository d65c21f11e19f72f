"""
Qualitative (Z-Inspection style) review models — reports and their findings.

A report covers one trustworthiness assessment; findings belong to the
same assessment and are reached through it.
"""
import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, str_enum, utcnow


class FindingType(str, enum.Enum):
    STRENGTH = "strength"
    WEAKNESS = "weakness"
    OPPORTUNITY = "opportunity"
    THREAT = "threat"
    RECOMMENDATION = "recommendation"
    OBSERVATION = "observation"


class QualitativeReport(Base):
    __tablename__ = "z_inspection_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class QualitativeFinding(Base):
    __tablename__ = "qualitative_findings"
    __table_args__ = (
        Index("ix_qf_assessment", "assessment_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requirement_id: Mapped[str | None] = mapped_column(
        ForeignKey("trustworthy_ai_requirements.id", ondelete="SET NULL"),
    )
    category: Mapped[str | None] = mapped_column(String(100))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    finding_type: Mapped[FindingType] = mapped_column(
        str_enum(FindingType, "finding_type_enum"), nullable=False,
    )
    severity: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
