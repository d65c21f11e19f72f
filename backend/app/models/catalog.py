"""
Control catalog models — frameworks, controls and the trustworthy-AI
requirement catalogue with its requirement → control mappings.

Owned by the catalog service; the analysis engine only reads them.

Tables: compliance_frameworks, compliance_controls,
        trustworthy_ai_requirements, requirement_control_mappings
"""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow


class Framework(Base):
    """A named catalog of controls (ISO 27001, NIS2, SOC 2, ...)."""
    __tablename__ = "compliance_frameworks"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    version: Mapped[str | None] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # relationships
    controls: Mapped[list["Control"]] = relationship(back_populates="framework")


class Control(Base):
    __tablename__ = "compliance_controls"
    __table_args__ = (
        Index("ix_control_framework_active", "framework_id", "is_active"),
        Index("ix_control_category", "category"),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    framework_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    ref_id: Mapped[str | None] = mapped_column(String(50))
    category: Mapped[str | None] = mapped_column(String(100))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # relationships
    framework: Mapped["Framework"] = relationship(back_populates="controls")


class Requirement(Base):
    """One of the seven EU trustworthy-AI requirements."""
    __tablename__ = "trustworthy_ai_requirements"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    short_name: Mapped[str | None] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class RequirementControlMapping(Base):
    __tablename__ = "requirement_control_mappings"
    __table_args__ = (
        UniqueConstraint("requirement_id", "control_id", name="uq_rcm_req_control"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requirement_id: Mapped[str] = mapped_column(
        ForeignKey("trustworthy_ai_requirements.id", ondelete="CASCADE"), nullable=False,
    )
    control_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False,
    )
    # 0.0 – 1.0
    mapping_strength: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)

    # relationships
    control: Mapped["Control"] = relationship()
