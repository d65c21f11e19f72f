"""
Cross-framework analysis models — control cross-references, the pairwise
overlap cache, qualitative finding → control links, applied weight
adjustments and saved analysis queries.

Tables: control_cross_references, framework_pair_versions, framework_overlap_cache,
        z_inspection_control_links, applied_weight_adjustments,
        saved_analysis_queries
"""
import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
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
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, str_enum, utcnow


class RelationshipType(str, enum.Enum):
    EQUIVALENT = "equivalent"
    PARTIAL = "partial"
    RELATED = "related"
    SUPERSEDES = "supersedes"
    COMPLEMENTARY = "complementary"


class MappingSource(str, enum.Enum):
    SYSTEM = "system"
    MANUAL = "manual"
    AI = "ai"


class LinkType(str, enum.Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"
    RECOMMENDED = "recommended"


class AnalysisQueryType(str, enum.Enum):
    CROSS_FRAMEWORK = "cross_framework"
    GAP_ANALYSIS = "gap_analysis"
    REQUIREMENT_COVERAGE = "requirement_coverage"
    Z_INSPECTION = "z_inspection"


def pair_key(first_id: str, second_id: str) -> str:
    """Order-independent key for an unordered id pair."""
    lo, hi = sorted((first_id, second_id))
    return f"{lo}|{hi}"


class CrossReference(Base):
    """Typed relationship between two controls, usually from different frameworks.

    At most one row per unordered control pair (enforced by ``pair_key``).
    Framework ids are copied from the controls when the row is created.
    """
    __tablename__ = "control_cross_references"
    __table_args__ = (
        UniqueConstraint("pair_key", name="uq_ccr_pair"),
        Index("ix_ccr_source", "source_control_id"),
        Index("ix_ccr_target", "target_control_id"),
        Index("ix_ccr_frameworks", "source_framework_id", "target_framework_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_control_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False,
    )
    target_control_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False,
    )
    source_framework_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    target_framework_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    pair_key: Mapped[str] = mapped_column(String(210), nullable=False)

    relationship_type: Mapped[RelationshipType] = mapped_column(
        str_enum(RelationshipType, "relationship_type_enum"), nullable=False,
    )
    # 0.0 – 1.0, advisory
    mapping_confidence: Mapped[float] = mapped_column(Float, default=0.8, nullable=False)
    mapped_by: Mapped[MappingSource] = mapped_column(
        str_enum(MappingSource, "mapping_source_enum"), default=MappingSource.SYSTEM, nullable=False,
    )
    rationale: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime)


class FrameworkPairVersion(Base):
    """Write generation of an unordered framework pair.

    Bumped in the same transaction as every cross-reference write touching
    the pair. A cached overlap is served only while its generation matches.
    """
    __tablename__ = "framework_pair_versions"

    pair_key: Mapped[str] = mapped_column(String(210), primary_key=True)
    generation: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class FrameworkOverlapCache(Base):
    """Materialized overlap statistics for an unordered framework pair.

    Stored in canonical order (framework1_id < framework2_id).
    """
    __tablename__ = "framework_overlap_cache"
    __table_args__ = (
        UniqueConstraint("framework1_id", "framework2_id", name="uq_overlap_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    framework1_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    framework1_name: Mapped[str] = mapped_column(String(255), nullable=False)
    framework2_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    framework2_name: Mapped[str] = mapped_column(String(255), nullable=False)

    total_mappings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    equivalent_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    partial_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    related_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overlap_percentage: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # FrameworkPairVersion.generation the statistics were computed at
    generation: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    calculated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class ZInspectionControlLink(Base):
    __tablename__ = "z_inspection_control_links"
    __table_args__ = (
        UniqueConstraint("finding_id", "control_id", name="uq_zlink_finding_control"),
        Index("ix_zlink_control", "control_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    finding_id: Mapped[int] = mapped_column(
        ForeignKey("qualitative_findings.id", ondelete="CASCADE"), nullable=False,
    )
    control_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False,
    )
    framework_id: Mapped[str] = mapped_column(
        ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False,
    )
    link_type: Mapped[LinkType] = mapped_column(str_enum(LinkType, "link_type_enum"), nullable=False)
    # Signed multiplier delta: score * (1 + weight_adjustment)
    weight_adjustment: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    similarity: Mapped[float | None] = mapped_column(Float)
    rationale: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class AppliedWeightAdjustment(Base):
    """Ledger of weight adjustments applied per (report, link)."""
    __tablename__ = "applied_weight_adjustments"
    __table_args__ = (
        Index("ix_awa_report_link", "report_id", "link_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        ForeignKey("z_inspection_reports.id", ondelete="CASCADE"), nullable=False,
    )
    link_id: Mapped[int] = mapped_column(
        ForeignKey("z_inspection_control_links.id", ondelete="CASCADE"), nullable=False,
    )
    weight_adjustment: Mapped[float] = mapped_column(Float, nullable=False)
    assessments_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class SavedAnalysisQuery(Base):
    __tablename__ = "saved_analysis_queries"
    __table_args__ = (
        Index("ix_saq_tenant", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    query_type: Mapped[AnalysisQueryType] = mapped_column(
        str_enum(AnalysisQueryType, "analysis_query_type_enum"), nullable=False,
    )
    parameters: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    is_scheduled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    schedule_frequency: Mapped[str | None] = mapped_column(String(100))

    last_run: Mapped[datetime | None] = mapped_column(DateTime)
    saved_results: Mapped[dict | list | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False,
    )
