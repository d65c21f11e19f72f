"""Pydantic schemas for the Cross-Framework Analysis API."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.models.cross_analysis import AnalysisQueryType, LinkType, MappingSource, RelationshipType


# ═══════════════════ Cross-references ═══════════════════

class CrossReferenceCreate(BaseModel):
    source_control_id: str = Field(..., max_length=100)
    target_control_id: str = Field(..., max_length=100)
    relationship_type: RelationshipType
    confidence: float = Field(0.8, ge=0, le=1)
    mapped_by: MappingSource = MappingSource.MANUAL
    rationale: str | None = None


class CrossReferenceOut(BaseModel):
    id: int
    source_control_id: str
    target_control_id: str
    source_framework_id: str
    target_framework_id: str
    relationship_type: RelationshipType
    mapping_confidence: float
    mapped_by: MappingSource
    rationale: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    model_config = {"from_attributes": True}


# ═══════════════════ Overlap & matrix ═══════════════════

class FrameworkOverlapOut(BaseModel):
    framework1_id: str
    framework1_name: str
    framework2_id: str
    framework2_name: str
    total_mappings: int
    equivalent_count: int
    partial_count: int
    related_count: int
    overlap_percentage: float
    last_calculated: datetime
    model_config = {"from_attributes": True}


class FrameworkInfoOut(BaseModel):
    id: str
    name: str
    control_count: int
    model_config = {"from_attributes": True}


class MatrixCellOut(BaseModel):
    framework1_id: str
    framework2_id: str
    mapping_count: int | None = None
    overlap_percentage: float | None = None
    status: str = "ok"
    model_config = {"from_attributes": True}


class MatrixSummaryOut(BaseModel):
    total_frameworks: int
    total_mappings: int
    average_overlap: float
    most_mapped_framework: str | None = None
    unknown_pairs: int = 0
    model_config = {"from_attributes": True}


class ControlMappingMatrixOut(BaseModel):
    frameworks: list[FrameworkInfoOut]
    matrix: list[list[MatrixCellOut]]
    summary: MatrixSummaryOut
    model_config = {"from_attributes": True}


# ═══════════════════ Gap analysis ═══════════════════

class SuggestedMappingOut(BaseModel):
    target_control_id: str
    target_framework_id: str
    target_title: str
    confidence: float
    reason: str
    model_config = {"from_attributes": True}


class UnmappedControlOut(BaseModel):
    control_id: str
    control_title: str
    framework_id: str
    category: str | None = None
    priority: str
    suggested_mappings: list[SuggestedMappingOut] = []
    model_config = {"from_attributes": True}


class UnmappedRequirementOut(BaseModel):
    requirement_id: str
    requirement_name: str
    mapped_control_count: int
    frameworks_with_gaps: list[str] = []
    suggested_controls: list[str] = []
    model_config = {"from_attributes": True}


class GapRecommendationOut(BaseModel):
    type: str
    priority: str
    description: str
    affected_frameworks: list[str] = []
    estimated_effort: str
    model_config = {"from_attributes": True}


class GapAnalysisOut(BaseModel):
    tenant_id: str
    unmapped_controls: list[UnmappedControlOut]
    unmapped_requirements: list[UnmappedRequirementOut]
    recommendations: list[GapRecommendationOut]
    overall_coverage_score: float
    last_analyzed: datetime
    model_config = {"from_attributes": True}


# ═══════════════════ Requirement coverage ═══════════════════

class MappedControlOut(BaseModel):
    id: str
    title: str
    category: str | None = None
    mapping_strength: float
    model_config = {"from_attributes": True}


class FrameworkControlsOut(BaseModel):
    framework_id: str
    framework_name: str
    controls: list[MappedControlOut] = []
    model_config = {"from_attributes": True}


class FrameworkCoverageOut(BaseModel):
    framework_id: str
    framework_name: str
    control_count: int
    coverage_score: float
    controls: list[MappedControlOut] = []
    model_config = {"from_attributes": True}


class RequirementCoverageOut(BaseModel):
    requirement_id: str
    requirement_name: str
    framework_coverage: list[FrameworkCoverageOut]
    total_controls: int
    average_coverage: float
    model_config = {"from_attributes": True}


# ═══════════════════ Qualitative bridge ═══════════════════

class ControlLinkOut(BaseModel):
    id: int
    finding_id: int
    control_id: str
    framework_id: str
    link_type: LinkType
    weight_adjustment: float
    similarity: float | None = None
    rationale: str | None = None
    created_at: datetime
    model_config = {"from_attributes": True}


class WeightAdjustmentOut(BaseModel):
    control_id: str
    original_weight: float
    adjusted_weight: float
    adjustment_reason: str | None = None
    finding_id: int
    link_id: int
    assessments_updated: int
    model_config = {"from_attributes": True}


# ═══════════════════ Saved queries ═══════════════════

class SavedQueryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    query_type: AnalysisQueryType
    parameters: dict[str, Any] = {}
    schedule_frequency: str | None = Field(None, max_length=100)


class SavedQueryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    parameters: dict[str, Any] | None = None
    schedule_frequency: str | None = Field(None, max_length=100)


class SavedQueryOut(BaseModel):
    id: int
    tenant_id: str
    name: str
    query_type: AnalysisQueryType
    parameters: dict[str, Any] = {}
    is_scheduled: bool
    schedule_frequency: str | None = None
    last_run: datetime | None = None
    saved_results: Any = None
    created_at: datetime
    updated_at: datetime
    model_config = {"from_attributes": True}


# ═══════════════════ Insights ═══════════════════

class InsightRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)


class AnalysisInsightsOut(BaseModel):
    query: str
    findings: list[str] = []
    recommendations: list[str] = []
    cross_framework_insights: list[str] = []
    related_controls: list[str] = []
    confidence: float
    model_config = {"from_attributes": True}
