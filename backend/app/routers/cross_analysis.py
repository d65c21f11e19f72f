"""
Cross-Framework Analysis module — /api/v1/cross-analysis

- Control cross-references (upsert, list, delete, equivalents)
- Framework overlap and the N×N mapping matrix
- Gap analysis and Trustworthy-AI requirement coverage
- Qualitative finding → control links and score weight adjustments
- Saved analysis queries and keyword-routed insights

Tenant is resolved by TenantContextMiddleware before handlers run.
"""
from fastapi import APIRouter, Depends, Query, Request

from app.models.cross_analysis import MappingSource, RelationshipType
from app.schemas.cross_analysis import (
    AnalysisInsightsOut,
    ControlLinkOut,
    ControlMappingMatrixOut,
    CrossReferenceCreate,
    CrossReferenceOut,
    FrameworkControlsOut,
    FrameworkOverlapOut,
    GapAnalysisOut,
    InsightRequest,
    RequirementCoverageOut,
    SavedQueryCreate,
    SavedQueryOut,
    SavedQueryUpdate,
    UnmappedControlOut,
    UnmappedRequirementOut,
    WeightAdjustmentOut,
)
from app.services.engine import CrossAnalysisEngine

router = APIRouter(prefix="/api/v1/cross-analysis", tags=["Cross-Framework Analysis"])


def get_engine(request: Request) -> CrossAnalysisEngine:
    return request.app.state.engine


def get_tenant_id(request: Request) -> str:
    return request.state.tenant_id


# ═══ Cross-references ═══════════════════════════════════════════


@router.post("/cross-references", response_model=CrossReferenceOut, status_code=201)
async def create_cross_reference(body: CrossReferenceCreate, engine: CrossAnalysisEngine = Depends(get_engine)):
    ref = await engine.cross_references.create(
        body.source_control_id,
        body.target_control_id,
        body.relationship_type,
        confidence=body.confidence,
        mapped_by=body.mapped_by,
        rationale=body.rationale,
    )
    return CrossReferenceOut.model_validate(ref)


@router.get("/cross-references", response_model=list[CrossReferenceOut])
async def list_cross_references(
    source_framework_id: str | None = None,
    target_framework_id: str | None = None,
    relationship_type: RelationshipType | None = None,
    mapped_by: MappingSource | None = None,
    engine: CrossAnalysisEngine = Depends(get_engine),
):
    rows = await engine.cross_references.list_all(
        source_framework_id=source_framework_id,
        target_framework_id=target_framework_id,
        relationship_type=relationship_type,
        mapped_by=mapped_by,
    )
    return [CrossReferenceOut.model_validate(r) for r in rows]


@router.get("/cross-references/{ref_id}", response_model=CrossReferenceOut)
async def get_cross_reference(ref_id: int, engine: CrossAnalysisEngine = Depends(get_engine)):
    return CrossReferenceOut.model_validate(await engine.cross_references.get(ref_id))


@router.delete("/cross-references/{ref_id}", status_code=204)
async def delete_cross_reference(ref_id: int, engine: CrossAnalysisEngine = Depends(get_engine)):
    await engine.cross_references.delete(ref_id)


@router.get("/controls/{control_id}/equivalents", response_model=list[CrossReferenceOut])
async def find_equivalents(control_id: str, engine: CrossAnalysisEngine = Depends(get_engine)):
    rows = await engine.cross_references.find_equivalents(control_id)
    return [CrossReferenceOut.model_validate(r) for r in rows]


# ═══ Overlap & Matrix ═══════════════════════════════════════════


@router.get("/overlap", response_model=FrameworkOverlapOut | None)
async def get_overlap(
    framework1_id: str = Query(...),
    framework2_id: str = Query(...),
    engine: CrossAnalysisEngine = Depends(get_engine),
):
    """Overlap between two frameworks; ``null`` when no cross-reference links them."""
    overlap = await engine.overlap.get_overlap(framework1_id, framework2_id)
    return FrameworkOverlapOut.model_validate(overlap) if overlap else None


@router.get("/matrix", response_model=ControlMappingMatrixOut)
async def build_mapping_matrix(engine: CrossAnalysisEngine = Depends(get_engine)):
    return ControlMappingMatrixOut.model_validate(await engine.matrix.build_matrix())


# ═══ Gap Analysis ═══════════════════════════════════════════════


@router.get("/gaps", response_model=GapAnalysisOut)
async def identify_gaps(
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    return GapAnalysisOut.model_validate(await engine.gaps.identify_gaps(tenant_id))


@router.get("/gaps/controls", response_model=list[UnmappedControlOut])
async def find_unmapped_controls(engine: CrossAnalysisEngine = Depends(get_engine)):
    return [UnmappedControlOut.model_validate(c) for c in await engine.gaps.find_unmapped_controls()]


@router.get("/gaps/requirements", response_model=list[UnmappedRequirementOut])
async def find_unmapped_requirements(engine: CrossAnalysisEngine = Depends(get_engine)):
    return [UnmappedRequirementOut.model_validate(r) for r in await engine.gaps.find_unmapped_requirements()]


# ═══ Requirement Coverage ═══════════════════════════════════════


@router.get("/requirements/coverage", response_model=list[RequirementCoverageOut])
async def get_requirement_coverage(engine: CrossAnalysisEngine = Depends(get_engine)):
    return [RequirementCoverageOut.model_validate(r) for r in await engine.coverage.get_requirement_coverage()]


@router.get("/requirements/{requirement_id}/controls", response_model=dict[str, FrameworkControlsOut])
async def get_controls_for_requirement(requirement_id: str, engine: CrossAnalysisEngine = Depends(get_engine)):
    grouped = await engine.coverage.get_controls_for_requirement(requirement_id)
    return {fw_id: FrameworkControlsOut.model_validate(fc) for fw_id, fc in grouped.items()}


# ═══ Qualitative Bridge ═════════════════════════════════════════


@router.post("/findings/{finding_id}/links", response_model=list[ControlLinkOut])
async def link_finding_to_controls(finding_id: int, engine: CrossAnalysisEngine = Depends(get_engine)):
    links = await engine.bridge.link_finding_to_controls(finding_id)
    return [ControlLinkOut.model_validate(link) for link in links]


@router.get("/findings/{finding_id}/links", response_model=list[ControlLinkOut])
async def get_links_for_finding(finding_id: int, engine: CrossAnalysisEngine = Depends(get_engine)):
    links = await engine.bridge.get_links_for_finding(finding_id)
    return [ControlLinkOut.model_validate(link) for link in links]


@router.post("/reports/{report_id}/weight-adjustments", response_model=list[WeightAdjustmentOut])
async def adjust_control_weights(
    report_id: int,
    once: bool = Query(False, description="Skip links already applied for this report"),
    engine: CrossAnalysisEngine = Depends(get_engine),
):
    adjustments = await engine.bridge.adjust_control_weights(report_id, once=once)
    return [WeightAdjustmentOut.model_validate(a) for a in adjustments]


# ═══ Saved Queries ══════════════════════════════════════════════


@router.post("/queries", response_model=SavedQueryOut, status_code=201)
async def save_analysis_query(
    body: SavedQueryCreate,
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    query = await engine.queries.save(
        tenant_id, body.name, body.query_type, body.parameters, body.schedule_frequency,
    )
    return SavedQueryOut.model_validate(query)


@router.get("/queries", response_model=list[SavedQueryOut])
async def list_saved_queries(
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    return [SavedQueryOut.model_validate(q) for q in await engine.queries.list_for_tenant(tenant_id)]


@router.get("/queries/{query_id}", response_model=SavedQueryOut)
async def get_saved_query(
    query_id: int,
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    return SavedQueryOut.model_validate(await engine.queries.get(query_id, tenant_id))


@router.put("/queries/{query_id}", response_model=SavedQueryOut)
async def update_saved_query(
    query_id: int,
    body: SavedQueryUpdate,
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    query = await engine.queries.update(query_id, tenant_id, **body.model_dump(exclude_unset=True))
    return SavedQueryOut.model_validate(query)


@router.delete("/queries/{query_id}", status_code=204)
async def delete_saved_query(
    query_id: int,
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    await engine.queries.delete(query_id, tenant_id)


@router.post("/queries/{query_id}/run")
async def run_saved_query(
    query_id: int,
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    return await engine.queries.run(query_id, tenant_id)


# ═══ Insights ═══════════════════════════════════════════════════


@router.post("/insights", response_model=AnalysisInsightsOut)
async def analyze_cross_framework(
    body: InsightRequest,
    engine: CrossAnalysisEngine = Depends(get_engine),
    tenant_id: str = Depends(get_tenant_id),
):
    result = await engine.insights.analyze_cross_framework(body.query, tenant_id)
    return AnalysisInsightsOut.model_validate(result)
