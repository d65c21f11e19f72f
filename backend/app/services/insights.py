"""
Cross-framework insights — keyword-routed summaries over the gap, matrix
and requirement-coverage analyses. Deterministic; no model is called.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from app.services.gap_analysis import GapAnalyzer
from app.services.mapping_matrix import MappingMatrixBuilder
from app.services.requirement_coverage import RequirementCoverageAnalyzer

INSIGHT_CONFIDENCE = 0.75
LOW_COVERAGE_THRESHOLD = 0.5

GAP_KEYWORDS = ("gap", "missing")
OVERLAP_KEYWORDS = ("overlap", "mapping")
REQUIREMENT_KEYWORDS = ("requirement", "trustworth")


@dataclass
class AnalysisInsights:
    query: str
    findings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    cross_framework_insights: list[str] = field(default_factory=list)
    related_controls: list[str] = field(default_factory=list)
    confidence: float = INSIGHT_CONFIDENCE


class InsightService:

    def __init__(
        self,
        gaps: GapAnalyzer,
        matrix: MappingMatrixBuilder,
        coverage: RequirementCoverageAnalyzer,
    ):
        self.gaps = gaps
        self.matrix = matrix
        self.coverage = coverage

    async def analyze_cross_framework(self, query: str, tenant_id: str) -> AnalysisInsights:
        text = (query or "").lower()
        result = AnalysisInsights(query=query)

        if any(k in text for k in GAP_KEYWORDS):
            gaps = await self.gaps.identify_gaps(tenant_id)
            result.findings.append(f"Found {len(gaps.unmapped_controls)} unmapped controls")
            result.findings.append(
                f"Found {len(gaps.unmapped_requirements)} requirements with insufficient coverage"
            )
            result.recommendations.extend(r.description for r in gaps.recommendations)
            result.related_controls.extend(uc.control_id for uc in gaps.unmapped_controls[:10])

        if any(k in text for k in OVERLAP_KEYWORDS):
            summary = (await self.matrix.build_matrix()).summary
            result.findings.append(f"Analyzed {summary.total_frameworks} frameworks")
            result.findings.append(f"Found {summary.total_mappings} cross-framework mappings")
            result.cross_framework_insights.append(f"Average overlap: {summary.average_overlap:.1f}%")
            result.cross_framework_insights.append(
                f"Most connected: {summary.most_mapped_framework or 'none'}"
            )

        if any(k in text for k in REQUIREMENT_KEYWORDS):
            for req in await self.coverage.get_requirement_coverage():
                if req.average_coverage < LOW_COVERAGE_THRESHOLD:
                    result.findings.append(
                        f"Low coverage for {req.requirement_name}: {req.average_coverage * 100:.0f}%"
                    )
                    result.recommendations.append(f"Increase control mapping for {req.requirement_name}")

        return result
