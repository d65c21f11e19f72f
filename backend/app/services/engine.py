"""
Wiring for the cross-framework analysis engine.

``build_engine`` is called once at application start-up; request handlers
receive the resulting ``CrossAnalysisEngine`` through ``Depends(get_engine)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.services.cross_reference import CrossReferenceRepository
from app.services.gap_analysis import GapAnalyzer
from app.services.insights import InsightService
from app.services.mapping_matrix import MappingMatrixBuilder
from app.services.overlap import OverlapCache, OverlapCalculator
from app.services.qualitative_bridge import QualitativeBridge
from app.services.requirement_coverage import RequirementCoverageAnalyzer
from app.services.saved_queries import SavedQueryStore


@dataclass
class CrossAnalysisEngine:
    cross_references: CrossReferenceRepository
    overlap_cache: OverlapCache
    overlap: OverlapCalculator
    matrix: MappingMatrixBuilder
    gaps: GapAnalyzer
    coverage: RequirementCoverageAnalyzer
    bridge: QualitativeBridge
    queries: SavedQueryStore
    insights: InsightService


def build_engine(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> CrossAnalysisEngine:
    cache = OverlapCache(ttl=timedelta(hours=settings.OVERLAP_CACHE_TTL_HOURS))
    calculator = OverlapCalculator(session_factory, cache)
    matrix = MappingMatrixBuilder(session_factory, calculator, settings.MATRIX_MAX_CONCURRENCY)
    gaps = GapAnalyzer(
        session_factory,
        unmapped_limit=settings.UNMAPPED_CONTROLS_LIMIT,
        suggestion_limit=settings.SUGGESTION_LIMIT,
        min_similarity=settings.SUGGESTION_MIN_SIMILARITY,
        requirement_min_controls=settings.REQUIREMENT_MIN_CONTROLS,
        requirement_suggestion_limit=settings.REQUIREMENT_SUGGESTION_LIMIT,
    )
    coverage = RequirementCoverageAnalyzer(session_factory)
    bridge = QualitativeBridge(
        session_factory,
        control_sample=settings.LINK_CONTROL_SAMPLE,
        min_similarity=settings.LINK_MIN_SIMILARITY,
        max_links=settings.LINK_MAX_RESULTS,
        recency_days=settings.ASSESSMENT_RECENCY_DAYS,
    )
    return CrossAnalysisEngine(
        cross_references=CrossReferenceRepository(session_factory, cache),
        overlap_cache=cache,
        overlap=calculator,
        matrix=matrix,
        gaps=gaps,
        coverage=coverage,
        bridge=bridge,
        queries=SavedQueryStore(session_factory, matrix, gaps, coverage, bridge),
        insights=InsightService(gaps, matrix, coverage),
    )
