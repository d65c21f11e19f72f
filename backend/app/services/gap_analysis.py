"""
Gap analysis — controls and requirements with too little cross-framework
mapping, plus deterministic recommendations.

Suggestions come from title trigram similarity (with a same-category
boost) and, for requirements, substring matching of the requirement name.
Recommendation generation is a pure function of its inputs.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select, union
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.base import utcnow
from app.models.catalog import Control
from app.models.cross_analysis import CrossReference
from app.services.catalog_store import CatalogStore, upstream
from app.services.text_similarity import jaccard, trigrams

logger = logging.getLogger(__name__)

# Category → remediation priority (coarse heuristic, not a risk model)
CATEGORY_PRIORITY = {
    "organizational": "high",
    "technological": "medium",
    "physical": "medium",
    "people": "low",
}
DEFAULT_PRIORITY = "medium"

# Ranking bonus for candidates sharing the control's category
CATEGORY_BOOST = 0.1

UNMAPPED_CONTROLS_THRESHOLD = 10
HIGH_EFFORT_THRESHOLD = 50


@dataclass
class SuggestedMapping:
    target_control_id: str
    target_framework_id: str
    target_title: str
    confidence: float
    reason: str


@dataclass
class UnmappedControl:
    control_id: str
    control_title: str
    framework_id: str
    category: str | None
    priority: str
    suggested_mappings: list[SuggestedMapping] = field(default_factory=list)


@dataclass
class UnmappedRequirement:
    requirement_id: str
    requirement_name: str
    mapped_control_count: int
    frameworks_with_gaps: list[str]
    suggested_controls: list[str]


@dataclass
class GapRecommendation:
    type: str               # add_mapping | increase_coverage
    priority: str           # critical | high | medium | low
    description: str
    affected_frameworks: list[str]
    estimated_effort: str   # low | medium | high


@dataclass
class GapAnalysis:
    tenant_id: str
    unmapped_controls: list[UnmappedControl]
    unmapped_requirements: list[UnmappedRequirement]
    recommendations: list[GapRecommendation]
    overall_coverage_score: float
    last_analyzed: datetime


def determine_priority(category: str | None) -> str:
    return CATEGORY_PRIORITY.get((category or "").strip().lower(), DEFAULT_PRIORITY)


IndexedControl = tuple[Control, set[str]]


def index_titles(controls: list[Control]) -> list[IndexedControl]:
    """Pair each control with its title trigram set."""
    return [(c, trigrams(c.title)) for c in controls]


def suggest_mappings(
    control: Control,
    candidates: list[IndexedControl],
    limit: int = 5,
    min_similarity: float = 0.3,
    control_grams: set[str] | None = None,
) -> list[SuggestedMapping]:
    """Rank other controls by title similarity, boosting the same category.

    A candidate qualifies when it shares the category or its similarity is
    above ``min_similarity``. Zero similarity reports ``min_similarity`` as
    the confidence.
    """
    grams = trigrams(control.title) if control_grams is None else control_grams
    scored = []
    for other, other_grams in candidates:
        if other.id == control.id:
            continue
        similarity = jaccard(grams, other_grams)
        same_category = bool(control.category) and other.category == control.category
        if not same_category and similarity <= min_similarity:
            continue
        rank = similarity + (CATEGORY_BOOST if same_category else 0.0)
        scored.append((rank, similarity, same_category, other))

    scored.sort(key=lambda item: item[0], reverse=True)

    return [
        SuggestedMapping(
            target_control_id=other.id,
            target_framework_id=other.framework_id,
            target_title=other.title,
            confidence=round(similarity, 4) if similarity > 0 else min_similarity,
            reason="Same category with similar title" if same_category else "Similar title",
        )
        for _, similarity, same_category, other in scored[:limit]
    ]


def suggest_for_unmapped(
    unmapped: list[Control],
    candidates: list[Control],
    limit: int = 5,
    min_similarity: float = 0.3,
) -> list[list[SuggestedMapping]]:
    """Suggestions for each unmapped control. CPU-bound; trigrams computed once per control."""
    index = index_titles(candidates)
    by_id = {c.id: grams for c, grams in index}
    return [
        suggest_mappings(c, index, limit, min_similarity, by_id.get(c.id))
        for c in unmapped
    ]


def requirement_keywords(name: str) -> list[str]:
    """Whitespace tokens longer than three characters, lower-cased."""
    return [t for t in (name or "").lower().split() if len(t) > 3]


def suggest_controls_for_requirement(
    requirement_name: str,
    controls: list[Control],
    exclude: set[str],
    limit: int = 10,
) -> list[str]:
    keywords = requirement_keywords(requirement_name)
    if not keywords:
        return []
    found = []
    for control in controls:
        if control.id in exclude:
            continue
        title = (control.title or "").lower()
        if any(k in title for k in keywords):
            found.append(control.id)
            if len(found) >= limit:
                break
    return found


def generate_recommendations(
    unmapped_controls: list[UnmappedControl],
    unmapped_requirements: list[UnmappedRequirement],
) -> list[GapRecommendation]:
    recommendations = []

    by_framework: dict[str, int] = defaultdict(int)
    for uc in unmapped_controls:
        by_framework[uc.framework_id] += 1

    for framework_id, count in by_framework.items():
        if count > UNMAPPED_CONTROLS_THRESHOLD:
            recommendations.append(GapRecommendation(
                type="add_mapping",
                priority="high",
                description=f"Framework {framework_id} has {count} unmapped controls",
                affected_frameworks=[framework_id],
                estimated_effort="high" if count > HIGH_EFFORT_THRESHOLD else "medium",
            ))

    for req in unmapped_requirements:
        recommendations.append(GapRecommendation(
            type="increase_coverage",
            priority="critical",
            description=(
                f"Requirement '{req.requirement_name}' has only "
                f"{req.mapped_control_count} mapped controls"
            ),
            affected_frameworks=list(req.frameworks_with_gaps),
            estimated_effort="medium",
        ))

    return recommendations


def _mapped_control_ids():
    """Distinct control ids appearing in either role of a cross-reference."""
    return union(
        select(CrossReference.source_control_id.label("control_id")),
        select(CrossReference.target_control_id.label("control_id")),
    ).subquery()


class GapAnalyzer:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        unmapped_limit: int = 100,
        suggestion_limit: int = 5,
        min_similarity: float = 0.3,
        requirement_min_controls: int = 3,
        requirement_suggestion_limit: int = 10,
    ):
        self._sessions = session_factory
        self.unmapped_limit = unmapped_limit
        self.suggestion_limit = suggestion_limit
        self.min_similarity = min_similarity
        self.requirement_min_controls = requirement_min_controls
        self.requirement_suggestion_limit = requirement_suggestion_limit

    async def find_unmapped_controls(self) -> list[UnmappedControl]:
        """Active controls with no cross-reference in either role (bounded)."""
        mapped = _mapped_control_ids()
        q = (
            select(Control)
            .where(
                Control.is_active.is_(True),
                Control.id.not_in(select(mapped.c.control_id)),
            )
            .order_by(Control.framework_id, Control.id)
            .limit(self.unmapped_limit)
        )
        async with self._sessions() as s:
            async with upstream("catalog"):
                unmapped = list((await s.execute(q)).scalars().all())
            candidates = await CatalogStore(s).list_active_controls() if unmapped else []

        # Scoring is pure CPU; keep it off the event loop
        loop = asyncio.get_running_loop()
        suggestions = await loop.run_in_executor(
            None, suggest_for_unmapped, unmapped, candidates, self.suggestion_limit, self.min_similarity,
        )

        return [
            UnmappedControl(
                control_id=c.id,
                control_title=c.title,
                framework_id=c.framework_id,
                category=c.category,
                priority=determine_priority(c.category),
                suggested_mappings=suggested,
            )
            for c, suggested in zip(unmapped, suggestions)
        ]

    async def find_unmapped_requirements(self) -> list[UnmappedRequirement]:
        """Requirements mapped to fewer than the minimum number of active controls."""
        async with self._sessions() as s:
            catalog = CatalogStore(s)
            requirements = await catalog.list_requirements()
            mappings = await catalog.list_requirement_control_mappings()
            frameworks = await catalog.list_active_frameworks()
            controls = await catalog.list_active_controls()

        by_requirement = defaultdict(list)
        for m in mappings:
            by_requirement[m.requirement_id].append(m)

        results = []
        for req in requirements:
            mapped = by_requirement.get(req.id, [])
            if len(mapped) >= self.requirement_min_controls:
                continue
            covered = {m.framework_id for m in mapped}
            results.append(UnmappedRequirement(
                requirement_id=req.id,
                requirement_name=req.name,
                mapped_control_count=len(mapped),
                frameworks_with_gaps=[f.id for f in frameworks if f.id not in covered],
                suggested_controls=suggest_controls_for_requirement(
                    req.name,
                    controls,
                    exclude={m.control_id for m in mapped},
                    limit=self.requirement_suggestion_limit,
                ),
            ))
        return results

    async def coverage_score(self) -> float:
        """Share of active controls that appear in any cross-reference (0 – 100)."""
        mapped = _mapped_control_ids()
        async with self._sessions() as s:
            async with upstream("catalog"):
                total = await s.scalar(
                    select(func.count(Control.id)).where(Control.is_active.is_(True))
                )
                covered = await s.scalar(
                    select(func.count(Control.id)).where(
                        Control.is_active.is_(True),
                        Control.id.in_(select(mapped.c.control_id)),
                    )
                )
        if not total:
            return 0.0
        return round(covered / total * 100, 2)

    async def identify_gaps(self, tenant_id: str) -> GapAnalysis:
        unmapped_controls = await self.find_unmapped_controls()
        unmapped_requirements = await self.find_unmapped_requirements()
        recommendations = generate_recommendations(unmapped_controls, unmapped_requirements)
        score = await self.coverage_score()

        logger.info(
            "Gap analysis for tenant %s: %d unmapped controls, %d under-covered requirements, coverage %.2f%%",
            tenant_id, len(unmapped_controls), len(unmapped_requirements), score,
        )
        return GapAnalysis(
            tenant_id=tenant_id,
            unmapped_controls=unmapped_controls,
            unmapped_requirements=unmapped_requirements,
            recommendations=recommendations,
            overall_coverage_score=score,
            last_analyzed=utcnow(),
        )
