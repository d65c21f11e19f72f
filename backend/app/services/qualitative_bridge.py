"""
Qualitative → quantitative bridge.

Links qualitative review findings to catalog controls by keyword overlap,
and turns those links into multiplicative adjustments of recent control
assessment scores.

Re-running ``adjust_control_weights`` for the same report compounds the
adjustment; every application is recorded in ``applied_weight_adjustments``
and ``once=True`` skips links already applied for the report.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import NotFound
from app.models.base import utcnow
from app.models.catalog import Control
from app.models.cross_analysis import AppliedWeightAdjustment, LinkType, ZInspectionControlLink
from app.models.qualitative import FindingType
from app.services.catalog_store import AssessmentStore, CatalogStore, QualitativeStore, upstream
from app.services.text_similarity import keyword_overlap, tokenize

logger = logging.getLogger(__name__)

DIRECT_THRESHOLD = 0.8
INDIRECT_THRESHOLD = 0.5

FINDING_WEIGHTS = {
    FindingType.WEAKNESS: 0.2,
    FindingType.THREAT: 0.3,
    FindingType.RECOMMENDATION: 0.1,
}


@dataclass
class ControlMatch:
    control: Control
    similarity: float
    matched_tokens: list[str]


@dataclass
class WeightAdjustment:
    control_id: str
    original_weight: float
    adjusted_weight: float
    adjustment_reason: str | None
    finding_id: int
    link_id: int
    assessments_updated: int


def classify_link(similarity: float) -> LinkType:
    if similarity >= DIRECT_THRESHOLD:
        return LinkType.DIRECT
    if similarity >= INDIRECT_THRESHOLD:
        return LinkType.INDIRECT
    return LinkType.RECOMMENDED


def weight_for_finding(finding_type: FindingType | str | None) -> float:
    try:
        return FINDING_WEIGHTS.get(FindingType(finding_type), 0.0)
    except ValueError:
        return 0.0


def match_controls(
    tokens: list[str],
    controls: list[Control],
    min_similarity: float = 0.2,
    limit: int = 10,
) -> list[ControlMatch]:
    """Controls whose title + description contain enough of ``tokens``.

    Keeps matches strictly above ``min_similarity``, best first.
    """
    if not tokens:
        return []
    matches = []
    for control in controls:
        similarity, matched = keyword_overlap(
            tokens, f"{control.title or ''} {control.description or ''}",
        )
        if similarity > min_similarity:
            matches.append(ControlMatch(control, similarity, matched))
    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches[:limit]


class QualitativeBridge:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        control_sample: int = 100,
        min_similarity: float = 0.2,
        max_links: int = 10,
        recency_days: int = 30,
    ):
        self._sessions = session_factory
        self.control_sample = control_sample
        self.min_similarity = min_similarity
        self.max_links = max_links
        self.recency_days = recency_days

    async def link_finding_to_controls(self, finding_id: int) -> list[ZInspectionControlLink]:
        """Create links from a finding to its best-matching controls.

        Existing (finding, control) links are kept as they are and returned
        alongside the new ones.
        """
        try:
            return await self._link_finding(finding_id)
        except IntegrityError:
            # A concurrent call inserted one of the pairs first
            logger.info("Link race for finding %s; re-reading existing links", finding_id)
            return await self._link_finding(finding_id)

    async def _link_finding(self, finding_id: int) -> list[ZInspectionControlLink]:
        async with self._sessions() as s:
            finding = await QualitativeStore(s).get_finding(finding_id)
            if finding is None:
                raise NotFound(f"Finding {finding_id} not found", {"finding_id": finding_id})

            tokens = tokenize(f"{finding.title or ''} {finding.description or ''}")
            controls = await CatalogStore(s).list_active_controls(limit=self.control_sample)
            matches = match_controls(tokens, controls, self.min_similarity, self.max_links)
            if not matches:
                logger.info("Finding %s matched no controls", finding_id)
                return []

            weight = weight_for_finding(finding.finding_type)
            async with upstream("analysis"):
                existing = {
                    link.control_id: link
                    for link in (await s.execute(
                        select(ZInspectionControlLink).where(ZInspectionControlLink.finding_id == finding_id)
                    )).scalars().all()
                }

                links = []
                created = 0
                for match in matches:
                    link = existing.get(match.control.id)
                    if link is None:
                        link = ZInspectionControlLink(
                            finding_id=finding_id,
                            control_id=match.control.id,
                            framework_id=match.control.framework_id,
                            link_type=classify_link(match.similarity),
                            weight_adjustment=weight,
                            similarity=round(match.similarity, 4),
                            rationale=f"Mapped based on keyword match ({', '.join(match.matched_tokens)})",
                            created_at=utcnow(),
                        )
                        s.add(link)
                        created += 1
                    links.append(link)
                await s.commit()

        logger.info("Finding %s linked to %d controls (%d new)", finding_id, len(links), created)
        return links

    async def get_links_for_finding(self, finding_id: int) -> list[ZInspectionControlLink]:
        async with self._sessions() as s:
            if await QualitativeStore(s).get_finding(finding_id) is None:
                raise NotFound(f"Finding {finding_id} not found", {"finding_id": finding_id})
            q = (
                select(ZInspectionControlLink)
                .where(ZInspectionControlLink.finding_id == finding_id)
                .order_by(ZInspectionControlLink.similarity.desc(), ZInspectionControlLink.id)
            )
            async with upstream("analysis"):
                return list((await s.execute(q)).scalars().all())

    async def adjust_control_weights(self, report_id: int, once: bool = False) -> list[WeightAdjustment]:
        """Scale recent assessment scores of controls linked to the report's findings.

        score = min(100, score * (1 + weight_adjustment)) for assessments within
        the recency window, for every link with a nonzero adjustment.
        """
        async with self._sessions() as s:
            qualitative = QualitativeStore(s)
            if await qualitative.get_report(report_id) is None:
                raise NotFound(f"Report {report_id} not found", {"report_id": report_id})
            findings = await qualitative.get_findings_for_report(report_id)
            assessments = AssessmentStore(s)

            async with upstream("analysis"):
                already_applied: set[int] = set()
                if once:
                    already_applied = set((await s.execute(
                        select(AppliedWeightAdjustment.link_id).where(
                            AppliedWeightAdjustment.report_id == report_id,
                        )
                    )).scalars().all())

                links_by_finding = {}
                for finding in findings:
                    links_by_finding[finding.id] = (await s.execute(
                        select(ZInspectionControlLink)
                        .where(
                            ZInspectionControlLink.finding_id == finding.id,
                            ZInspectionControlLink.weight_adjustment != 0,
                        )
                        .order_by(ZInspectionControlLink.id)
                    )).scalars().all()

            adjustments = []
            for finding in findings:
                for link in links_by_finding[finding.id]:
                    if link.id in already_applied:
                        continue
                    factor = 1.0 + link.weight_adjustment
                    recent = await assessments.get_recent_assessments(link.control_id, self.recency_days)
                    for assessment in recent:
                        await assessments.update_assessment_score(
                            assessment.id, min(100.0, assessment.score * factor),
                        )
                    s.add(AppliedWeightAdjustment(
                        report_id=report_id,
                        link_id=link.id,
                        weight_adjustment=link.weight_adjustment,
                        assessments_updated=len(recent),
                        applied_at=utcnow(),
                    ))
                    adjustments.append(WeightAdjustment(
                        control_id=link.control_id,
                        original_weight=1.0,
                        adjusted_weight=factor,
                        adjustment_reason=link.rationale,
                        finding_id=finding.id,
                        link_id=link.id,
                        assessments_updated=len(recent),
                    ))

            async with upstream("assessment"):
                await s.commit()

        logger.info(
            "Report %s: applied %d weight adjustments (once=%s)", report_id, len(adjustments), once,
        )
        return adjustments
