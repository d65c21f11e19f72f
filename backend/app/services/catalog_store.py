"""
Read adapters over the stores the analysis engine consumes.

- CatalogStore      — frameworks, controls, requirements, requirement mappings
- AssessmentStore   — recent control assessments and score updates
- QualitativeStore  — qualitative findings and review reports

Each store wraps one AsyncSession. Connectivity failures are raised as
UpstreamUnavailable naming the store; nothing is retried here.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import UpstreamUnavailable
from app.models.assessment import ControlAssessment
from app.models.base import utcnow
from app.models.catalog import Control, Framework, Requirement, RequirementControlMapping
from app.models.qualitative import QualitativeFinding, QualitativeReport

logger = logging.getLogger(__name__)


@asynccontextmanager
async def upstream(store: str):
    """Translate driver connectivity errors into UpstreamUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error("%s store unreachable: %s", store, exc)
        raise UpstreamUnavailable(store, details={"error": str(exc.orig or exc)}) from exc


@dataclass
class FrameworkInfo:
    id: str
    name: str
    control_count: int


@dataclass
class RequirementControl:
    """A control mapped to a requirement, with its framework context."""
    requirement_id: str
    control_id: str
    title: str
    category: str | None
    framework_id: str
    framework_name: str
    mapping_strength: float


class CatalogStore:
    """Read-only view of the control catalog."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active_frameworks(self) -> list[FrameworkInfo]:
        """Active frameworks ordered by name, with their active control counts."""
        q = (
            select(Framework.id, Framework.name, func.count(Control.id))
            .outerjoin(
                Control,
                and_(Control.framework_id == Framework.id, Control.is_active.is_(True)),
            )
            .where(Framework.is_active.is_(True))
            .group_by(Framework.id, Framework.name)
            .order_by(Framework.name, Framework.id)
        )
        async with upstream("catalog"):
            rows = (await self.session.execute(q)).all()
        return [FrameworkInfo(id=r[0], name=r[1], control_count=int(r[2] or 0)) for r in rows]

    async def get_control(self, control_id: str) -> Control | None:
        async with upstream("catalog"):
            return await self.session.get(Control, control_id)

    async def list_active_controls(
        self, framework_id: str | None = None, limit: int | None = None,
    ) -> list[Control]:
        q = select(Control).where(Control.is_active.is_(True))
        if framework_id:
            q = q.where(Control.framework_id == framework_id)
        q = q.order_by(Control.framework_id, Control.id)
        if limit:
            q = q.limit(limit)
        async with upstream("catalog"):
            return list((await self.session.execute(q)).scalars().all())

    async def count_active_controls(self, framework_ids: list[str] | None = None) -> dict[str, int]:
        q = (
            select(Control.framework_id, func.count(Control.id))
            .where(Control.is_active.is_(True))
            .group_by(Control.framework_id)
        )
        if framework_ids is not None:
            q = q.where(Control.framework_id.in_(framework_ids))
        async with upstream("catalog"):
            rows = (await self.session.execute(q)).all()
        return {fw_id: int(count) for fw_id, count in rows}

    async def framework_names(self, framework_ids: list[str]) -> dict[str, str]:
        q = select(Framework.id, Framework.name).where(Framework.id.in_(framework_ids))
        async with upstream("catalog"):
            rows = (await self.session.execute(q)).all()
        return {fw_id: name for fw_id, name in rows}

    async def list_requirements(self) -> list[Requirement]:
        q = select(Requirement).order_by(Requirement.display_order, Requirement.id)
        async with upstream("catalog"):
            return list((await self.session.execute(q)).scalars().all())

    async def get_requirement(self, requirement_id: str) -> Requirement | None:
        async with upstream("catalog"):
            return await self.session.get(Requirement, requirement_id)

    async def list_requirement_control_mappings(
        self, requirement_id: str | None = None,
    ) -> list[RequirementControl]:
        """Mappings onto active controls, by framework name then strength (desc)."""
        q = (
            select(
                RequirementControlMapping.requirement_id,
                RequirementControlMapping.control_id,
                RequirementControlMapping.mapping_strength,
                Control.title,
                Control.category,
                Control.framework_id,
                Framework.name,
            )
            .join(Control, RequirementControlMapping.control_id == Control.id)
            .join(Framework, Control.framework_id == Framework.id)
            .where(Control.is_active.is_(True))
            .order_by(Framework.name, RequirementControlMapping.mapping_strength.desc(), Control.id)
        )
        if requirement_id:
            q = q.where(RequirementControlMapping.requirement_id == requirement_id)
        async with upstream("catalog"):
            rows = (await self.session.execute(q)).all()
        return [
            RequirementControl(
                requirement_id=r[0],
                control_id=r[1],
                mapping_strength=float(r[2] or 0),
                title=r[3],
                category=r[4],
                framework_id=r[5],
                framework_name=r[6],
            )
            for r in rows
        ]


class AssessmentStore:
    """Quantitative control assessments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_recent_assessments(self, control_id: str, max_age_days: int) -> list[ControlAssessment]:
        cutoff = utcnow() - timedelta(days=max_age_days)
        q = (
            select(ControlAssessment)
            .where(
                ControlAssessment.control_id == control_id,
                ControlAssessment.assessed_at > cutoff,
            )
            .order_by(ControlAssessment.id)
        )
        async with upstream("assessment"):
            return list((await self.session.execute(q)).scalars().all())

    async def update_assessment_score(self, assessment_id: int, new_score: float) -> None:
        q = (
            update(ControlAssessment)
            .where(ControlAssessment.id == assessment_id)
            .values(score=new_score)
        )
        async with upstream("assessment"):
            await self.session.execute(q)


class QualitativeStore:
    """Qualitative review reports and their findings."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_finding(self, finding_id: int) -> QualitativeFinding | None:
        async with upstream("qualitative"):
            return await self.session.get(QualitativeFinding, finding_id)

    async def get_report(self, report_id: int) -> QualitativeReport | None:
        async with upstream("qualitative"):
            return await self.session.get(QualitativeReport, report_id)

    async def get_findings_for_report(self, report_id: int) -> list[QualitativeFinding]:
        q = (
            select(QualitativeFinding)
            .join(QualitativeReport, QualitativeReport.assessment_id == QualitativeFinding.assessment_id)
            .where(QualitativeReport.id == report_id)
            .order_by(QualitativeFinding.id)
        )
        async with upstream("qualitative"):
            return list((await self.session.execute(q)).scalars().all())
