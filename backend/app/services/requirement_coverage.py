"""
Requirement coverage — how each Trustworthy-AI requirement is served by
controls across frameworks.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import NotFound
from app.services.catalog_store import CatalogStore, RequirementControl


@dataclass
class MappedControl:
    id: str
    title: str
    category: str | None
    mapping_strength: float


@dataclass
class FrameworkControls:
    framework_id: str
    framework_name: str
    controls: list[MappedControl] = field(default_factory=list)


@dataclass
class FrameworkCoverage:
    framework_id: str
    framework_name: str
    control_count: int
    coverage_score: float       # mean mapping strength, 0.0 – 1.0
    controls: list[MappedControl]


@dataclass
class RequirementCoverage:
    requirement_id: str
    requirement_name: str
    framework_coverage: list[FrameworkCoverage]
    total_controls: int
    average_coverage: float


def group_by_framework(rows: list[RequirementControl]) -> dict[str, FrameworkControls]:
    """Group mapping rows by framework, keeping row order within each group."""
    grouped: dict[str, FrameworkControls] = {}
    for row in rows:
        bucket = grouped.get(row.framework_id)
        if bucket is None:
            bucket = grouped[row.framework_id] = FrameworkControls(row.framework_id, row.framework_name)
        bucket.controls.append(MappedControl(
            id=row.control_id,
            title=row.title,
            category=row.category,
            mapping_strength=row.mapping_strength,
        ))
    return grouped


def summarize_requirement(
    requirement_id: str, requirement_name: str, grouped: dict[str, FrameworkControls],
) -> RequirementCoverage:
    framework_coverage = []
    for fc in grouped.values():
        strengths = [c.mapping_strength for c in fc.controls]
        framework_coverage.append(FrameworkCoverage(
            framework_id=fc.framework_id,
            framework_name=fc.framework_name,
            control_count=len(strengths),
            coverage_score=sum(strengths) / (len(strengths) or 1),
            controls=fc.controls,
        ))
    total_score = sum(f.coverage_score for f in framework_coverage)
    return RequirementCoverage(
        requirement_id=requirement_id,
        requirement_name=requirement_name,
        framework_coverage=framework_coverage,
        total_controls=sum(f.control_count for f in framework_coverage),
        average_coverage=total_score / len(framework_coverage) if framework_coverage else 0.0,
    )


class RequirementCoverageAnalyzer:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def get_controls_for_requirement(self, requirement_id: str) -> dict[str, FrameworkControls]:
        """Active controls mapped to the requirement, grouped by framework."""
        async with self._sessions() as s:
            catalog = CatalogStore(s)
            if await catalog.get_requirement(requirement_id) is None:
                raise NotFound(
                    f"Requirement {requirement_id} not found", {"requirement_id": requirement_id},
                )
            rows = await catalog.list_requirement_control_mappings(requirement_id)
        return group_by_framework(rows)

    async def get_requirement_coverage(self) -> list[RequirementCoverage]:
        async with self._sessions() as s:
            catalog = CatalogStore(s)
            requirements = await catalog.list_requirements()
            rows = await catalog.list_requirement_control_mappings()

        by_requirement: dict[str, list[RequirementControl]] = defaultdict(list)
        for row in rows:
            by_requirement[row.requirement_id].append(row)

        return [
            summarize_requirement(req.id, req.name, group_by_framework(by_requirement.get(req.id, [])))
            for req in requirements
        ]
