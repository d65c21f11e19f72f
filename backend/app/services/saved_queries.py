"""
Saved analysis queries — named, per-tenant analyses that can be re-run.

Running a query dispatches on its type, stores the JSON-encoded result in
``saved_results`` and stamps ``last_run``. Queries never expire.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import InvalidQuery, NotFound
from app.models.base import utcnow
from app.models.cross_analysis import AnalysisQueryType, SavedAnalysisQuery
from app.services.catalog_store import upstream
from app.services.gap_analysis import GapAnalyzer
from app.services.mapping_matrix import MappingMatrixBuilder
from app.services.qualitative_bridge import QualitativeBridge
from app.services.requirement_coverage import RequirementCoverageAnalyzer

logger = logging.getLogger(__name__)

_UNSET = object()


def report_id_from(parameters: dict[str, Any] | None) -> int:
    """The review report a z_inspection query targets (``report_id`` or ``reportId``)."""
    params = parameters or {}
    raw = params.get("report_id", params.get("reportId"))
    if raw is None:
        raise InvalidQuery("z_inspection queries need a report_id parameter", {"parameters": params})
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise InvalidQuery(f"Invalid report_id: {raw!r}", {"parameters": params}) from e


def _validate(query_type: AnalysisQueryType, parameters: dict[str, Any]) -> None:
    if query_type == AnalysisQueryType.Z_INSPECTION:
        report_id_from(parameters)


class SavedQueryStore:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        matrix: MappingMatrixBuilder,
        gaps: GapAnalyzer,
        coverage: RequirementCoverageAnalyzer,
        bridge: QualitativeBridge,
    ):
        self._sessions = session_factory
        self.matrix = matrix
        self.gaps = gaps
        self.coverage = coverage
        self.bridge = bridge

    async def save(
        self,
        tenant_id: str,
        name: str,
        query_type: AnalysisQueryType | str,
        parameters: dict[str, Any] | None = None,
        schedule_frequency: str | None = None,
    ) -> SavedAnalysisQuery:
        try:
            query_type = AnalysisQueryType(query_type)
        except ValueError as e:
            raise InvalidQuery(str(e)) from e
        parameters = parameters or {}
        _validate(query_type, parameters)

        query = SavedAnalysisQuery(
            tenant_id=tenant_id,
            name=name,
            query_type=query_type,
            parameters=parameters,
            is_scheduled=bool(schedule_frequency),
            schedule_frequency=schedule_frequency or None,
        )
        async with self._sessions() as s:
            async with upstream("analysis"):
                s.add(query)
                await s.commit()
        logger.info("Saved query %s (%s) for tenant %s", query.id, query_type.value, tenant_id)
        return query

    async def list_for_tenant(self, tenant_id: str) -> list[SavedAnalysisQuery]:
        q = (
            select(SavedAnalysisQuery)
            .where(SavedAnalysisQuery.tenant_id == tenant_id)
            .order_by(SavedAnalysisQuery.created_at.desc(), SavedAnalysisQuery.id.desc())
        )
        async with self._sessions() as s:
            async with upstream("analysis"):
                return list((await s.execute(q)).scalars().all())

    async def get(self, query_id: int, tenant_id: str) -> SavedAnalysisQuery:
        async with self._sessions() as s:
            return await self._load(s, query_id, tenant_id)

    async def _load(self, s: AsyncSession, query_id: int, tenant_id: str) -> SavedAnalysisQuery:
        async with upstream("analysis"):
            query = await s.get(SavedAnalysisQuery, query_id)
        # Another tenant's query is indistinguishable from a missing one
        if query is None or query.tenant_id != tenant_id:
            raise NotFound(f"Saved query {query_id} not found", {"query_id": query_id})
        return query

    async def update(
        self,
        query_id: int,
        tenant_id: str,
        name: str | None = None,
        parameters: dict[str, Any] | None = None,
        schedule_frequency: Any = _UNSET,
    ) -> SavedAnalysisQuery:
        """Direct edit. Pass ``schedule_frequency=None`` to unschedule."""
        async with self._sessions() as s:
            query = await self._load(s, query_id, tenant_id)
            if name is not None:
                query.name = name
            if parameters is not None:
                _validate(query.query_type, parameters)
                query.parameters = parameters
            if schedule_frequency is not _UNSET:
                query.schedule_frequency = schedule_frequency or None
                query.is_scheduled = bool(schedule_frequency)
            async with upstream("analysis"):
                await s.commit()
        return query

    async def delete(self, query_id: int, tenant_id: str) -> None:
        async with self._sessions() as s:
            query = await self._load(s, query_id, tenant_id)
            async with upstream("analysis"):
                await s.delete(query)
                await s.commit()
        logger.info("Saved query %s deleted", query_id)

    async def run(self, query_id: int, tenant_id: str) -> Any:
        """Execute the query and persist its JSON-encoded result."""
        query = await self.get(query_id, tenant_id)

        if query.query_type == AnalysisQueryType.CROSS_FRAMEWORK:
            result = await self.matrix.build_matrix()
        elif query.query_type == AnalysisQueryType.GAP_ANALYSIS:
            result = await self.gaps.identify_gaps(query.tenant_id)
        elif query.query_type == AnalysisQueryType.REQUIREMENT_COVERAGE:
            result = await self.coverage.get_requirement_coverage()
        else:
            params = query.parameters or {}
            result = await self.bridge.adjust_control_weights(
                report_id_from(params), once=bool(params.get("once", False)),
            )

        encoded = jsonable_encoder(result)
        async with self._sessions() as s:
            stored = await self._load(s, query_id, tenant_id)
            stored.saved_results = encoded
            stored.last_run = utcnow()
            async with upstream("analysis"):
                await s.commit()

        logger.info("Saved query %s (%s) run", query_id, query.query_type.value)
        return encoded
