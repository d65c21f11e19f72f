"""
Framework overlap — how much two frameworks' controls are cross-referenced.

Results are normalised against the smaller catalogue and materialised in
``framework_overlap_cache`` (canonical pair order, TTL freshness).

Every cross-reference write touching a pair bumps the pair's generation
(``framework_pair_versions``) in the writing transaction. A reader records
the generation before aggregating and stores its result under it; a cached
row is served only while its generation is still current, so a value
computed before a concurrent write committed is never served after it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.base import utcnow
from app.models.cross_analysis import (
    CrossReference,
    FrameworkOverlapCache,
    FrameworkPairVersion,
    RelationshipType,
    pair_key,
)
from app.services.catalog_store import CatalogStore, upstream

logger = logging.getLogger(__name__)


@dataclass
class FrameworkOverlap:
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


def overlap_percentage(total_mappings: int, count_a: int, count_b: int) -> float:
    """total / min(count_a, count_b) * 100, clamped to 100; denominator floors at 1."""
    denominator = max(min(count_a, count_b), 1)
    return round(min(100.0, total_mappings / denominator * 100), 2)


def _pair_clause(model_a, model_b, first_id: str, second_id: str):
    return or_(
        and_(model_a == first_id, model_b == second_id),
        and_(model_a == second_id, model_b == first_id),
    )


class OverlapCache:
    """Access to the materialised overlap rows. Callers own the session and commit."""

    def __init__(self, ttl: timedelta):
        self.ttl = ttl

    async def generation(self, s: AsyncSession, framework_a: str, framework_b: str) -> int:
        """Current write generation of the pair (0 before any write)."""
        current = await s.scalar(
            select(FrameworkPairVersion.generation).where(
                FrameworkPairVersion.pair_key == pair_key(framework_a, framework_b)
            )
        )
        return current or 0

    async def get(
        self, s: AsyncSession, framework_a: str, framework_b: str, generation: int,
    ) -> FrameworkOverlap | None:
        """Fresh cached overlap computed at ``generation``, else None."""
        fresh_after = utcnow() - self.ttl
        q = select(FrameworkOverlapCache).where(
            _pair_clause(
                FrameworkOverlapCache.framework1_id,
                FrameworkOverlapCache.framework2_id,
                framework_a, framework_b,
            ),
            FrameworkOverlapCache.generation == generation,
            FrameworkOverlapCache.calculated_at > fresh_after,
        )
        row = (await s.execute(q)).scalars().first()
        if row is None:
            return None
        return FrameworkOverlap(
            framework1_id=row.framework1_id,
            framework1_name=row.framework1_name,
            framework2_id=row.framework2_id,
            framework2_name=row.framework2_name,
            total_mappings=row.total_mappings,
            equivalent_count=row.equivalent_count,
            partial_count=row.partial_count,
            related_count=row.related_count,
            overlap_percentage=row.overlap_percentage,
            last_calculated=row.calculated_at,
        )

    async def invalidate(self, s: AsyncSession, framework_a: str, framework_b: str) -> int:
        """Bump the pair's generation and drop its cached row.

        Must run in the transaction that writes the cross-reference.
        Returns the new generation.
        """
        key = pair_key(framework_a, framework_b)
        result = await s.execute(
            update(FrameworkPairVersion)
            .where(FrameworkPairVersion.pair_key == key)
            .values(generation=FrameworkPairVersion.generation + 1, updated_at=utcnow())
        )
        if not result.rowcount:
            # First write for the pair; a racing insert fails on the primary key
            s.add(FrameworkPairVersion(pair_key=key, generation=1, updated_at=utcnow()))
            await s.flush()
        await self._drop(s, framework_a, framework_b)
        return await self.generation(s, framework_a, framework_b)

    async def put(self, s: AsyncSession, overlap: FrameworkOverlap, generation: int) -> bool:
        """Replace the pair's cached row with ``overlap`` computed at ``generation``.

        Skipped (returns False) when the pair has been written since.
        """
        current = await self.generation(s, overlap.framework1_id, overlap.framework2_id)
        if current != generation:
            return False

        await self._drop(s, overlap.framework1_id, overlap.framework2_id)
        s.add(FrameworkOverlapCache(
            framework1_id=overlap.framework1_id,
            framework1_name=overlap.framework1_name,
            framework2_id=overlap.framework2_id,
            framework2_name=overlap.framework2_name,
            total_mappings=overlap.total_mappings,
            equivalent_count=overlap.equivalent_count,
            partial_count=overlap.partial_count,
            related_count=overlap.related_count,
            overlap_percentage=overlap.overlap_percentage,
            generation=generation,
            calculated_at=overlap.last_calculated,
        ))
        return True

    async def _drop(self, s: AsyncSession, framework_a: str, framework_b: str) -> None:
        await s.execute(
            delete(FrameworkOverlapCache).where(
                _pair_clause(
                    FrameworkOverlapCache.framework1_id,
                    FrameworkOverlapCache.framework2_id,
                    framework_a, framework_b,
                )
            )
        )


class OverlapCalculator:
    """Computes (and caches) overlap statistics for a framework pair."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cache: OverlapCache):
        self._sessions = session_factory
        self.cache = cache

    async def get_overlap(self, framework_a: str, framework_b: str) -> FrameworkOverlap | None:
        """Overlap for the unordered pair, or None when no cross-reference links them.

        The result always uses canonical order (framework1_id <= framework2_id),
        so argument order never changes the answer.
        """
        f1, f2 = sorted((framework_a, framework_b))
        started = utcnow()

        async with self._sessions() as s:
            # Generation before the aggregate
            async with upstream("analysis"):
                generation = await self.cache.generation(s, f1, f2)
                cached = await self.cache.get(s, f1, f2, generation)
            if cached is not None:
                logger.debug("Overlap cache hit for %s/%s", f1, f2)
                return cached
            logger.debug("Overlap cache miss for %s/%s", f1, f2)

            q = (
                select(CrossReference.relationship_type, func.count(CrossReference.id))
                .where(
                    _pair_clause(
                        CrossReference.source_framework_id,
                        CrossReference.target_framework_id,
                        f1, f2,
                    )
                )
                .group_by(CrossReference.relationship_type)
            )
            async with upstream("analysis"):
                rows = (await s.execute(q)).all()
            if not rows:
                return None

            by_type = {RelationshipType(rel): int(count) for rel, count in rows}
            total = sum(by_type.values())

            catalog = CatalogStore(s)
            control_counts = await catalog.count_active_controls([f1, f2])
            names = await catalog.framework_names([f1, f2])

        overlap = FrameworkOverlap(
            framework1_id=f1,
            framework1_name=names.get(f1, f1),
            framework2_id=f2,
            framework2_name=names.get(f2, f2),
            total_mappings=total,
            equivalent_count=by_type.get(RelationshipType.EQUIVALENT, 0),
            partial_count=by_type.get(RelationshipType.PARTIAL, 0),
            related_count=by_type.get(RelationshipType.RELATED, 0),
            overlap_percentage=overlap_percentage(
                total, control_counts.get(f1, 0), control_counts.get(f2, 0),
            ),
            last_calculated=started,
        )
        await self._store(overlap, generation)
        return overlap

    async def _store(self, overlap: FrameworkOverlap, generation: int) -> None:
        try:
            async with self._sessions() as s:
                stored = await self.cache.put(s, overlap, generation)
                await s.commit()
        except SQLAlchemyError as e:
            logger.warning(
                "Overlap cache write failed for %s/%s: %s",
                overlap.framework1_id, overlap.framework2_id, e,
            )
            return
        if not stored:
            logger.debug(
                "Overlap for %s/%s changed while computing; not cached",
                overlap.framework1_id, overlap.framework2_id,
            )
