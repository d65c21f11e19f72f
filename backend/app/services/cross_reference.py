"""
Cross-reference repository — typed links between controls of different
frameworks.

One row per unordered control pair (``pair_key``); writing a pair again
updates it in place. Every write invalidates the overlap cache for the two
frameworks in the same transaction.
"""
from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import InvalidRelationship, NotFound
from app.models.base import utcnow
from app.models.cross_analysis import CrossReference, MappingSource, RelationshipType, pair_key
from app.services.catalog_store import CatalogStore, upstream
from app.services.overlap import OverlapCache

logger = logging.getLogger(__name__)

EQUIVALENT_TYPES = (RelationshipType.EQUIVALENT, RelationshipType.PARTIAL)


class CrossReferenceRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cache: OverlapCache):
        self._sessions = session_factory
        self.cache = cache

    async def create(
        self,
        source_control_id: str,
        target_control_id: str,
        relationship_type: RelationshipType | str,
        confidence: float = 0.8,
        mapped_by: MappingSource | str = MappingSource.SYSTEM,
        rationale: str | None = None,
    ) -> CrossReference:
        """Create or update the cross-reference for an unordered control pair."""
        if source_control_id == target_control_id:
            raise InvalidRelationship(
                "A control cannot be cross-referenced to itself",
                {"control_id": source_control_id},
            )
        if not 0.0 <= confidence <= 1.0:
            raise InvalidRelationship(
                "Mapping confidence must be between 0 and 1",
                {"confidence": confidence},
            )
        try:
            relationship_type = RelationshipType(relationship_type)
            mapped_by = MappingSource(mapped_by)
        except ValueError as e:
            raise InvalidRelationship(str(e)) from e

        async with self._sessions() as s:
            catalog = CatalogStore(s)
            # (control id, framework id); plain values survive a rollback
            source = await self._active_control(catalog, source_control_id)
            target = await self._active_control(catalog, target_control_id)

            async with upstream("analysis"):
                try:
                    ref = await self._upsert(
                        s, source, target, relationship_type, confidence, mapped_by, rationale,
                    )
                    await s.commit()
                except IntegrityError:
                    # Lost an insert race for the pair; the row exists now
                    await s.rollback()
                    ref = await self._upsert(
                        s, source, target, relationship_type, confidence, mapped_by, rationale,
                    )
                    await s.commit()

        logger.info(
            "Cross-reference %s %s -> %s (%s, confidence=%.2f)",
            ref.id, source[0], target[0], relationship_type.value, confidence,
        )
        return ref

    async def _active_control(self, catalog: CatalogStore, control_id: str) -> tuple[str, str]:
        control = await catalog.get_control(control_id)
        if control is None or not control.is_active:
            raise NotFound(f"Control {control_id} not found", {"control_id": control_id})
        return control.id, control.framework_id

    async def _upsert(
        self,
        s: AsyncSession,
        source: tuple[str, str],
        target: tuple[str, str],
        relationship_type: RelationshipType,
        confidence: float,
        mapped_by: MappingSource,
        rationale: str | None,
    ) -> CrossReference:
        source_id, source_fw = source
        target_id, target_fw = target
        key = pair_key(source_id, target_id)
        ref = (await s.execute(
            select(CrossReference).where(CrossReference.pair_key == key)
        )).scalar_one_or_none()

        if ref is not None:
            ref.relationship_type = relationship_type
            ref.mapping_confidence = confidence
            ref.rationale = rationale
            ref.updated_at = utcnow()
        else:
            ref = CrossReference(
                source_control_id=source_id,
                target_control_id=target_id,
                source_framework_id=source_fw,
                target_framework_id=target_fw,
                pair_key=key,
                relationship_type=relationship_type,
                mapping_confidence=confidence,
                mapped_by=mapped_by,
                rationale=rationale,
                created_at=utcnow(),
            )
            s.add(ref)
        await s.flush()
        await self.cache.invalidate(s, source_fw, target_fw)
        return ref

    async def find_equivalents(self, control_id: str) -> list[CrossReference]:
        """Equivalent and partial links touching the control, highest confidence first."""
        q = (
            select(CrossReference)
            .where(
                or_(
                    CrossReference.source_control_id == control_id,
                    CrossReference.target_control_id == control_id,
                ),
                CrossReference.relationship_type.in_(EQUIVALENT_TYPES),
            )
            .order_by(CrossReference.mapping_confidence.desc(), CrossReference.id)
        )
        async with self._sessions() as s:
            async with upstream("analysis"):
                return list((await s.execute(q)).scalars().all())

    async def list_all(
        self,
        source_framework_id: str | None = None,
        target_framework_id: str | None = None,
        relationship_type: RelationshipType | None = None,
        mapped_by: MappingSource | None = None,
    ) -> list[CrossReference]:
        q = select(CrossReference)
        if source_framework_id:
            q = q.where(CrossReference.source_framework_id == source_framework_id)
        if target_framework_id:
            q = q.where(CrossReference.target_framework_id == target_framework_id)
        if relationship_type:
            q = q.where(CrossReference.relationship_type == relationship_type)
        if mapped_by:
            q = q.where(CrossReference.mapped_by == mapped_by)
        q = q.order_by(CrossReference.created_at.desc(), CrossReference.id.desc())
        async with self._sessions() as s:
            async with upstream("analysis"):
                return list((await s.execute(q)).scalars().all())

    async def get(self, ref_id: int) -> CrossReference:
        async with self._sessions() as s:
            async with upstream("analysis"):
                ref = await s.get(CrossReference, ref_id)
        if ref is None:
            raise NotFound(f"Cross-reference {ref_id} not found", {"cross_reference_id": ref_id})
        return ref

    async def delete(self, ref_id: int) -> None:
        async with self._sessions() as s:
            async with upstream("analysis"):
                ref = await s.get(CrossReference, ref_id)
                if ref is None:
                    raise NotFound(f"Cross-reference {ref_id} not found", {"cross_reference_id": ref_id})
                await s.delete(ref)
                await self.cache.invalidate(s, ref.source_framework_id, ref.target_framework_id)
                await s.commit()
        logger.info("Cross-reference %s deleted", ref_id)
