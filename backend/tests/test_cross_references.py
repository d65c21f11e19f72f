"""
Tests for the cross-reference repository.

Covers:
- Idempotent upsert keyed on the unordered control pair
- Validation (self-reference, confidence range, unknown/inactive controls)
- findEquivalents filtering and ordering
- Listing with ANDed filters, delete
- Overlap cache invalidation on write
"""
import pytest
from sqlalchemy import func, select

from app.exceptions import InvalidRelationship, NotFound
from app.models import Control, CrossReference, FrameworkOverlapCache, MappingSource, RelationshipType


async def _count_refs(sessions) -> int:
    async with sessions() as s:
        return await s.scalar(select(func.count(CrossReference.id)))


@pytest.mark.asyncio
async def test_create_copies_framework_ids(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    ref = await engine.cross_references.create(f1[0], f2[0], RelationshipType.EQUIVALENT, 0.9)
    assert ref.id is not None
    assert ref.source_framework_id == "F1"
    assert ref.target_framework_id == "F2"
    assert ref.relationship_type == RelationshipType.EQUIVALENT
    assert ref.mapped_by == MappingSource.SYSTEM
    assert ref.updated_at is None


@pytest.mark.asyncio
async def test_upsert_second_call_wins(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    first = await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.5, rationale="first")
    second = await engine.cross_references.create(f1[0], f2[0], "partial", 0.9, rationale="second")

    assert await _count_refs(sessions) == 1
    assert second.id == first.id
    stored = await engine.cross_references.get(first.id)
    assert stored.mapping_confidence == pytest.approx(0.9)
    assert stored.relationship_type == RelationshipType.PARTIAL
    assert stored.rationale == "second"
    assert stored.updated_at is not None


@pytest.mark.asyncio
async def test_upsert_matches_reversed_pair(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    first = await engine.cross_references.create(f1[0], f2[0], "related", 0.4)
    again = await engine.cross_references.create(f2[0], f1[0], "equivalent", 0.8)

    assert await _count_refs(sessions) == 1
    assert again.id == first.id
    # Original orientation is kept
    assert again.source_control_id == f1[0]
    assert again.relationship_type == RelationshipType.EQUIVALENT


@pytest.mark.asyncio
async def test_self_reference_rejected(engine, seed_frameworks):
    f1, _ = seed_frameworks
    with pytest.raises(InvalidRelationship):
        await engine.cross_references.create(f1[0], f1[0], "equivalent", 0.8)


@pytest.mark.asyncio
@pytest.mark.parametrize("confidence", [-0.1, 1.5])
async def test_confidence_out_of_range_rejected(engine, seed_frameworks, confidence):
    f1, f2 = seed_frameworks
    with pytest.raises(InvalidRelationship):
        await engine.cross_references.create(f1[0], f2[0], "equivalent", confidence)


@pytest.mark.asyncio
async def test_unknown_relationship_type_rejected(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    with pytest.raises(InvalidRelationship):
        await engine.cross_references.create(f1[0], f2[0], "identical", 0.8)


@pytest.mark.asyncio
async def test_unknown_control_not_found(engine, seed_frameworks):
    f1, _ = seed_frameworks
    with pytest.raises(NotFound) as exc:
        await engine.cross_references.create(f1[0], "NOPE-1", "equivalent", 0.8)
    assert exc.value.details["control_id"] == "NOPE-1"


@pytest.mark.asyncio
async def test_inactive_control_not_found(engine, db, seed_frameworks):
    f1, f2 = seed_frameworks
    control = await db.get(Control, f2[0])
    control.is_active = False
    await db.commit()

    with pytest.raises(NotFound):
        await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.8)


@pytest.mark.asyncio
async def test_find_equivalents_filters_and_orders(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "partial", 0.6)
    await engine.cross_references.create(f2[1], f1[0], "equivalent", 0.95)
    await engine.cross_references.create(f1[0], f2[2], "related", 0.99)
    await engine.cross_references.create(f1[1], f2[3], "equivalent", 0.9)

    rows = await engine.cross_references.find_equivalents(f1[0])
    assert [r.mapping_confidence for r in rows] == [pytest.approx(0.95), pytest.approx(0.6)]
    assert all(r.relationship_type != RelationshipType.RELATED for r in rows)


@pytest.mark.asyncio
async def test_list_filters_are_anded(engine, seed_frameworks, make_framework):
    f1, f2 = seed_frameworks
    f3 = await make_framework("F3", controls=2)
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.8, mapped_by="manual")
    await engine.cross_references.create(f1[1], f2[1], "related", 0.8)
    await engine.cross_references.create(f1[2], f3[0], "equivalent", 0.8)

    assert len(await engine.cross_references.list_all()) == 3
    assert len(await engine.cross_references.list_all(source_framework_id="F1")) == 3
    rows = await engine.cross_references.list_all(
        source_framework_id="F1", target_framework_id="F2",
        relationship_type=RelationshipType.EQUIVALENT,
    )
    assert [r.source_control_id for r in rows] == [f1[0]]
    manual = await engine.cross_references.list_all(mapped_by=MappingSource.MANUAL)
    assert len(manual) == 1


@pytest.mark.asyncio
async def test_delete_removes_row(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    ref = await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.8)
    await engine.cross_references.delete(ref.id)
    assert await _count_refs(sessions) == 0
    with pytest.raises(NotFound):
        await engine.cross_references.delete(ref.id)


@pytest.mark.asyncio
async def test_write_invalidates_cached_overlap(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.8)
    await engine.overlap.get_overlap("F1", "F2")

    async with sessions() as s:
        assert await s.scalar(select(func.count(FrameworkOverlapCache.id))) == 1

    await engine.cross_references.create(f1[1], f2[1], "equivalent", 0.8)

    async with sessions() as s:
        assert await s.scalar(select(func.count(FrameworkOverlapCache.id))) == 0
