"""
Tests for the overlap calculator and its cache.

Covers:
- Normalisation against the smaller catalogue (and the 100 % clamp)
- Symmetry of lookups
- "No overlap known" when nothing links the frameworks
- Cache hits, expiry, coherence after writes, best-effort cache writes
"""
from datetime import timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from app.models import FrameworkOverlapCache
from app.services.overlap import overlap_percentage


def test_overlap_percentage_normalises_by_smaller_catalogue():
    assert overlap_percentage(5, 10, 20) == 50.0
    assert overlap_percentage(5, 20, 10) == 50.0


def test_overlap_percentage_is_clamped():
    assert overlap_percentage(30, 10, 20) == 100.0


def test_overlap_percentage_empty_catalogue_floors_denominator():
    assert overlap_percentage(0, 0, 12) == 0.0
    assert overlap_percentage(1, 0, 12) == 100.0


def test_overlap_percentage_rounds():
    assert overlap_percentage(1, 3, 3) == 33.33


@pytest.mark.asyncio
async def test_five_equivalent_mappings_give_fifty_percent(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    for i in range(5):
        await engine.cross_references.create(f1[i], f2[i], "equivalent", 0.9)

    overlap = await engine.overlap.get_overlap("F1", "F2")
    assert overlap.total_mappings == 5
    assert overlap.equivalent_count == 5
    assert overlap.partial_count == 0
    assert overlap.overlap_percentage == 50.0
    assert overlap.framework1_name == "Framework One"
    assert overlap.framework2_name == "Framework Two"


@pytest.mark.asyncio
async def test_counts_by_relationship_type(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)
    await engine.cross_references.create(f2[1], f1[1], "partial", 0.7)
    await engine.cross_references.create(f1[2], f2[2], "related", 0.5)
    await engine.cross_references.create(f1[3], f2[3], "complementary", 0.5)

    overlap = await engine.overlap.get_overlap("F2", "F1")
    assert overlap.total_mappings == 4
    assert (overlap.equivalent_count, overlap.partial_count, overlap.related_count) == (1, 1, 1)


@pytest.mark.asyncio
async def test_lookup_is_symmetric(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f2[0], f1[0], "equivalent", 0.9)
    await engine.cross_references.create(f1[1], f2[1], "partial", 0.9)

    ab = await engine.overlap.get_overlap("F1", "F2")
    ba = await engine.overlap.get_overlap("F2", "F1")
    assert ab == ba
    assert ba.framework1_id == "F1"


@pytest.mark.asyncio
async def test_no_cross_references_means_unknown(engine, sessions, seed_frameworks):
    assert await engine.overlap.get_overlap("F1", "F2") is None
    async with sessions() as s:
        assert (await s.execute(select(FrameworkOverlapCache))).first() is None


@pytest.mark.asyncio
async def test_clamped_to_one_hundred(engine, make_framework):
    small = await make_framework("S", controls=2)
    big = await make_framework("B", controls=5)
    await engine.cross_references.create(small[0], big[0], "equivalent", 0.9)
    await engine.cross_references.create(small[0], big[1], "partial", 0.9)
    await engine.cross_references.create(small[1], big[2], "related", 0.9)

    overlap = await engine.overlap.get_overlap("S", "B")
    assert overlap.total_mappings == 3
    assert overlap.overlap_percentage == 100.0


@pytest.mark.asyncio
async def test_result_is_cached(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)
    first = await engine.overlap.get_overlap("F1", "F2")

    async with sessions() as s:
        row = (await s.execute(select(FrameworkOverlapCache))).scalar_one()
    assert (row.framework1_id, row.framework2_id) == ("F1", "F2")
    assert row.total_mappings == 1

    # Served from cache: same calculation timestamp
    again = await engine.overlap.get_overlap("F2", "F1")
    assert again.last_calculated == first.last_calculated


@pytest.mark.asyncio
async def test_new_mapping_visible_after_cached_read(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)
    assert (await engine.overlap.get_overlap("F1", "F2")).total_mappings == 1

    await engine.cross_references.create(f1[1], f2[1], "equivalent", 0.9)
    assert (await engine.overlap.get_overlap("F1", "F2")).total_mappings == 2


@pytest.mark.asyncio
async def test_stale_cache_entry_is_recomputed(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)
    first = await engine.overlap.get_overlap("F1", "F2")

    async with sessions() as s:
        await s.execute(
            update(FrameworkOverlapCache).values(
                calculated_at=first.last_calculated - timedelta(hours=25),
                total_mappings=99,
            )
        )
        await s.commit()

    recomputed = await engine.overlap.get_overlap("F1", "F2")
    assert recomputed.total_mappings == 1
    assert recomputed.last_calculated > first.last_calculated - timedelta(hours=25)


@pytest.mark.asyncio
async def test_cache_write_failure_still_returns_value(engine, sessions, seed_frameworks, monkeypatch):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)

    async def broken_put(*args, **kwargs):
        raise SQLAlchemyError("cache table locked")

    monkeypatch.setattr(engine.overlap_cache, "put", broken_put)

    overlap = await engine.overlap.get_overlap("F1", "F2")
    assert overlap.total_mappings == 1
    async with sessions() as s:
        assert (await s.execute(select(FrameworkOverlapCache))).first() is None


@pytest.mark.asyncio
async def test_read_during_uncommitted_write_is_not_cached(engine, seed_frameworks, monkeypatch):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)

    real_upsert = engine.cross_references._upsert
    real_store = engine.overlap._store
    seen_mid_write = []
    held_stores = []

    async def upsert_then_read(*args, **kwargs):
        ref = await real_upsert(*args, **kwargs)
        # Flushed, not committed: another session still sees one mapping
        seen_mid_write.append(await engine.overlap.get_overlap("F1", "F2"))
        return ref

    async def hold_store(*args):
        held_stores.append(args)

    monkeypatch.setattr(engine.cross_references, "_upsert", upsert_then_read)
    monkeypatch.setattr(engine.overlap, "_store", hold_store)

    await engine.cross_references.create(f1[1], f2[1], "equivalent", 0.9)
    monkeypatch.undo()

    assert seen_mid_write[0].total_mappings == 1
    # The reader's cache write lands only after the writer committed
    for args in held_stores:
        await real_store(*args)

    overlap = await engine.overlap.get_overlap("F1", "F2")
    assert overlap.total_mappings == 2
    assert overlap.overlap_percentage == 20.0


@pytest.mark.asyncio
async def test_put_with_outdated_generation_is_skipped(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)
    async with sessions() as s:
        before = await engine.overlap_cache.generation(s, "F1", "F2")
    overlap = await engine.overlap.get_overlap("F1", "F2")

    await engine.cross_references.create(f1[1], f2[1], "related", 0.5)

    async with sessions() as s:
        assert await engine.overlap_cache.generation(s, "F2", "F1") == before + 1
        assert await engine.overlap_cache.put(s, overlap, before) is False
        await s.commit()
        assert (await s.execute(select(FrameworkOverlapCache))).first() is None


@pytest.mark.asyncio
async def test_cached_row_from_older_generation_is_not_served(engine, sessions, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)
    await engine.overlap.get_overlap("F1", "F2")

    # A row left behind at an old generation (e.g. written after a concurrent invalidation)
    async with sessions() as s:
        await s.execute(update(FrameworkOverlapCache).values(generation=0, total_mappings=99))
        await s.commit()

    assert (await engine.overlap.get_overlap("F1", "F2")).total_mappings == 1
