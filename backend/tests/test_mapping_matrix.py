"""
Tests for the framework mapping matrix.

Covers:
- Diagonal cells and mirrored off-diagonal cells
- Double-count correction in the summary
- Frameworks without any overlap
- Partial failure (unknown pairs) and systemic store failure
"""
import pytest

from app.exceptions import UpstreamUnavailable
from app.services.catalog_store import FrameworkInfo
from app.services.mapping_matrix import CELL_OK, CELL_UNKNOWN, MatrixCell, summarize


def _fw(fw_id: str, count: int = 1) -> FrameworkInfo:
    return FrameworkInfo(id=fw_id, name=fw_id.upper(), control_count=count)


def test_summarize_halves_mirrored_counts():
    fws = [_fw("a"), _fw("b"), _fw("c")]
    m = [
        [MatrixCell("a", "a", 1, 100.0), MatrixCell("a", "b", 4, 40.0), MatrixCell("a", "c", 2, 20.0)],
        [MatrixCell("b", "a", 4, 40.0), MatrixCell("b", "b", 1, 100.0), MatrixCell("b", "c", 0, 0.0)],
        [MatrixCell("c", "a", 2, 20.0), MatrixCell("c", "b", 0, 0.0), MatrixCell("c", "c", 1, 100.0)],
    ]
    summary = summarize(fws, m)
    assert summary.total_frameworks == 3
    assert summary.total_mappings == 6
    assert summary.average_overlap == 20.0
    assert summary.most_mapped_framework == "A"


def test_summarize_tie_goes_to_first():
    fws = [_fw("a"), _fw("b")]
    m = [
        [MatrixCell("a", "a", 1, 100.0), MatrixCell("a", "b", 3, 30.0)],
        [MatrixCell("b", "a", 3, 30.0), MatrixCell("b", "b", 1, 100.0)],
    ]
    assert summarize(fws, m).most_mapped_framework == "A"


def test_summarize_no_mappings():
    fws = [_fw("a"), _fw("b")]
    m = [
        [MatrixCell("a", "a", 1, 100.0), MatrixCell("a", "b", 0, 0.0)],
        [MatrixCell("b", "a", 0, 0.0), MatrixCell("b", "b", 1, 100.0)],
    ]
    summary = summarize(fws, m)
    assert summary.total_mappings == 0
    assert summary.average_overlap == 0.0
    assert summary.most_mapped_framework is None


def test_summarize_single_framework():
    summary = summarize([_fw("a", 7)], [[MatrixCell("a", "a", 7, 100.0)]])
    assert summary.total_mappings == 0
    assert summary.average_overlap == 0.0


@pytest.mark.asyncio
async def test_two_frameworks_one_mapping(engine, seed_frameworks):
    f1, f2 = seed_frameworks
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)

    result = await engine.matrix.build_matrix()
    assert [f.id for f in result.frameworks] == ["F1", "F2"]
    assert result.summary.total_mappings == 1
    assert result.matrix[0][1].mapping_count == result.matrix[1][0].mapping_count == 1
    assert result.matrix[0][1].overlap_percentage == 10.0
    assert result.matrix[0][0].mapping_count == 10
    assert result.matrix[1][1].mapping_count == 20
    assert result.matrix[0][0].overlap_percentage == 100.0
    assert result.summary.average_overlap == 10.0
    assert result.summary.most_mapped_framework == "Framework One"


@pytest.mark.asyncio
async def test_isolated_framework_row_is_zero(engine, seed_frameworks, make_framework):
    f1, f2 = seed_frameworks
    await make_framework("F3", "Framework Three", controls=3)
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)

    result = await engine.matrix.build_matrix()
    names = [f.name for f in result.frameworks]
    assert names == ["Framework One", "Framework Three", "Framework Two"]
    iso = names.index("Framework Three")
    for j, cell in enumerate(result.matrix[iso]):
        if j != iso:
            assert cell.status == CELL_OK
            assert cell.mapping_count == 0
            assert cell.overlap_percentage == 0.0
    assert result.summary.unknown_pairs == 0


@pytest.mark.asyncio
async def test_inactive_frameworks_excluded(engine, seed_frameworks, make_framework):
    await make_framework("OLD", controls=2, is_active=False)
    result = await engine.matrix.build_matrix()
    assert "OLD" not in [f.id for f in result.frameworks]


@pytest.mark.asyncio
async def test_failed_pair_reported_unknown(engine, seed_frameworks, make_framework, monkeypatch):
    f1, f2 = seed_frameworks
    await make_framework("F3", "Framework Three", controls=3)
    await engine.cross_references.create(f1[0], f2[0], "equivalent", 0.9)

    real = engine.overlap.get_overlap

    async def flaky(a, b):
        if {a, b} == {"F1", "F3"}:
            raise UpstreamUnavailable("catalog")
        return await real(a, b)

    monkeypatch.setattr(engine.matrix.calculator, "get_overlap", flaky)

    result = await engine.matrix.build_matrix()
    ids = [f.id for f in result.frameworks]
    i, j = ids.index("F1"), ids.index("F3")
    assert result.matrix[i][j].status == CELL_UNKNOWN
    assert result.matrix[j][i].status == CELL_UNKNOWN
    assert result.matrix[i][j].mapping_count is None
    assert result.summary.unknown_pairs == 1
    assert result.summary.total_mappings == 1


@pytest.mark.asyncio
async def test_systemic_failure_raises(engine, seed_frameworks, monkeypatch):
    async def down(a, b):
        raise UpstreamUnavailable("catalog")

    monkeypatch.setattr(engine.matrix.calculator, "get_overlap", down)

    with pytest.raises(UpstreamUnavailable):
        await engine.matrix.build_matrix()
