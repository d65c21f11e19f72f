"""Requirement → control coverage across frameworks."""
import pytest

from app.exceptions import NotFound
from app.models import Control


@pytest.mark.asyncio
async def test_controls_grouped_by_framework(engine, make_framework, seed_requirements, map_requirement):
    a = await make_framework("A", "Alpha Std", controls=2)
    b = await make_framework("B", "Beta Std", controls=2)
    await map_requirement("transparency", [a[0]], strength=0.4)
    await map_requirement("transparency", [a[1]], strength=0.9)
    await map_requirement("transparency", [b[0]], strength=0.6)

    grouped = await engine.coverage.get_controls_for_requirement("transparency")

    assert list(grouped) == ["A", "B"]
    assert grouped["A"].framework_name == "Alpha Std"
    assert [c.id for c in grouped["A"].controls] == [a[1], a[0]]
    assert grouped["B"].controls[0].mapping_strength == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_inactive_controls_not_counted(engine, db, make_framework, seed_requirements, map_requirement):
    a = await make_framework("A", controls=2)
    await map_requirement("accountability", a)
    control = await db.get(Control, a[0])
    control.is_active = False
    await db.commit()

    grouped = await engine.coverage.get_controls_for_requirement("accountability")
    assert [c.id for c in grouped["A"].controls] == [a[1]]


@pytest.mark.asyncio
async def test_unknown_requirement(engine):
    with pytest.raises(NotFound):
        await engine.coverage.get_controls_for_requirement("nope")


@pytest.mark.asyncio
async def test_requirement_coverage_scores(engine, make_framework, seed_requirements, map_requirement):
    a = await make_framework("A", controls=2)
    b = await make_framework("B", controls=1)
    await map_requirement("transparency", a, strength=0.5)
    await map_requirement("transparency", b, strength=1.0)

    coverage = {c.requirement_id: c for c in await engine.coverage.get_requirement_coverage()}

    transparency = coverage["transparency"]
    assert transparency.total_controls == 3
    per_fw = {f.framework_id: f for f in transparency.framework_coverage}
    assert per_fw["A"].control_count == 2
    assert per_fw["A"].coverage_score == pytest.approx(0.5)
    assert per_fw["B"].coverage_score == pytest.approx(1.0)
    assert transparency.average_coverage == pytest.approx(0.75)

    assert coverage["accountability"].total_controls == 0
    assert coverage["accountability"].average_coverage == 0.0
    assert coverage["accountability"].framework_coverage == []
