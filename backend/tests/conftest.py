"""
Shared test fixtures — file-backed SQLite async database, the analysis
engine wired to it, and an httpx client for the FastAPI app.

Strategy:
1. Set DATABASE_URL to SQLite before anything loads
2. Each test gets a fresh database file (the matrix builder opens several
   sessions concurrently, which an in-memory database cannot serve)
3. The app's engine dependency is overridden with one built on that database
"""
import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import timedelta
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# ── 1. Environment ──
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'crossframework-health.db'}"
os.environ["DEBUG"] = "false"

# ── 2. Now import the app ──
from app.config import settings  # noqa: E402
from app.database import make_engine, make_session_factory  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402
from app.models import (  # noqa: E402
    Base,
    Control,
    ControlAssessment,
    FindingType,
    Framework,
    QualitativeFinding,
    QualitativeReport,
    Requirement,
    RequirementControlMapping,
)
from app.models.base import utcnow  # noqa: E402
from app.routers.cross_analysis import get_engine  # noqa: E402
from app.services.engine import CrossAnalysisEngine, build_engine  # noqa: E402


# ── Fixtures ──

@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create all tables in a per-test database file, drop after."""
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest_asyncio.fixture
async def sessions(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(db_engine)


@pytest_asyncio.fixture
async def db(sessions) -> AsyncGenerator[AsyncSession, None]:
    async with sessions() as session:
        yield session


@pytest_asyncio.fixture
async def engine(sessions) -> CrossAnalysisEngine:
    return build_engine(sessions, settings)


@pytest_asyncio.fixture
async def client(engine: CrossAnalysisEngine) -> AsyncGenerator[AsyncClient, None]:
    fastapi_app.dependency_overrides[get_engine] = lambda: engine
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.pop(get_engine, None)


# ── Seed data helpers ──

@pytest_asyncio.fixture
async def make_framework(db: AsyncSession) -> Callable[..., Awaitable[list[str]]]:
    """Factory: add a framework with controls; returns the control ids.

    Control ids are ``{framework_id}-{n}`` starting at 1.
    """

    async def _make(
        framework_id: str,
        name: str | None = None,
        controls: int = 0,
        titles: list[str] | None = None,
        category: str | None = None,
        is_active: bool = True,
    ) -> list[str]:
        db.add(Framework(id=framework_id, name=name or framework_id, is_active=is_active))
        titles = titles or [f"{framework_id} control {i}" for i in range(1, controls + 1)]
        ids = []
        for i, title in enumerate(titles, 1):
            control_id = f"{framework_id}-{i}"
            db.add(Control(id=control_id, framework_id=framework_id, title=title, category=category))
            ids.append(control_id)
        await db.commit()
        return ids

    return _make


@pytest_asyncio.fixture
async def seed_frameworks(make_framework):
    """F1 with 10 controls and F2 with 20 controls."""
    f1 = await make_framework("F1", "Framework One", controls=10)
    f2 = await make_framework("F2", "Framework Two", controls=20)
    return f1, f2


@pytest_asyncio.fixture
async def seed_requirements(db: AsyncSession):
    reqs = [
        Requirement(id="transparency", name="Transparency", display_order=1),
        Requirement(id="accountability", name="Accountability", display_order=2),
        Requirement(id="privacy_data_governance", name="Privacy and Data Governance", display_order=3),
    ]
    db.add_all(reqs)
    await db.commit()
    return [r.id for r in reqs]


@pytest_asyncio.fixture
async def map_requirement(db: AsyncSession):
    """Factory: map a requirement to controls with a given strength."""

    async def _map(requirement_id: str, control_ids: list[str], strength: float = 0.5):
        for control_id in control_ids:
            db.add(RequirementControlMapping(
                requirement_id=requirement_id, control_id=control_id, mapping_strength=strength,
            ))
        await db.commit()

    return _map


@pytest_asyncio.fixture
async def make_finding(db: AsyncSession):
    """Factory: add a qualitative finding under assessment ``TA-1``; returns its id."""

    async def _make(
        title: str,
        description: str = "",
        finding_type: FindingType = FindingType.WEAKNESS,
        assessment_id: str = "TA-1",
    ) -> int:
        finding = QualitativeFinding(
            assessment_id=assessment_id, title=title, description=description, finding_type=finding_type,
        )
        db.add(finding)
        await db.commit()
        return finding.id

    return _make


@pytest_asyncio.fixture
async def make_report(db: AsyncSession):
    async def _make(assessment_id: str = "TA-1", title: str = "Review report") -> int:
        report = QualitativeReport(assessment_id=assessment_id, title=title)
        db.add(report)
        await db.commit()
        return report.id

    return _make


@pytest_asyncio.fixture
async def make_assessment(db: AsyncSession):
    """Factory: add a control assessment ``age_days`` old; returns its id."""

    async def _make(control_id: str, score: float, age_days: int = 1) -> int:
        assessment = ControlAssessment(
            control_id=control_id, score=score, assessed_at=utcnow() - timedelta(days=age_days),
        )
        db.add(assessment)
        await db.commit()
        return assessment.id

    return _make
