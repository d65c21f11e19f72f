#!/usr/bin/env python3
"""CrossFramework — database check after migration.

Run from backend/ (with the venv active):
    python ../scripts/verify_db.py

Checks:
  1. Connection (DATABASE_URL from the environment or backend/.env)
  2. Every table the models need exists
  3. Alembic version
  4. Seed data (Trustworthy-AI requirements)
  5. Row counts of the analysis tables
"""
import asyncio
import os
import sys
from pathlib import Path

# Run against backend/
backend_dir = Path(__file__).resolve().parent.parent / "backend"
sys.path.insert(0, str(backend_dir))
os.chdir(str(backend_dir))

from sqlalchemy import inspect, text  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import make_engine  # noqa: E402
from app.models import Base  # noqa: E402

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
NC = "\033[0m"

EXPECTED_REVISION = "001_cross_analysis"

SEED_CHECKS = [
    ("trustworthy_ai_requirements", 7),
]

ANALYSIS_TABLES = [
    "control_cross_references",
    "framework_pair_versions",
    "framework_overlap_cache",
    "z_inspection_control_links",
    "applied_weight_adjustments",
    "saved_analysis_queries",
]


def ok(msg):
    print(f"  {GREEN}[OK]{NC} {msg}")

def fail(msg):
    print(f"  {RED}[FAIL]{NC} {msg}")

def warn(msg):
    print(f"  {YELLOW}[!]{NC} {msg}")

def step(msg):
    print(f"\n{BLUE}=== {msg} ==={NC}")


async def _count(conn, table: str) -> int:
    return (await conn.execute(text(f"SELECT COUNT(*) FROM {table}"))).scalar_one()


async def main():
    eng = make_engine(settings.DATABASE_URL)
    errors = 0

    step("1. Connection")
    print(f"  URL: {eng.url.render_as_string(hide_password=True)}")
    try:
        conn = await eng.connect()
        ok("Connected")
    except Exception as e:
        fail(f"Cannot connect: {e}")
        await eng.dispose()
        sys.exit(1)

    try:
        # ── 2. Tables ──
        step("2. Tables")
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        required = sorted(Base.metadata.tables) + ["alembic_version"]
        missing = [t for t in required if t not in existing]
        if missing:
            fail(f"Missing tables ({len(missing)}): {', '.join(missing)}")
            errors += len(missing)
        else:
            ok(f"All {len(required)} required tables exist")

        # ── 3. Alembic ──
        step("3. Alembic version")
        try:
            ver = (await conn.execute(text("SELECT version_num FROM alembic_version"))).scalar() or "EMPTY"
            if ver == EXPECTED_REVISION:
                ok(f"Alembic: {ver} (latest)")
            else:
                warn(f"Alembic: {ver} (expected: {EXPECTED_REVISION})")
        except Exception as e:
            fail(f"alembic_version: {e}")
            errors += 1

        # ── 4. Seed data ──
        step("4. Seed data")
        for table, min_count in SEED_CHECKS:
            try:
                count = await _count(conn, table)
                if count >= min_count:
                    ok(f"{table}: {count} rows (>= {min_count})")
                else:
                    warn(f"{table}: {count} rows (expected >= {min_count})")
            except Exception as e:
                fail(f"{table}: {e}")
                errors += 1

        # ── 5. Analysis tables ──
        step("5. Analysis tables")
        for table in ANALYSIS_TABLES:
            if table in existing:
                ok(f"{table}: {await _count(conn, table)} rows")
    finally:
        await conn.close()
        await eng.dispose()

    step("Result")
    if errors:
        fail(f"{errors} problem(s) found")
        sys.exit(1)
    ok("Database ready")


if __name__ == "__main__":
    asyncio.run(main())
