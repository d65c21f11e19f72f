"""
N×N framework mapping matrix.

Diagonal cells carry the framework's own control count at 100 %. Each
unordered off-diagonal pair is looked up once through the overlap
calculator (bounded fan-out) and mirrored into both cells. A pair whose
lookup fails is reported as ``unknown`` instead of failing the build.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import CrossAnalysisError, UpstreamUnavailable
from app.services.catalog_store import CatalogStore, FrameworkInfo
from app.services.overlap import FrameworkOverlap, OverlapCalculator

logger = logging.getLogger(__name__)

CELL_OK = "ok"
CELL_UNKNOWN = "unknown"


@dataclass
class MatrixCell:
    framework1_id: str
    framework2_id: str
    mapping_count: int | None
    overlap_percentage: float | None
    status: str = CELL_OK


@dataclass
class MatrixSummary:
    total_frameworks: int
    total_mappings: int
    average_overlap: float
    most_mapped_framework: str | None
    unknown_pairs: int = 0


@dataclass
class ControlMappingMatrix:
    frameworks: list[FrameworkInfo]
    matrix: list[list[MatrixCell]]
    summary: MatrixSummary


def summarize(frameworks: list[FrameworkInfo], matrix: list[list[MatrixCell]]) -> MatrixSummary:
    """Totals over the off-diagonal cells, corrected for mirroring.

    Every pair appears twice (i,j and j,i), so the mapping sum is halved and
    the overlap sum is averaged over 2 × pair count. Unknown cells count as 0.
    """
    n = len(frameworks)
    pair_count = n * (n - 1) // 2
    total_mappings = 0
    total_overlap = 0.0
    unknown = 0
    most_mapped: str | None = None
    max_mappings = 0

    for i in range(n):
        row_mappings = 0
        for j in range(n):
            if i == j:
                continue
            cell = matrix[i][j]
            if cell.status != CELL_OK:
                unknown += 1
                continue
            row_mappings += cell.mapping_count or 0
            total_overlap += cell.overlap_percentage or 0.0
        total_mappings += row_mappings
        if row_mappings > max_mappings:
            max_mappings = row_mappings
            most_mapped = frameworks[i].name

    return MatrixSummary(
        total_frameworks=n,
        total_mappings=total_mappings // 2,
        average_overlap=round(total_overlap / (2 * pair_count), 2) if pair_count else 0.0,
        most_mapped_framework=most_mapped,
        unknown_pairs=unknown // 2,
    )


class MappingMatrixBuilder:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        calculator: OverlapCalculator,
        max_concurrency: int = 4,
    ):
        self._sessions = session_factory
        self.calculator = calculator
        self.max_concurrency = max(1, max_concurrency)

    async def build_matrix(self, frameworks: list[FrameworkInfo] | None = None) -> ControlMappingMatrix:
        """Build the matrix for ``frameworks`` (default: all active, by name)."""
        if frameworks is None:
            async with self._sessions() as s:
                frameworks = await CatalogStore(s).list_active_frameworks()

        n = len(frameworks)
        pairs = [(i, j) for i in range(n) for j in range(i + 1, n)]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def lookup(i: int, j: int) -> FrameworkOverlap | None | Exception:
            async with semaphore:
                try:
                    return await self.calculator.get_overlap(frameworks[i].id, frameworks[j].id)
                except (CrossAnalysisError, SQLAlchemyError) as e:
                    logger.warning(
                        "Overlap lookup failed for %s/%s: %s", frameworks[i].id, frameworks[j].id, e,
                    )
                    return e

        results = await asyncio.gather(*(lookup(i, j) for i, j in pairs))

        if pairs and all(isinstance(r, UpstreamUnavailable) for r in results):
            raise results[0]

        matrix: list[list[MatrixCell | None]] = [[None] * n for _ in range(n)]
        for i, fw in enumerate(frameworks):
            matrix[i][i] = MatrixCell(fw.id, fw.id, fw.control_count, 100.0)

        for (i, j), result in zip(pairs, results):
            a, b = frameworks[i].id, frameworks[j].id
            if isinstance(result, Exception):
                matrix[i][j] = MatrixCell(a, b, None, None, CELL_UNKNOWN)
                matrix[j][i] = MatrixCell(b, a, None, None, CELL_UNKNOWN)
                continue
            count = result.total_mappings if result else 0
            pct = result.overlap_percentage if result else 0.0
            matrix[i][j] = MatrixCell(a, b, count, pct)
            matrix[j][i] = MatrixCell(b, a, count, pct)

        summary = summarize(frameworks, matrix)
        logger.info(
            "Mapping matrix built: %d frameworks, %d mappings, %d unknown pairs",
            summary.total_frameworks, summary.total_mappings, summary.unknown_pairs,
        )
        return ControlMappingMatrix(frameworks=frameworks, matrix=matrix, summary=summary)
