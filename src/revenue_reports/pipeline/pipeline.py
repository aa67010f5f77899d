"""
Main pipeline orchestrator for revenue reports.

Provides end-to-end processing of one report run:
1. Validate the run's lookup tables before any work is done
2. Build the enrichment cache (dedup, identity, classification, flags)
3. Pivot, filter and forecast the requested report variant
4. Return the rows, the finished table and the data quality report

A run never mutates its snapshot, so running the same snapshot twice with the
same ReportConfig produces identical output.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..config import ReportConfig
from ..errors import (
    DataQualityReport,
    MissingTableError,
    PipelineError,
    ReportBuildError,
    RevenueReportError,
)
from ..logging import PipelineTimer, get_logger, logging_context
from ..models.deal import DealRecord
from ..models.report import MonthlyPivotRow, ReportTable, ReportVariant
from .classifier import TeamMembership
from .enrichment import EnrichmentBuilder, EnrichmentCache
from .reports import REPORT_DEFINITIONS, ReportBuilder

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordSnapshot:
    """
    Read-only input of one run.

    Attributes:
        records_by_source: Deal records keyed by source (pipeline) name
        membership: Sales and CS team member lists (None = table missing)
        exclusions: Entity names left out of the client revenue report
            (None = table missing)
        quality: Defects found while ingesting the source rows
    """

    records_by_source: Mapping[str, Iterable[DealRecord]]
    membership: TeamMembership | None = None
    exclusions: list[str] | None = None
    quality: DataQualityReport = field(default_factory=DataQualityReport)


@dataclass
class ReportRunResult:
    """Result of running one report variant over a snapshot."""

    run_id: str
    variant: ReportVariant
    cache: EnrichmentCache
    rows: list[MonthlyPivotRow]
    table: ReportTable
    quality: DataQualityReport

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'run_id': self.run_id,
            'variant': self.variant.value,
            'records': len(self.cache),
            'row_count': self.row_count,
            'table': self.table.to_dict(),
            'data_quality': self.quality.to_dict(),
            'processing_time_ms': self.processing_time_ms,
            'stage_timings': self.stage_timings,
        }


class ReportPipeline:
    """
    End-to-end pipeline for one report run.

    Orchestrates:
    - EnrichmentBuilder: dedup, identity resolution, classification
    - ReportBuilder: pivot, audience filters, forecast, table

    Usage:
        pipeline = ReportPipeline()
        result = pipeline.run(snapshot, ReportConfig.for_date(date(2024, 9, 15)), ReportVariant.SALES)
    """

    def run(
        self,
        snapshot: RecordSnapshot,
        report_config: ReportConfig,
        variant: ReportVariant,
        run_id: str | None = None,
    ) -> ReportRunResult:
        """
        Run one report variant.

        Args:
            snapshot: Input records and lookup tables
            report_config: Report date, window and rule parameters
            variant: Which report to build
            run_id: Identifier for log correlation (generated when omitted)

        Returns:
            ReportRunResult with rows, table and data quality report

        Raises:
            MissingTableError: A lookup table the run needs was not supplied
            PipelineError: A stage failed unexpectedly
        """
        started_at = datetime.now()
        run_id = run_id or uuid.uuid4().hex
        variant = ReportVariant(variant)
        self.validate(snapshot, variant)

        timer = PipelineTimer()
        quality = DataQualityReport()
        quality.extend(snapshot.quality)

        with logging_context(run_id=run_id, report_name=variant.value):
            logger.info(
                'pipeline.started',
                report_date=report_config.report_date.isoformat(),
                report_start=report_config.report_start.isoformat(),
                report_end=report_config.report_end.isoformat(),
                sources=sorted(snapshot.records_by_source),
            )

            try:
                with timer.stage('enrichment'):
                    cache = EnrichmentBuilder(report_config, snapshot.membership).build(
                        snapshot.records_by_source, quality
                    )
            except RevenueReportError:
                raise
            except Exception as e:
                logger.error('pipeline.enrichment_failed', error=str(e), error_type=type(e).__name__)
                raise PipelineError(
                    f'Enrichment failed: {e}',
                    context={'variant': variant.value, 'run_id': run_id, 'stage': 'enrichment'},
                ) from e

            try:
                with timer.stage('report'):
                    rows, table = ReportBuilder(report_config).build(
                        variant, cache, snapshot.exclusions
                    )
            except RevenueReportError:
                raise
            except Exception as e:
                logger.error('pipeline.report_failed', error=str(e), error_type=type(e).__name__)
                raise ReportBuildError(
                    f'Report build failed: {e}',
                    context={'variant': variant.value, 'run_id': run_id, 'stage': 'report'},
                ) from e

            result = ReportRunResult(
                run_id=run_id,
                variant=variant,
                cache=cache,
                rows=rows,
                table=table,
                quality=quality,
                started_at=started_at,
                completed_at=datetime.now(),
                processing_time_ms=int(timer.total_ms),
                stage_timings=timer.stages.copy(),
            )

            if not quality.is_clean:
                logger.warning(
                    'pipeline.data_quality',
                    defects=quality.defect_count,
                    by_field=quality.count_by_field(),
                )
            logger.info(
                'pipeline.complete',
                records=len(cache),
                rows=result.row_count,
                **timer.summary(),
            )
            return result

    def validate(self, snapshot: RecordSnapshot, variant: ReportVariant) -> None:
        """Fail fast on missing lookup tables."""
        if snapshot.membership is None:
            raise MissingTableError(
                'Team membership table is required',
                context={'variant': variant.value},
            )
        if REPORT_DEFINITIONS[variant].requires_exclusions and snapshot.exclusions is None:
            raise MissingTableError(
                'Exclusion list is required for this report',
                context={'variant': variant.value},
            )
