"""
Report repository.

Provides:
- Snapshot loading (source rows -> DealRecords, membership, exclusions)
- Persisting a run's enrichment cache and finished report table
"""

from .clients.postgres_client import CS_TEAM, SALES_TEAM, PostgresClient
from .errors import DataQualityReport
from .logging import get_logger, logging_context
from .models.deal import DealRecord
from .models.report import ReportVariant
from .pipeline.classifier import TeamMembership
from .pipeline.ingest import ingest_dicts
from .pipeline.pipeline import RecordSnapshot, ReportRunResult
from .pipeline.reports import REPORT_DEFINITIONS

logger = get_logger(__name__)


class ReportRepository:
    """
    Loads run inputs from and saves run outputs to Postgres.

    Handles:
    - Converting stored source rows into DealRecords per source
    - Building TeamMembership from the team_members table
    - Writing the enrichment cache and the report table
    """

    def __init__(self, postgres_client: PostgresClient):
        """
        Initialize the repository.

        Args:
            postgres_client: Connected Postgres client
        """
        self.postgres = postgres_client

    async def load_snapshot(
        self,
        variant: ReportVariant | None = None,
        quality: DataQualityReport | None = None,
    ) -> RecordSnapshot:
        """
        Read everything one run needs.

        The exclusion list is only read for variants that use it; for the
        others the snapshot carries None.

        Args:
            variant: Report the snapshot is for (None = load everything)
            quality: Collects per-record ingestion defects

        Returns:
            RecordSnapshot with records per source and lookup tables
        """
        quality = quality if quality is not None else DataQualityReport()

        rows_by_source = await self.postgres.fetch_deal_rows()
        records_by_source: dict[str, list[DealRecord]] = {}
        for source, rows in rows_by_source.items():
            with logging_context(source=source):
                records_by_source[source] = ingest_dicts(rows, source, quality)

        members = await self.postgres.fetch_membership()
        membership = (
            TeamMembership.from_lists(members.get(SALES_TEAM, []), members.get(CS_TEAM, []))
            if members is not None
            else None
        )

        exclusions = None
        if variant is None or REPORT_DEFINITIONS[ReportVariant(variant)].requires_exclusions:
            exclusions = await self.postgres.fetch_exclusions()

        logger.info(
            'repository.snapshot_loaded',
            sources=len(records_by_source),
            records=sum(len(r) for r in records_by_source.values()),
            has_membership=membership is not None,
            exclusions=len(exclusions) if exclusions is not None else None,
            ingestion_defects=quality.defect_count,
        )
        return RecordSnapshot(
            records_by_source=records_by_source,
            membership=membership,
            exclusions=exclusions,
            quality=quality,
        )

    async def save_run(self, result: ReportRunResult) -> None:
        """Replace the enrichment cache and upsert the report table in one transaction."""
        await self.postgres.persist_run(
            result.cache.to_rows(), result.variant.value, result.table
        )
        logger.info(
            'repository.run_saved',
            run_id=result.run_id,
            variant=result.variant.value,
            records=len(result.cache),
            rows=result.row_count,
        )
