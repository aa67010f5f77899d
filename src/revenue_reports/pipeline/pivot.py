"""
Monthly revenue pivot.

Groups enriched records by entity and calendar month for one pipeline and
date window. Each entity with at least one qualifying deal (pipeline match and
effective close date inside the window) gets one MonthlyPivotRow holding every
month of the window, zero-filled, plus realized current-FY revenue, total
revenue and its POC team.
"""

from datetime import date

import structlog

from ..config import ReportConfig
from ..fiscal import month_key, month_range, parse_month_key, plain_fiscal_year
from ..models.classification import EnrichedRecord, PocTeam
from ..models.report import MonthlyPivotRow
from .enrichment import EnrichmentCache
from .poc_team import build_poc_context, resolve_poc_team

logger = structlog.get_logger(__name__)


def window_month_keys(window_start: date, window_end: date) -> list[str]:
    return [month_key(m) for m in month_range(window_start, window_end)]


def sort_rows(rows: list[MonthlyPivotRow], descending: bool = False) -> list[MonthlyPivotRow]:
    """
    Order rows by first revenue fiscal year, then entity name.

    The fiscal year direction is configurable; entities without a first
    fiscal year always sort last, and names always sort A-Z.
    """

    def sort_key(row: MonthlyPivotRow):
        if row.first_fiscal_year is None:
            return (1, 0, row.entity_name.casefold(), row.entity_key)
        start_year = row.first_fiscal_year.start_year
        return (
            0,
            -start_year if descending else start_year,
            row.entity_name.casefold(),
            row.entity_key,
        )

    return sorted(rows, key=sort_key)


class PivotEngine:
    """Builds MonthlyPivotRows from an EnrichmentCache."""

    def __init__(self, report_config: ReportConfig):
        self.report_config = report_config

    def build(
        self,
        cache: EnrichmentCache,
        pipeline: str | None = None,
        window_start: date | None = None,
        window_end: date | None = None,
        descending: bool = False,
    ) -> list[MonthlyPivotRow]:
        """
        Pivot one pipeline over one window.

        Args:
            cache: Enriched dataset
            pipeline: Pipeline to report on (defaults to the revenue pipeline)
            window_start: First day of the window (defaults to report_start)
            window_end: Last day of the window (defaults to report_end)
            descending: Newest first fiscal year first

        Returns:
            Sorted pivot rows, one per entity with qualifying deals
        """
        cfg = self.report_config
        pipeline = pipeline or cfg.revenue_pipeline
        window_start = window_start or cfg.report_start
        window_end = window_end or cfg.report_end
        keys = window_month_keys(window_start, window_end)

        rows = []
        for entity_key, entity_records in cache.by_entity().items():
            qualifying = [
                r
                for r in entity_records
                if r.record.is_pipeline(pipeline)
                and window_start <= r.effective_close_date <= window_end
            ]
            if not qualifying:
                continue

            ctx = build_poc_context(
                entity_records, cache.flags_for(entity_key), window_start, window_end
            )
            rows.append(self._build_row(qualifying, keys, resolve_poc_team(ctx)))

        logger.info(
            'pivot.complete',
            pipeline=pipeline,
            window_start=window_start.isoformat(),
            window_end=window_end.isoformat(),
            rows=len(rows),
        )
        return sort_rows(rows, descending=descending)

    def _build_row(
        self,
        qualifying: list[EnrichedRecord],
        keys: list[str],
        poc_team: PocTeam,
    ) -> MonthlyPivotRow:
        cfg = self.report_config
        current_fy = cfg.current_fiscal_year.label

        months = dict.fromkeys(keys, 0.0)
        for record in qualifying:
            months[record.month_key] += record.amount

        realized = sum(
            value
            for key, value in months.items()
            if plain_fiscal_year(parse_month_key(key), cfg.fy_start_month).label == current_fy
        )
        total = sum(months.values())

        first = qualifying[0]
        stats = first.stats
        return MonthlyPivotRow(
            entity_key=stats.key,
            entity_name=stats.display_name,
            months=months,
            realized_revenue_this_fy=realized,
            total_revenue=total,
            poc_team=poc_team,
            revenue_type=first.classification.revenue_type,
            client_age=first.classification.client_age,
            first_fiscal_year=stats.first_fiscal_year,
            first_payment_date=stats.first_payment_date,
            paid_month_count=stats.paid_month_count,
            forecasted_revenue_this_fy=realized,
            total_revenue_for_period=total,
        )
