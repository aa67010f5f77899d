"""
Report variants.

Each variant is a pivot of the revenue pipeline seen by a different audience:

- sales: entities a sales-team member has ever owned, forecast for recurring
  accounts up to 12 months from first revenue, newest fiscal year first
- customer_success: entities whose POC team is on the CS side, forecast for
  recurring and repeated accounts to fiscal year end, oldest first
- client_revenue: every entity except the exclusion list, actuals only

On top of the audience filter the run configuration can narrow rows to new
clients, a minimum number of paid months, or entities growing year over year.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from ..config import Granularity, ReportConfig
from ..errors import MissingTableError
from ..fiscal import add_months, fiscal_year, fiscal_year_bounds, parse_month_key
from ..models.classification import ClientAge, PocTeam
from ..models.report import MonthlyPivotRow, ReportTable, ReportVariant
from .enrichment import EnrichmentCache
from .forecast import ForecastEngine, ForecastPolicy
from .pivot import PivotEngine, window_month_keys

logger = structlog.get_logger(__name__)

CS_SIDE_TEAMS = frozenset({PocTeam.CS, PocTeam.TRANSFERRED, PocTeam.CS_AND_SALES})

FIXED_COLUMNS = ['Company', 'POC Team', 'Revenue Type', 'Client Age', 'First FY']


@dataclass(frozen=True)
class ReportDefinition:
    """Static properties of a report variant."""

    variant: ReportVariant
    title: str
    descending: bool
    forecast: bool
    requires_exclusions: bool = False


REPORT_DEFINITIONS: dict[ReportVariant, ReportDefinition] = {
    ReportVariant.SALES: ReportDefinition(
        variant=ReportVariant.SALES,
        title='Sales Revenue Forecast',
        descending=True,
        forecast=True,
    ),
    ReportVariant.CUSTOMER_SUCCESS: ReportDefinition(
        variant=ReportVariant.CUSTOMER_SUCCESS,
        title='Customer Success Revenue Forecast',
        descending=False,
        forecast=True,
    ),
    ReportVariant.CLIENT_REVENUE: ReportDefinition(
        variant=ReportVariant.CLIENT_REVENUE,
        title='Revenue by Client',
        descending=False,
        forecast=False,
        requires_exclusions=True,
    ),
}


def normalize_name(name: str) -> str:
    return ' '.join(name.split()).casefold()


def _is_growing(current_and_prior: tuple[float, float] | None) -> bool:
    if current_and_prior is None:
        return False
    current, prior = current_and_prior
    return current > prior


class ReportBuilder:
    """Turns an EnrichmentCache into the rows and table of one report variant."""

    def __init__(self, report_config: ReportConfig):
        self.report_config = report_config
        self.pivot = PivotEngine(report_config)
        self.forecaster = ForecastEngine(report_config.fy_start_month)

    def policy_for(self, variant: ReportVariant) -> ForecastPolicy | None:
        cfg = self.report_config
        if variant == ReportVariant.SALES:
            return ForecastPolicy.sales(max_total_months=cfg.forecast_month_cap)
        if variant == ReportVariant.CUSTOMER_SUCCESS:
            return ForecastPolicy.customer_success(
                transferred_window_months=cfg.transferred_window_months
            )
        return None

    def rows_for(
        self,
        variant: ReportVariant,
        cache: EnrichmentCache,
        exclusions: Iterable[str] | None = None,
    ) -> list[MonthlyPivotRow]:
        """
        Pivot, filter and forecast the rows of one variant.

        Raises:
            MissingTableError: the variant needs an exclusion list and none was given.
        """
        cfg = self.report_config
        definition = REPORT_DEFINITIONS[variant]
        if definition.requires_exclusions and exclusions is None:
            raise MissingTableError(
                'Exclusion list is required for this report',
                context={'variant': variant.value},
            )

        descending = cfg.sort_descending if cfg.sort_descending is not None else definition.descending
        rows = self.pivot.build(cache, descending=descending)
        rows = self._audience_filter(variant, rows, cache, exclusions)
        rows = self._config_filters(rows, cache)

        policy = self.policy_for(variant)
        if definition.forecast and policy is not None:
            rows = self.forecaster.apply_all(rows, cfg.report_date, cfg.report_end, policy)

        logger.info('report.rows_ready', variant=variant.value, rows=len(rows))
        return rows

    def build(
        self,
        variant: ReportVariant,
        cache: EnrichmentCache,
        exclusions: Iterable[str] | None = None,
    ) -> tuple[list[MonthlyPivotRow], ReportTable]:
        rows = self.rows_for(variant, cache, exclusions)
        return rows, self.to_table(variant, rows)

    # =========================================================================
    # Filters
    # =========================================================================

    def _audience_filter(
        self,
        variant: ReportVariant,
        rows: list[MonthlyPivotRow],
        cache: EnrichmentCache,
        exclusions: Iterable[str] | None,
    ) -> list[MonthlyPivotRow]:
        if variant == ReportVariant.SALES:
            return [r for r in rows if cache.flags_for(r.entity_key).has_sales_team_owner]
        if variant == ReportVariant.CUSTOMER_SUCCESS:
            return [r for r in rows if r.poc_team in CS_SIDE_TEAMS]

        excluded = {normalize_name(name) for name in (exclusions or []) if name}
        if not excluded:
            return rows
        names_by_entity = self._entity_names(cache)
        return [
            r
            for r in rows
            if not names_by_entity.get(r.entity_key, {normalize_name(r.entity_name)}) & excluded
        ]

    def _config_filters(
        self,
        rows: list[MonthlyPivotRow],
        cache: EnrichmentCache,
    ) -> list[MonthlyPivotRow]:
        cfg = self.report_config
        if cfg.new_clients_only:
            rows = [r for r in rows if r.client_age == ClientAge.NEW]
        if cfg.min_payment_count > 0:
            rows = [r for r in rows if r.paid_month_count >= cfg.min_payment_count]
        if cfg.growth_check:
            growth = self.year_over_year_revenue(cache)
            rows = [r for r in rows if _is_growing(growth.get(r.entity_key))]
        return rows

    def year_over_year_revenue(self, cache: EnrichmentCache) -> dict[str, tuple[float, float]]:
        """
        Fiscal-year-to-date revenue per entity: (this FY, same span last FY).

        This FY runs from its first day through the report date; last FY
        covers the same span twelve months earlier.
        """
        cfg = self.report_config
        fy_start, _ = fiscal_year_bounds(cfg.report_date, cfg.fy_start_month)
        prior_start = add_months(fy_start, -12)
        prior_end = add_months(cfg.report_date, -12)

        totals: dict[str, tuple[float, float]] = {}
        for record in cache.for_pipeline(cfg.revenue_pipeline):
            current, prior = totals.get(record.entity_key, (0.0, 0.0))
            when = record.effective_close_date
            if fy_start <= when <= cfg.report_date:
                current += record.amount
            elif prior_start <= when <= prior_end:
                prior += record.amount
            totals[record.entity_key] = (current, prior)
        return totals

    def _entity_names(self, cache: EnrichmentCache) -> dict[str, set[str]]:
        names: dict[str, set[str]] = {}
        for record in cache.records:
            entity_names = names.setdefault(record.entity_key, set())
            entity_names.add(normalize_name(record.stats.display_name))
            for kind, value in record.stats.aliases:
                if kind == 'name':
                    entity_names.add(normalize_name(value))
        return names

    # =========================================================================
    # Table
    # =========================================================================

    def period_columns(self, month_keys: Iterable[str]) -> dict[str, list[str]]:
        """Column title -> month keys it sums, in display order."""
        columns: dict[str, list[str]] = {}
        for key in month_keys:
            if self.report_config.granularity == Granularity.QUARTER:
                title = fiscal_year(parse_month_key(key), self.report_config.fy_start_month).quarter_label
            else:
                title = key
            columns.setdefault(title, []).append(key)
        return columns

    def to_table(self, variant: ReportVariant, rows: list[MonthlyPivotRow]) -> ReportTable:
        cfg = self.report_config
        definition = REPORT_DEFINITIONS[variant]
        fy_label = cfg.current_fiscal_year.label

        month_keys = (
            list(rows[0].months)
            if rows
            else window_month_keys(cfg.report_start, cfg.report_end)
        )
        periods = self.period_columns(month_keys)

        summary_columns = [f'Realized {fy_label}']
        if definition.forecast:
            summary_columns.append(f'Forecast {fy_label}')
        summary_columns.append('Total')
        header = [*FIXED_COLUMNS, *periods, *summary_columns]

        table_rows = []
        forecast_cells = []
        for row_index, row in enumerate(rows):
            cells: list = [
                row.entity_name,
                row.poc_team.value,
                row.revenue_type.value,
                row.client_age.value,
                row.first_fiscal_year.label if row.first_fiscal_year else '',
            ]
            forecast_keys = set(row.forecast_months)
            for column_offset, keys in enumerate(periods.values()):
                cells.append(round(sum(row.months.get(k, 0.0) for k in keys), 2))
                if forecast_keys.intersection(keys):
                    forecast_cells.append((row_index, len(FIXED_COLUMNS) + column_offset))
            cells.append(round(row.realized_revenue_this_fy, 2))
            if definition.forecast:
                cells.append(round(row.forecasted_revenue_this_fy, 2))
            cells.append(round(row.total_revenue_for_period, 2))
            table_rows.append(cells)

        totals: list = ['Total', '', '', '', '']
        for column in range(len(FIXED_COLUMNS), len(header)):
            totals.append(round(sum(cells[column] for cells in table_rows), 2))

        return ReportTable(
            name=definition.title,
            header=header,
            rows=table_rows,
            totals=totals,
            forecast_cells=forecast_cells,
        )
