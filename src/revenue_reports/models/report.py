"""
Report output structures.

MonthlyPivotRow is built fresh per report from the enriched dataset and owned
by that report. ReportTable is the finished header + rows + totals handed to
the output sink.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from ..fiscal import FiscalYear
from .classification import ClientAge, PocTeam, RevenueType


class ReportVariant(str, Enum):
    """Report flavours, differing in audience, filters and forecast policy."""

    SALES = 'sales'
    CUSTOMER_SUCCESS = 'customer_success'
    CLIENT_REVENUE = 'client_revenue'


@dataclass
class MonthlyPivotRow:
    """
    One entity's revenue across the report window.

    months maps every month key in the window (in calendar order) to that
    month's total; months without deals are present with 0.0.
    """

    entity_key: str
    entity_name: str
    months: dict[str, float]
    realized_revenue_this_fy: float = 0.0
    total_revenue: float = 0.0
    poc_team: PocTeam = PocTeam.C_SUITE
    revenue_type: RevenueType = RevenueType.ONE_TIME
    client_age: ClientAge = ClientAge.PROSPECT
    first_fiscal_year: FiscalYear | None = None
    first_payment_date: date | None = None
    paid_month_count: int = 0

    # Filled by the forecast engine
    forecast_months: tuple[str, ...] = ()
    forecasted_revenue_this_fy: float = 0.0
    total_revenue_for_period: float = 0.0

    @property
    def is_forecast(self) -> bool:
        return bool(self.forecast_months)

    def to_dict(self) -> dict[str, Any]:
        return {
            'entity_key': self.entity_key,
            'entity_name': self.entity_name,
            'months': dict(self.months),
            'realized_revenue_this_fy': self.realized_revenue_this_fy,
            'total_revenue': self.total_revenue,
            'poc_team': self.poc_team.value,
            'revenue_type': self.revenue_type.value,
            'client_age': self.client_age.value,
            'first_fiscal_year': self.first_fiscal_year.label if self.first_fiscal_year else None,
            'forecast_months': list(self.forecast_months),
            'forecasted_revenue_this_fy': self.forecasted_revenue_this_fy,
            'total_revenue_for_period': self.total_revenue_for_period,
        }


@dataclass
class ReportTable:
    """
    A finished report: header row, data rows and a trailing totals row.

    Numeric cells are plain floats so the sink can attach its own summing
    formulas (e.g. sums that ignore filtered-out rows).
    """

    name: str
    header: list[str]
    rows: list[list[Any]] = field(default_factory=list)
    totals: list[Any] = field(default_factory=list)
    # (row index, column index) of cells holding forecast rather than actuals
    forecast_cells: list[tuple[int, int]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def as_grid(self) -> list[list[Any]]:
        """Header, rows and totals as one list of lists."""
        return [list(self.header), *[list(r) for r in self.rows], list(self.totals)]

    def column(self, title: str) -> list[Any]:
        """Data-row values of one column, looked up by header title."""
        index = self.header.index(title)
        return [row[index] for row in self.rows]

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'header': list(self.header),
            'rows': [list(r) for r in self.rows],
            'totals': list(self.totals),
            'forecast_cells': [list(cell) for cell in self.forecast_cells],
        }
