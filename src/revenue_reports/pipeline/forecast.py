"""
Carry-forward revenue forecast.

Extends an entity's monthly pivot into the future with a single constant
value, its baseline:

- baseline = the report month's value if positive, else the previous
  month's value if positive, else none (the entity is not forecast)
- every month from the report month up to the horizon whose actual value is
  exactly zero, and which passes the policy's eligibility windows, is set to
  the baseline

The report month is still open, so it is forecast when it has no actuals yet.
There is no interpolation, averaging or trend: one constant value. Months
with a nonzero actual are never touched and nothing past the horizon (or
outside the displayed window) is filled.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date

import structlog

from ..fiscal import (
    DEFAULT_FY_START_MONTH,
    add_months,
    fiscal_year_bounds,
    month_key,
    month_start,
    months_between,
    parse_month_key,
    plain_fiscal_year,
)
from ..models.classification import PocTeam, RevenueType
from ..models.report import MonthlyPivotRow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ForecastPolicy:
    """
    Which rows are forecast and how far.

    Attributes:
        eligible_types: Revenue types that get a forecast
        max_total_months: Months counted from the first revenue month after
            which nothing is forecast (None = no cap)
        cap_at_fiscal_year_end: Stop at the end of the report's fiscal year
        transferred_window_months: For accounts transferred from Sales to CS
            this fiscal year, months since first revenue within which
            forecasting is allowed (None = no window)
    """

    eligible_types: frozenset[RevenueType]
    max_total_months: int | None = None
    cap_at_fiscal_year_end: bool = False
    transferred_window_months: int | None = None

    @classmethod
    def sales(cls, max_total_months: int = 12) -> 'ForecastPolicy':
        """Recurring accounts only, at most max_total_months from first revenue."""
        return cls(
            eligible_types=frozenset({RevenueType.RECURRING}),
            max_total_months=max_total_months,
        )

    @classmethod
    def customer_success(cls, transferred_window_months: int = 12) -> 'ForecastPolicy':
        """Recurring and repeated accounts through fiscal year end, no total cap."""
        return cls(
            eligible_types=frozenset({RevenueType.RECURRING, RevenueType.REPEATED_ONE_TIME}),
            cap_at_fiscal_year_end=True,
            transferred_window_months=transferred_window_months,
        )


def find_baseline(row: MonthlyPivotRow, report_month: date) -> float | None:
    """Report month value if positive, else previous month's if positive, else None."""
    current = row.months.get(month_key(report_month), 0.0)
    if current > 0:
        return current
    previous = row.months.get(month_key(add_months(report_month, -1)), 0.0)
    if previous > 0:
        return previous
    return None


class ForecastEngine:
    """Applies a ForecastPolicy to pivot rows."""

    def __init__(self, fy_start_month: int = DEFAULT_FY_START_MONTH):
        self.fy_start_month = fy_start_month

    def horizon(self, report_date: date, report_end_date: date, policy: ForecastPolicy) -> date:
        """Last month (first-of-month date) that may be forecast."""
        horizon = month_start(report_end_date)
        if policy.cap_at_fiscal_year_end:
            fy_end = fiscal_year_bounds(report_date, self.fy_start_month)[1]
            horizon = min(horizon, month_start(fy_end))
        return horizon

    def apply(
        self,
        row: MonthlyPivotRow,
        report_date: date,
        report_end_date: date,
        policy: ForecastPolicy,
    ) -> MonthlyPivotRow:
        """
        Forecast one row.

        Returns a new row; the input row is not modified. Rows that are not
        eligible or have no baseline come back with unchanged months and
        their totals filled in.
        """
        report_month = month_start(report_date)
        horizon = self.horizon(report_date, report_end_date, policy)

        baseline = find_baseline(row, report_month)
        if row.revenue_type not in policy.eligible_types or baseline is None:
            if baseline is None:
                logger.debug('forecast.no_baseline', entity_key=row.entity_key)
            return self._with_totals(row, report_date, dict(row.months), ())

        first_revenue_month = (
            month_start(row.first_payment_date) if row.first_payment_date is not None else None
        )

        months = dict(row.months)
        filled = []
        for key, actual in row.months.items():
            month = parse_month_key(key)
            if month < report_month or month > horizon:
                continue
            if actual != 0:
                continue
            if not self._within_windows(row, month, first_revenue_month, policy):
                continue
            months[key] = baseline
            filled.append(key)

        return self._with_totals(row, report_date, months, tuple(filled))

    def apply_all(
        self,
        rows: Iterable[MonthlyPivotRow],
        report_date: date,
        report_end_date: date,
        policy: ForecastPolicy,
    ) -> list[MonthlyPivotRow]:
        forecast = [self.apply(row, report_date, report_end_date, policy) for row in rows]
        logger.info(
            'forecast.complete',
            rows=len(forecast),
            forecast_rows=sum(1 for r in forecast if r.is_forecast),
            forecast_cells=sum(len(r.forecast_months) for r in forecast),
        )
        return forecast

    def _within_windows(
        self,
        row: MonthlyPivotRow,
        month: date,
        first_revenue_month: date | None,
        policy: ForecastPolicy,
    ) -> bool:
        if policy.max_total_months is not None:
            if first_revenue_month is None:
                return False
            if months_between(first_revenue_month, month) >= policy.max_total_months:
                return False
        if policy.transferred_window_months is not None and row.poc_team == PocTeam.TRANSFERRED:
            if first_revenue_month is None:
                return False
            if months_between(first_revenue_month, month) >= policy.transferred_window_months:
                return False
        return True

    def _with_totals(
        self,
        row: MonthlyPivotRow,
        report_date: date,
        months: dict[str, float],
        filled: tuple[str, ...],
    ) -> MonthlyPivotRow:
        report_fy = plain_fiscal_year(report_date, self.fy_start_month).label
        forecast_this_fy = sum(
            months[key]
            for key in filled
            if plain_fiscal_year(parse_month_key(key), self.fy_start_month).label == report_fy
        )
        return replace(
            row,
            months=months,
            forecast_months=filled,
            forecasted_revenue_this_fy=row.realized_revenue_this_fy + forecast_this_fy,
            total_revenue_for_period=sum(months.values()),
        )
