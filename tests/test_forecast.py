"""
Tests for the carry-forward forecast.
"""

from datetime import date

from revenue_reports.config import ReportConfig
from revenue_reports.fiscal import month_key
from revenue_reports.models.classification import PocTeam, RevenueType
from revenue_reports.models.report import MonthlyPivotRow, ReportVariant
from revenue_reports.pipeline.enrichment import EnrichmentBuilder
from revenue_reports.pipeline.forecast import ForecastEngine, ForecastPolicy, find_baseline
from revenue_reports.pipeline.pivot import window_month_keys
from revenue_reports.pipeline.reports import ReportBuilder

REPORT_DATE = date(2024, 9, 15)
FY_END = date(2025, 6, 30)
WINDOW = window_month_keys(date(2024, 7, 1), FY_END)


def _row(
    values: dict[str, float],
    revenue_type: RevenueType = RevenueType.RECURRING,
    first_payment: date | None = date(2024, 7, 10),
    poc_team: PocTeam = PocTeam.SALES,
) -> MonthlyPivotRow:
    months = dict.fromkeys(WINDOW, 0.0)
    months.update(values)
    realized = sum(months.values())
    return MonthlyPivotRow(
        entity_key="E1",
        entity_name="Acme",
        months=months,
        realized_revenue_this_fy=realized,
        total_revenue=realized,
        poc_team=poc_team,
        revenue_type=revenue_type,
        first_payment_date=first_payment,
        forecasted_revenue_this_fy=realized,
        total_revenue_for_period=realized,
    )


def _apply(row, policy, report_end=FY_END):
    return ForecastEngine(fy_start_month=6).apply(row, REPORT_DATE, report_end, policy)


# =============================================================================
# Baseline
# =============================================================================


class TestFindBaseline:
    def test_report_month_value_wins(self):
        row = _row({"2024-Aug": 1000.0, "2024-Sep": 400.0})
        assert find_baseline(row, date(2024, 9, 1)) == 400.0

    def test_falls_back_to_previous_month(self):
        row = _row({"2024-Aug": 1000.0})
        assert find_baseline(row, date(2024, 9, 1)) == 1000.0

    def test_none_when_both_zero(self):
        row = _row({"2024-Jul": 1000.0})
        assert find_baseline(row, date(2024, 9, 1)) is None

    def test_negative_values_are_not_a_baseline(self):
        row = _row({"2024-Aug": -50.0})
        assert find_baseline(row, date(2024, 9, 1)) is None


# =============================================================================
# Engine
# =============================================================================


class TestSalesForecast:
    """Test the recurring-only, capped-from-first-revenue policy."""

    def test_fills_report_month_through_horizon(self):
        row = _row({"2024-Jul": 1000.0, "2024-Aug": 1000.0})

        result = _apply(row, ForecastPolicy.sales())

        expected = window_month_keys(date(2024, 9, 1), FY_END)
        assert list(result.forecast_months) == expected
        assert all(result.months[key] == 1000.0 for key in expected)
        assert result.forecasted_revenue_this_fy == 12000.0
        assert result.total_revenue_for_period == 12000.0
        assert result.realized_revenue_this_fy == 2000.0
        assert result.is_forecast

    def test_input_row_not_modified(self):
        row = _row({"2024-Aug": 1000.0})

        _apply(row, ForecastPolicy.sales())

        assert row.months["2024-Oct"] == 0.0
        assert row.forecast_months == ()

    def test_no_baseline_no_forecast(self):
        row = _row({"2024-Jul": 1000.0})

        result = _apply(row, ForecastPolicy.sales())

        assert result.forecast_months == ()
        assert result.months == row.months
        assert result.forecasted_revenue_this_fy == row.realized_revenue_this_fy

    def test_ineligible_revenue_type_untouched(self):
        row = _row({"2024-Aug": 1000.0}, revenue_type=RevenueType.REPEATED_ONE_TIME)

        result = _apply(row, ForecastPolicy.sales())

        assert not result.is_forecast
        assert result.total_revenue_for_period == 1000.0

    def test_cap_counts_from_first_revenue_month(self):
        row = _row({"2024-Aug": 1000.0}, first_payment=date(2023, 12, 1))

        result = _apply(row, ForecastPolicy.sales())

        assert list(result.forecast_months) == ["2024-Sep", "2024-Oct", "2024-Nov"]
        assert result.months["2024-Dec"] == 0.0

    def test_no_first_payment_means_no_capped_forecast(self):
        row = _row({"2024-Aug": 1000.0}, first_payment=None)

        assert _apply(row, ForecastPolicy.sales()).forecast_months == ()

    def test_nonzero_report_month_is_kept(self):
        row = _row({"2024-Aug": 1000.0, "2024-Sep": 500.0})

        result = _apply(row, ForecastPolicy.sales())

        assert "2024-Sep" not in result.forecast_months
        assert result.months["2024-Sep"] == 500.0
        assert result.months["2024-Oct"] == 500.0

    def test_actuals_never_overwritten(self):
        row = _row({"2024-Aug": 1000.0, "2024-Nov": 30.0, "2025-Feb": 7.5})

        result = _apply(row, ForecastPolicy.sales())

        for key, actual in row.months.items():
            if key in result.forecast_months:
                assert actual == 0.0
                assert result.months[key] == 1000.0
            else:
                assert result.months[key] == actual
        assert "2024-Aug" not in result.forecast_months

    def test_nothing_past_report_end(self):
        row = _row({"2024-Aug": 1000.0})

        result = _apply(row, ForecastPolicy.sales(), report_end=date(2024, 11, 30))

        assert list(result.forecast_months) == ["2024-Sep", "2024-Oct", "2024-Nov"]


class TestCustomerSuccessForecast:
    """Test the recurring-and-repeated, fiscal-year-bounded policy."""

    def test_repeated_one_time_is_eligible(self):
        row = _row({"2024-Aug": 200.0}, revenue_type=RevenueType.REPEATED_ONE_TIME)

        result = _apply(row, ForecastPolicy.customer_success())

        assert len(result.forecast_months) == 10
        assert result.forecasted_revenue_this_fy == 200.0 * 11

    def test_one_time_not_eligible(self):
        row = _row({"2024-Aug": 200.0}, revenue_type=RevenueType.ONE_TIME)

        assert not _apply(row, ForecastPolicy.customer_success()).is_forecast

    def test_no_total_cap(self):
        row = _row({"2024-Aug": 200.0}, first_payment=date(2020, 1, 1), poc_team=PocTeam.CS)

        result = _apply(row, ForecastPolicy.customer_success())

        assert result.forecast_months[-1] == "2025-Jun"

    def test_transferred_window(self):
        row = _row(
            {"2024-Aug": 200.0},
            first_payment=date(2024, 1, 1),
            poc_team=PocTeam.TRANSFERRED,
        )

        result = _apply(row, ForecastPolicy.customer_success())

        assert list(result.forecast_months) == ["2024-Sep", "2024-Oct", "2024-Nov", "2024-Dec"]

    def test_transferred_window_ignored_for_other_teams(self):
        row = _row({"2024-Aug": 200.0}, first_payment=date(2024, 1, 1), poc_team=PocTeam.CS)

        assert len(_apply(row, ForecastPolicy.customer_success()).forecast_months) == 10


class TestHorizon:
    def test_customer_success_capped_at_fiscal_year_end(self):
        engine = ForecastEngine(fy_start_month=6)
        policy = ForecastPolicy.customer_success()

        assert engine.horizon(REPORT_DATE, date(2025, 12, 31), policy) == date(2025, 6, 1)

    def test_sales_runs_to_report_end(self):
        engine = ForecastEngine(fy_start_month=6)

        assert engine.horizon(REPORT_DATE, date(2025, 12, 31), ForecastPolicy.sales()) == date(2025, 12, 1)

    def test_forecast_past_fiscal_year_not_counted_this_fy(self):
        keys = window_month_keys(date(2024, 7, 1), date(2025, 12, 31))
        months = dict.fromkeys(keys, 0.0)
        months["2024-Aug"] = 100.0
        row = MonthlyPivotRow(
            entity_key="E1",
            entity_name="Acme",
            months=months,
            realized_revenue_this_fy=100.0,
            revenue_type=RevenueType.RECURRING,
            first_payment_date=date(2024, 8, 1),
        )

        result = _apply(row, ForecastPolicy.sales(), report_end=date(2025, 12, 31))

        # Sep 2024 .. Jul 2025 fits the 12-month cap; only Sep .. Jun is FY 24/25
        assert result.forecast_months[-1] == "2025-Jul"
        assert result.forecasted_revenue_this_fy == 100.0 + 100.0 * 10
        assert result.total_revenue_for_period == 100.0 * 12


class TestApplyAll:
    def test_applies_to_every_row(self):
        rows = [_row({"2024-Aug": 1000.0}), _row({"2024-Jul": 5.0})]

        result = ForecastEngine(6).apply_all(rows, REPORT_DATE, FY_END, ForecastPolicy.sales())

        assert [r.is_forecast for r in result] == [True, False]


class TestReportMonthExample:
    """A recurring company paid in July and August; September is still open."""

    def test_september_forecast(self, acme_records, membership):
        config = ReportConfig.for_date(REPORT_DATE, report_end=date(2024, 9, 30))
        cache = EnrichmentBuilder(config, membership).build({"Payment": acme_records})

        rows = ReportBuilder(config).rows_for(ReportVariant.SALES, cache)

        assert len(rows) == 1
        row = rows[0]
        assert row.months == {"2024-Jul": 1000.0, "2024-Aug": 1000.0, "2024-Sep": 1000.0}
        assert row.forecast_months == (month_key(date(2024, 9, 1)),)
        assert row.realized_revenue_this_fy == 2000.0
        assert row.forecasted_revenue_this_fy == 3000.0
