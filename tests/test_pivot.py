"""
Tests for the monthly revenue pivot.
"""

from datetime import date

from revenue_reports.fiscal import FiscalYear
from revenue_reports.models.classification import ClientAge, PocTeam, RevenueType
from revenue_reports.models.report import MonthlyPivotRow
from revenue_reports.pipeline.enrichment import EnrichmentBuilder
from revenue_reports.pipeline.pivot import PivotEngine, sort_rows, window_month_keys


def _pivot(records_by_source, membership, report_config, **kwargs):
    cache = EnrichmentBuilder(report_config, membership).build(records_by_source)
    return PivotEngine(report_config).build(cache, **kwargs)


class TestWindowMonthKeys:
    def test_keys_in_calendar_order(self):
        assert window_month_keys(date(2024, 11, 15), date(2025, 2, 1)) == [
            "2024-Nov",
            "2024-Dec",
            "2025-Jan",
            "2025-Feb",
        ]


class TestPivotEngine:
    """Test pivot rows built from the enrichment cache."""

    def test_acme_scenario(self, acme_records, membership, report_config):
        rows = _pivot({"Payment": acme_records}, membership, report_config)

        assert len(rows) == 1
        row = rows[0]
        assert row.entity_name == "Acme"
        assert row.revenue_type == RevenueType.RECURRING
        assert row.client_age == ClientAge.NEW
        assert row.first_fiscal_year.label == "FY 24/25"
        assert row.poc_team == PocTeam.SALES
        assert {k: v for k, v in row.months.items() if v} == {"2024-Jul": 1000.0, "2024-Aug": 1000.0}
        assert row.realized_revenue_this_fy == 2000.0
        assert row.total_revenue == 2000.0
        assert row.paid_month_count == 2

    def test_every_window_month_present(self, acme_records, membership, report_config):
        row = _pivot({"Payment": acme_records}, membership, report_config)[0]

        assert list(row.months) == window_month_keys(report_config.report_start, report_config.report_end)
        assert len(row.months) == 12
        assert row.months["2025-Jun"] == 0.0

    def test_total_equals_sum_of_months(self, make_deal, membership, report_config):
        records = [
            make_deal(entity_name="Acme", amount=500, close_date=date(2023, 10, 3)),
            make_deal(entity_name="Acme", amount=250.25, close_date=date(2024, 8, 1)),
            make_deal(entity_name="Acme", amount=100.1, close_date=date(2024, 8, 30)),
            make_deal(entity_name="Acme", amount=0.2, close_date=date(2025, 1, 9)),
        ]
        row = _pivot(
            {"Payment": records},
            membership,
            report_config,
            window_start=date(2023, 7, 1),
            window_end=date(2025, 6, 30),
        )[0]

        assert len(row.months) == 24
        assert row.total_revenue == sum(row.months.values())
        assert row.months["2024-Aug"] == 250.25 + 100.1
        assert row.realized_revenue_this_fy == 250.25 + 100.1 + 0.2

    def test_deals_outside_window_ignored(self, make_deal, membership, report_config):
        records = [
            make_deal(entity_name="Acme", close_date=date(2024, 8, 1)),
            make_deal(entity_name="Acme", amount=999, close_date=date(2023, 8, 1)),
            make_deal(entity_name="Stale Co", close_date=date(2022, 1, 1)),
        ]
        rows = _pivot({"Payment": records}, membership, report_config)

        assert [r.entity_name for r in rows] == ["Acme"]
        assert rows[0].total_revenue == 1000.0

    def test_other_pipelines_not_pivoted(self, make_deal, membership, report_config):
        records = {
            "Payment": [make_deal(entity_name="Acme", close_date=date(2024, 8, 1))],
            "Sales": [
                make_deal(entity_name="Acme", pipeline_name="Sales", amount=5000, close_date=date(2024, 8, 1))
            ],
        }
        rows = _pivot(records, membership, report_config)

        assert rows[0].months["2024-Aug"] == 1000.0

    def test_pivot_other_pipeline(self, make_deal, membership, report_config):
        records = {
            "Sales": [
                make_deal(entity_name="Acme", pipeline_name="Sales", amount=5000, close_date=date(2024, 8, 1))
            ],
        }
        rows = _pivot(records, membership, report_config, pipeline="Sales")

        assert rows[0].months["2024-Aug"] == 5000.0
        assert rows[0].client_age == ClientAge.PROSPECT

    def test_sorted_by_first_fiscal_year_then_name(self, make_deal, membership, report_config):
        records = [
            make_deal(entity_name="Zeta", close_date=date(2024, 8, 1)),
            make_deal(entity_name="Beta", close_date=date(2022, 10, 1)),
            make_deal(entity_name="Beta", close_date=date(2024, 8, 1)),
            make_deal(entity_name="alpha", close_date=date(2022, 11, 1)),
            make_deal(entity_name="alpha", close_date=date(2024, 9, 1)),
        ]

        ascending = _pivot({"Payment": records}, membership, report_config)
        descending = _pivot({"Payment": records}, membership, report_config, descending=True)

        assert [r.entity_name for r in ascending] == ["alpha", "Beta", "Zeta"]
        assert [r.entity_name for r in descending] == ["Zeta", "alpha", "Beta"]


class TestSortRows:
    def test_rows_without_first_fiscal_year_last(self):
        def row(name, fy):
            return MonthlyPivotRow(entity_key=name, entity_name=name, months={}, first_fiscal_year=fy)

        rows = [
            row("NoFY", None),
            row("Old", FiscalYear("FY 20/21", 2020)),
            row("New", FiscalYear("FY 24/25", 2024)),
        ]

        assert [r.entity_name for r in sort_rows(rows)] == ["Old", "New", "NoFY"]
        assert [r.entity_name for r in sort_rows(rows, descending=True)] == ["New", "Old", "NoFY"]
