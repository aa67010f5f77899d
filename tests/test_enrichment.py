"""
Tests for the enrichment cache builder.
"""

from datetime import date, datetime, timezone

from revenue_reports.config import ReportConfig, UnknownDatePolicy
from revenue_reports.errors import DataQualityReport
from revenue_reports.models.classification import ClientAge, RevenueType
from revenue_reports.pipeline.enrichment import EnrichmentBuilder


class TestEnrichmentBuilder:
    """Test the joined dedup + identity + classification dataset."""

    def test_acme_records_enriched(self, acme_records, membership, report_config):
        cache = EnrichmentBuilder(report_config, membership).build({"Payment": acme_records})

        assert len(cache) == 2
        keys = {r.entity_key for r in cache.records}
        assert keys == {"C-ACME"}

        first = cache.records[0]
        assert first.classification.revenue_type == RevenueType.RECURRING
        assert first.classification.client_age == ClientAge.NEW
        assert first.stats.first_fiscal_year.label == "FY 24/25"
        assert first.month_key == "2024-Jul"
        assert first.fiscal_year.label == "FY 24/25"
        assert first.close_date_known

    def test_one_record_per_deal_id(self, make_deal, membership, report_config):
        records = [
            make_deal(deal_id="D1", entity_name="Acme", amount=1,
                      last_modified_date=datetime(2024, 1, 1, tzinfo=timezone.utc)),
            make_deal(deal_id="D1", entity_name="Acme", amount=2,
                      last_modified_date=datetime(2024, 2, 1, tzinfo=timezone.utc)),
        ]
        cache = EnrichmentBuilder(report_config, membership).build({"Payment": records})

        assert len(cache) == 1
        assert cache.records[0].amount == 2

    def test_flags_span_all_sources(self, make_deal, membership, report_config):
        payment = [make_deal(entity_name="Acme", owner_id="cs-1", close_date=date(2024, 8, 1))]
        sales = [
            make_deal(
                entity_name="Acme",
                pipeline_name="Sales",
                owner_id="sales-2",
                close_date=date(2022, 1, 1),
            )
        ]

        cache = EnrichmentBuilder(report_config, membership).build(
            {"Payment": payment, "Sales": sales}
        )

        flags = cache.flags_for("Acme")
        assert flags.has_sales_team_owner
        assert flags.has_cs_team_owner
        assert flags.has_revenue_this_fy
        assert flags.has_any_deal_this_fy
        assert all(r.flags == flags for r in cache.records)

    def test_unknown_flags_default_false(self, membership, report_config):
        cache = EnrichmentBuilder(report_config, membership).build({})
        assert not cache.flags_for("nobody").has_sales_team_owner

    def test_unknown_close_date_uses_report_date(self, make_deal, membership, report_config):
        quality = DataQualityReport()
        record = make_deal(entity_name="Acme", close_date=None)

        cache = EnrichmentBuilder(report_config, membership).build({"Payment": [record]}, quality)

        enriched = cache.records[0]
        assert enriched.effective_close_date == report_config.report_date
        assert not enriched.close_date_known
        assert enriched.month_key == "2024-Sep"
        assert enriched.stats.first_payment_date == report_config.report_date
        assert len(quality.for_field("close_date_policy")) == 1

    def test_unknown_close_date_excluded(self, make_deal, membership):
        config = ReportConfig.for_date(
            date(2024, 9, 15), unknown_close_date=UnknownDatePolicy.EXCLUDE
        )
        records = [
            make_deal(entity_name="Acme", close_date=None),
            make_deal(entity_name="Acme", close_date=date(2024, 7, 1)),
        ]

        cache = EnrichmentBuilder(config, membership).build({"Payment": records})

        assert len(cache) == 1
        assert cache.records[0].effective_close_date == date(2024, 7, 1)
        assert cache.quality.defect_count == 1

    def test_for_pipeline_and_by_entity(self, make_deal, membership, report_config):
        records = {
            "Payment": [make_deal(entity_name="Acme"), make_deal(entity_name="Globex")],
            "CS": [make_deal(entity_name="Acme", pipeline_name="CS")],
        }
        cache = EnrichmentBuilder(report_config, membership).build(records)

        assert len(cache.for_pipeline("payment")) == 2
        grouped = cache.by_entity()
        assert list(grouped) == ["Acme", "Globex"]
        assert len(grouped["Acme"]) == 2

    def test_to_rows_flattens(self, acme_records, membership, report_config):
        cache = EnrichmentBuilder(report_config, membership).build({"Payment": acme_records})

        rows = cache.to_rows()
        assert rows[0]["deal_id"] == "A1"
        assert rows[0]["entity_key"] == "C-ACME"
        assert rows[0]["revenue_type"] == "Recurring"
        assert rows[0]["effective_close_date"] == "2024-07-10"

    def test_rebuild_is_deterministic(self, acme_records, membership, report_config):
        builder = EnrichmentBuilder(report_config, membership)
        first = builder.build({"Payment": acme_records})
        second = builder.build({"Payment": acme_records})

        assert first.to_rows() == second.to_rows()
