"""
Tests for entity identity resolution.
"""

from datetime import date

from revenue_reports.fiscal import FiscalYear
from revenue_reports.pipeline.identity import EntityResolver


def _resolve(records, **kwargs):
    return EntityResolver(revenue_pipeline="Payment", fy_start_month=6, **kwargs).resolve(records)


class TestAliasClosure:
    """Test that identifiers seen together resolve to one entity."""

    def test_lookup_by_any_alias_returns_same_stats(self, make_deal):
        index = _resolve(
            [
                make_deal(entity_id="1", entity_name="Acme"),
                make_deal(entity_name="Acme", contact_email="a@x.com"),
            ]
        )

        by_id = index.lookup("id", "1")
        assert by_id is not None
        assert index.lookup("email", "a@x.com") is by_id
        assert index.lookup("name", "Acme") is by_id
        assert len(index) == 1

    def test_transitive_chain(self, make_deal):
        index = _resolve(
            [
                make_deal(entity_id="1", contact_email="a@x.com"),
                make_deal(entity_name="Acme Corp", contact_email="a@x.com"),
                make_deal(entity_name="Acme Corp", entity_id="77"),
                make_deal(entity_id="77"),
            ]
        )

        assert len(index) == 1
        assert index.lookup("id", "77") is index.lookup("id", "1")

    def test_disjoint_companies_stay_apart(self, make_deal):
        index = _resolve(
            [
                make_deal(entity_id="1", entity_name="Acme"),
                make_deal(entity_id="2", entity_name="Globex"),
            ]
        )

        assert len(index) == 2
        assert index.lookup("id", "1") is not index.lookup("id", "2")

    def test_alias_kinds_are_namespaced(self, make_deal):
        index = _resolve(
            [
                make_deal(entity_id="123"),
                make_deal(entity_name="123"),
            ]
        )

        by_id = index.lookup("id", "123")
        by_name = index.lookup("name", "123")
        assert by_id is not by_name
        assert by_id.key == "123"
        assert by_name.key == "name:123"

    def test_names_are_trimmed_case_preserved(self, make_deal):
        index = _resolve([make_deal(entity_name="Acme", contact_email="a@x.com")])

        assert index.lookup("name", "  Acme ") is not None
        assert index.lookup("name", "ACME") is None

    def test_canonical_key_is_first_records_primary_key(self, make_deal):
        index = _resolve(
            [
                make_deal(entity_name="Acme"),
                make_deal(entity_id="C-9", entity_name="Acme"),
            ]
        )

        stats = index.lookup("id", "C-9")
        assert stats.key == "Acme"
        assert stats.display_name == "Acme"
        assert ("id", "C-9") in stats.aliases


class TestEntityStats:
    """Test the aggregate facts computed per entity."""

    def test_stats_use_revenue_pipeline_only(self, make_deal):
        index = _resolve(
            [
                make_deal(entity_id="1", close_date=date(2024, 3, 5), deal_name="Setup fee"),
                make_deal(entity_id="1", close_date=date(2024, 3, 20)),
                make_deal(entity_id="1", close_date=date(2024, 5, 1)),
                make_deal(
                    entity_id="1",
                    pipeline_name="Sales",
                    close_date=date(2023, 1, 1),
                    deal_name="Intro call",
                ),
            ]
        )

        stats = index.lookup("id", "1")
        assert stats.first_payment_date == date(2024, 3, 5)
        assert stats.first_fiscal_year == FiscalYear("FY 23/24", 2023)
        assert stats.paid_months == frozenset({date(2024, 3, 1), date(2024, 5, 1)})
        assert stats.paid_month_count == 2
        assert stats.revenue_deal_names == ("Setup fee",)

    def test_entity_without_revenue(self, make_deal):
        index = _resolve([make_deal(entity_id="1", pipeline_name="CS")])

        stats = index.lookup("id", "1")
        assert stats.first_payment_date is None
        assert stats.first_fiscal_year is None
        assert stats.paid_month_count == 0

    def test_relationship_pipeline_aliases_join_entity(self, make_deal):
        index = _resolve(
            [
                make_deal(entity_id="1", close_date=date(2024, 8, 1)),
                make_deal(entity_id="1", contact_email="buyer@x.com", pipeline_name="Sales"),
            ]
        )

        assert index.lookup("email", "buyer@x.com") is index.lookup("id", "1")

    def test_close_date_override(self, make_deal):
        record = make_deal(entity_id="1", close_date=None)
        index = _resolve([record], close_date_of=lambda r: date(2024, 9, 15))

        stats = index.lookup("id", "1")
        assert stats.first_payment_date == date(2024, 9, 15)


class TestFallback:
    """Test records with no identifiers at all."""

    def test_unidentified_record_gets_own_entity(self, make_deal):
        record = make_deal(deal_id="D9", deal_name="Walk-in", close_date=date(2024, 8, 3))
        index = _resolve([record])

        stats = index.for_record(record)
        assert stats.is_fallback
        assert stats.key == "deal:D9"
        assert stats.display_name == "Walk-in"
        assert stats.first_payment_date == date(2024, 8, 3)
        assert stats.paid_months == frozenset({date(2024, 8, 1)})
        assert len(index) == 0

    def test_fallback_is_stable(self, make_deal):
        record = make_deal(deal_id="D9")
        index = _resolve([record])

        assert index.for_record(record) is index.for_record(record)

    def test_identified_record_uses_index(self, make_deal):
        record = make_deal(entity_name="Acme")
        index = _resolve([record])

        assert index.for_record(record) is index.lookup("name", "Acme")
