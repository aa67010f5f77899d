"""
Pytest configuration and shared fixtures.

Key fixtures:
- make_deal: factory for DealRecords with sensible defaults
- membership: sales team = {sales-1, sales-2}, CS team = {cs-1, cs-2}
- report_config: FY starting July, report date 2024-09-15, window = FY 24/25
- acme_records: the "Gold Monthly Plan" company paying in July and August 2024
"""

import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from revenue_reports.config import ReportConfig
from revenue_reports.models.deal import DealRecord
from revenue_reports.pipeline.classifier import TeamMembership


@pytest.fixture
def make_deal():
    """Factory for DealRecords; pipeline defaults to the revenue pipeline."""
    counter = {'n': 0}

    def _make(**overrides) -> DealRecord:
        counter['n'] += 1
        values = {
            'deal_id': f"D{counter['n']}",
            'amount': 1000.0,
            'pipeline_name': 'Payment',
            'close_date': date(2024, 7, 15),
            'source': overrides.get('pipeline_name', 'Payment'),
        }
        values.update(overrides)
        return DealRecord(**values)

    return _make


@pytest.fixture
def membership() -> TeamMembership:
    return TeamMembership.from_lists(['sales-1', 'sales-2'], ['cs-1', 'cs-2'])


@pytest.fixture
def report_config() -> ReportConfig:
    return ReportConfig.for_date(date(2024, 9, 15), fy_start_month=6)


@pytest.fixture
def acme_records(make_deal) -> list[DealRecord]:
    """Two sales-owned payments, July and August 2024."""
    return [
        make_deal(
            deal_id='A1',
            entity_id='C-ACME',
            entity_name='Acme',
            deal_name='Gold Monthly Plan',
            owner_id='sales-1',
            close_date=date(2024, 7, 10),
            last_modified_date=datetime(2024, 7, 11, tzinfo=timezone.utc),
        ),
        make_deal(
            deal_id='A2',
            entity_name='Acme',
            deal_name='Gold Monthly Plan',
            owner_id='sales-1',
            close_date=date(2024, 8, 10),
            last_modified_date=datetime(2024, 8, 11, tzinfo=timezone.utc),
        ),
    ]
