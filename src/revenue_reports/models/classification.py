"""
Classification and enrichment models.

EntityStats is the per-company aggregate computed by identity resolution;
ClassificationResult and EntityFlags are the labels attached to each deal;
EnrichedRecord bundles all of them with the original DealRecord and is the
unit every report reads. All are frozen: they are derived state, rebuilt
wholesale on every run.
"""

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..fiscal import FiscalYear
from .deal import DealRecord


class RevenueType(str, Enum):
    """Entity-level revenue pattern."""

    RECURRING = 'Recurring'
    REPEATED_ONE_TIME = 'Repeated One-Time'
    ONE_TIME = 'One-Time'


class ClientAge(str, Enum):
    """Entity age relative to the report's fiscal year."""

    NEW = 'New'
    OLD = 'Old'
    FUTURE = 'Future'
    PROSPECT = 'Prospect'
    OTHER = 'Other'


class PocTeam(str, Enum):
    """Business unit responsible for an entity's relationship."""

    SALES = 'Sales Team'
    CS = 'CS Team'
    TRANSFERRED = 'CS and Sales (Transferred this FY)'
    CS_AND_SALES = 'CS & Sales'
    C_SUITE = 'C-Suite'


class EntityStats(BaseModel):
    """
    Aggregate facts about one resolved entity (company).

    paid_months holds first-of-month dates with at least one revenue-pipeline
    deal. A fallback stats object (is_fallback=True) stands in for a deal
    with no identifiers at all.
    """

    key: str = Field(..., description='Canonical entity key')
    display_name: str = Field(..., description='Name shown in reports')
    aliases: frozenset[tuple[str, str]] = Field(
        default_factory=frozenset, description='(kind, value) identifiers resolving here'
    )
    first_payment_date: date | None = Field(
        default=None, description='Earliest close date across revenue-pipeline deals'
    )
    first_fiscal_year: FiscalYear | None = Field(default=None)
    paid_months: frozenset[date] = Field(default_factory=frozenset)
    revenue_deal_names: tuple[str, ...] = Field(default=())
    is_fallback: bool = Field(default=False)

    model_config = {'frozen': True}

    @property
    def paid_month_count(self) -> int:
        return len(self.paid_months)


class ClassificationResult(BaseModel):
    """Labels assigned to one deal."""

    revenue_type: RevenueType
    client_age: ClientAge
    is_sales_owned: bool = False
    is_cs_owned: bool = False
    is_revenue: bool = Field(default=False, description='Deal is on the revenue pipeline')
    is_revenue_this_fy: bool = False
    is_deal_this_fy: bool = False

    model_config = {'frozen': True}


class EntityFlags(BaseModel):
    """Entity-wide flags computed over every source, broadcast onto each deal."""

    has_sales_team_owner: bool = False
    has_cs_team_owner: bool = False
    has_revenue_this_fy: bool = False
    has_any_deal_this_fy: bool = False

    model_config = {'frozen': True}


class EnrichedRecord(BaseModel):
    """A deduplicated deal joined with its entity stats, labels and flags."""

    record: DealRecord
    classification: ClassificationResult
    stats: EntityStats
    flags: EntityFlags
    effective_close_date: date = Field(
        ..., description='Close date used for bucketing (report date when unknown)'
    )
    close_date_known: bool = True
    month_key: str
    fiscal_year: FiscalYear

    model_config = {'frozen': True}

    @property
    def entity_key(self) -> str:
        return self.stats.key

    @property
    def amount(self) -> float:
        return self.record.amount

    def to_row(self) -> dict[str, Any]:
        """
        Flatten to a storage row.

        Dates become ISO strings, enums their values; None values are kept so
        every row carries the same columns.
        """
        record = self.record
        classification = self.classification
        return {
            'deal_id': record.deal_id,
            'source': record.source,
            'pipeline_name': record.pipeline_name,
            'deal_name': record.deal_name,
            'owner_id': record.owner_id,
            'amount': record.amount,
            'close_date': record.close_date.isoformat() if record.close_date else None,
            'effective_close_date': self.effective_close_date.isoformat(),
            'close_date_known': self.close_date_known,
            'month_key': self.month_key,
            'fiscal_year': self.fiscal_year.label,
            'entity_key': self.stats.key,
            'entity_name': self.stats.display_name,
            'first_payment_date': (
                self.stats.first_payment_date.isoformat() if self.stats.first_payment_date else None
            ),
            'first_fiscal_year': (
                self.stats.first_fiscal_year.label if self.stats.first_fiscal_year else None
            ),
            'paid_month_count': self.stats.paid_month_count,
            'revenue_type': classification.revenue_type.value,
            'client_age': classification.client_age.value,
            'is_sales_owned': classification.is_sales_owned,
            'is_cs_owned': classification.is_cs_owned,
            'is_revenue': classification.is_revenue,
            'is_revenue_this_fy': classification.is_revenue_this_fy,
            'has_sales_team_owner': self.flags.has_sales_team_owner,
            'has_cs_team_owner': self.flags.has_cs_team_owner,
            'has_revenue_this_fy': self.flags.has_revenue_this_fy,
            'has_any_deal_this_fy': self.flags.has_any_deal_this_fy,
        }
