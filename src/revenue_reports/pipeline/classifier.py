"""
Deal and entity classification.

Three independent classifications:
- revenue type (entity-level): Recurring / Repeated One-Time / One-Time
- client age (entity-level, relative to the report date): Prospect / Future /
  Old / New / Other
- team attribution (deal-level): sales-owned / CS-owned by exact owner match

Classification never raises; every deal gets a label.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

import structlog

from ..config import ReportConfig
from ..fiscal import DEFAULT_FY_START_MONTH, FiscalYear, fiscal_year
from ..models.classification import (
    ClassificationResult,
    ClientAge,
    EntityStats,
    RevenueType,
)
from ..models.deal import DealRecord

logger = structlog.get_logger(__name__)


# =============================================================================
# Revenue Type
# =============================================================================


def matches_recurring_keyword(deal_names: Iterable[str], keywords: Iterable[str]) -> bool:
    """True if any deal name contains any keyword, case-insensitively."""
    lowered = [k.casefold() for k in keywords if k]
    return any(k in name.casefold() for name in deal_names for k in lowered)


def max_paid_months_in_fiscal_year(
    paid_months: Iterable[date],
    fy_start_month: int = DEFAULT_FY_START_MONTH,
) -> int:
    """Largest number of distinct paid months falling in one fiscal year."""
    per_year = Counter(fiscal_year(m, fy_start_month).start_year for m in set(paid_months))
    return max(per_year.values(), default=0)


def classify_revenue_type(
    stats: EntityStats,
    keywords: Iterable[str],
    recurring_months: int = 8,
    repeated_months: int = 5,
    fy_start_month: int = DEFAULT_FY_START_MONTH,
) -> RevenueType:
    """
    Entity revenue type.

    Recurring when a revenue deal name carries a recurring keyword or one
    fiscal year holds at least `recurring_months` distinct paid months;
    Repeated One-Time when total distinct paid months exceed
    `repeated_months`; otherwise One-Time.
    """
    if matches_recurring_keyword(stats.revenue_deal_names, keywords):
        return RevenueType.RECURRING
    if max_paid_months_in_fiscal_year(stats.paid_months, fy_start_month) >= recurring_months:
        return RevenueType.RECURRING
    if stats.paid_month_count > repeated_months:
        return RevenueType.REPEATED_ONE_TIME
    return RevenueType.ONE_TIME


# =============================================================================
# Client Age
# =============================================================================


def classify_client_age(
    stats: EntityStats,
    current_fy: FiscalYear,
    report_date: date,
) -> ClientAge:
    """
    Entity age relative to the report.

    Tiers, first match wins:
    Prospect (no first fiscal year), Future (first payment after the report
    date), Old (first fiscal year starts before the current one), New (same
    fiscal year label), Other.

    Old compares start years while New compares labels, so a first fiscal
    year with the current start year but a differently formatted label falls
    through to Other.
    """
    first_fy = stats.first_fiscal_year
    if first_fy is None:
        return ClientAge.PROSPECT
    if stats.first_payment_date is not None and stats.first_payment_date > report_date:
        return ClientAge.FUTURE
    if first_fy.start_year < current_fy.start_year:
        return ClientAge.OLD
    if first_fy.label == current_fy.label:
        return ClientAge.NEW
    return ClientAge.OTHER


# =============================================================================
# Team Attribution
# =============================================================================


@dataclass(frozen=True)
class TeamMembership:
    """Owner identifiers of the sales and customer-success teams."""

    sales: frozenset[str] = field(default_factory=frozenset)
    cs: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_lists(cls, sales: Iterable[str], cs: Iterable[str]) -> 'TeamMembership':
        return cls(
            sales=frozenset(str(s).strip() for s in sales if str(s).strip()),
            cs=frozenset(str(c).strip() for c in cs if str(c).strip()),
        )

    def is_sales_owned(self, owner_id: str | None) -> bool:
        return owner_id is not None and owner_id in self.sales

    def is_cs_owned(self, owner_id: str | None) -> bool:
        return owner_id is not None and owner_id in self.cs


# =============================================================================
# Classifier
# =============================================================================


class Classifier:
    """
    Applies all classifications for one report context.

    Entity-level labels are computed once per entity key and reused for every
    deal of that entity, so all deals of a company share one revenue type and
    client age even when the deciding months or keywords come from a
    different deal.
    """

    def __init__(self, report_config: ReportConfig, membership: TeamMembership):
        self.report_config = report_config
        self.membership = membership
        self.current_fy = report_config.current_fiscal_year
        self._entity_labels: dict[str, tuple[RevenueType, ClientAge]] = {}

    def classify_entity(self, stats: EntityStats) -> tuple[RevenueType, ClientAge]:
        cached = self._entity_labels.get(stats.key)
        if cached is not None:
            return cached

        cfg = self.report_config
        labels = (
            classify_revenue_type(
                stats,
                cfg.recurring_keywords,
                recurring_months=cfg.recurring_months_in_fy,
                repeated_months=cfg.repeated_total_months,
                fy_start_month=cfg.fy_start_month,
            ),
            classify_client_age(stats, self.current_fy, cfg.report_date),
        )
        self._entity_labels[stats.key] = labels
        return labels

    def classify_record(
        self,
        record: DealRecord,
        stats: EntityStats,
        effective_close_date: date,
    ) -> ClassificationResult:
        revenue_type, client_age = self.classify_entity(stats)
        is_revenue = record.is_pipeline(self.report_config.revenue_pipeline)
        in_current_fy = (
            fiscal_year(effective_close_date, self.report_config.fy_start_month).label
            == self.current_fy.label
        )
        return ClassificationResult(
            revenue_type=revenue_type,
            client_age=client_age,
            is_sales_owned=self.membership.is_sales_owned(record.owner_id),
            is_cs_owned=self.membership.is_cs_owned(record.owner_id),
            is_revenue=is_revenue,
            is_revenue_this_fy=is_revenue and in_current_fy,
            is_deal_this_fy=in_current_fy,
        )
