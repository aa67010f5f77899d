"""
Entity identity resolution.

Deals reference their company through up to three identifiers: company ID,
company name and contact email. Upstream data is patchy, so one company can
appear under different subsets of these on different deals. Every identifier
becomes a node in a disjoint-set; identifiers seen together on one record are
unioned, which yields the transitive closure over the whole batch: if deal A
and deal B share an email and B and C share an ID, A, B and C resolve to one
entity.

Identifiers are namespaced by kind, so a company named "123" never collides
with company ID "123". IDs compare verbatim; names and emails are trimmed with
case preserved.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date

import structlog

from ..fiscal import DEFAULT_FY_START_MONTH, month_start, plain_fiscal_year
from ..models.classification import EntityStats
from ..models.deal import DealRecord

logger = structlog.get_logger(__name__)

Alias = tuple[str, str]


class _DisjointSet:
    """Union-find keyed by alias; the earliest-added alias of a set is its root."""

    def __init__(self):
        self._parent: dict[Alias, Alias] = {}
        self._order: dict[Alias, int] = {}

    def add(self, alias: Alias) -> None:
        if alias not in self._parent:
            self._parent[alias] = alias
            self._order[alias] = len(self._order)

    def find(self, alias: Alias) -> Alias:
        root = alias
        while self._parent[root] != root:
            root = self._parent[root]
        # Path compression
        while self._parent[alias] != root:
            self._parent[alias], alias = root, self._parent[alias]
        return root

    def union(self, a: Alias, b: Alias) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        if self._order[root_a] <= self._order[root_b]:
            self._parent[root_b] = root_a
        else:
            self._parent[root_a] = root_b

    def __iter__(self):
        return iter(self._parent)


def normalize_alias(kind: str, value: str) -> Alias:
    if kind == 'id':
        return (kind, value)
    return (kind, value.strip())


@dataclass
class EntityIndex:
    """
    Alias -> EntityStats lookup produced by EntityResolver.

    Every alias of an entity returns the same EntityStats object.
    """

    revenue_pipeline: str
    fy_start_month: int = DEFAULT_FY_START_MONTH
    close_date_of: Callable[[DealRecord], date | None] = lambda record: record.close_date
    _alias_to_key: dict[Alias, str] = field(default_factory=dict)
    _stats: dict[str, EntityStats] = field(default_factory=dict)
    _fallbacks: dict[str, EntityStats] = field(default_factory=dict)

    def lookup(self, kind: str, value: str) -> EntityStats | None:
        """Stats for an alias ('id', 'name' or 'email'), or None if never seen."""
        key = self._alias_to_key.get(normalize_alias(kind, value))
        return self._stats.get(key) if key is not None else None

    def for_record(self, record: DealRecord) -> EntityStats:
        """
        Stats of the entity a record belongs to.

        A record with no identifiers gets a standalone fallback whose first
        payment date is its own close date.
        """
        for kind, value in record.identifiers:
            stats = self.lookup(kind, value)
            if stats is not None:
                return stats
        return self._fallback_for(record)

    @property
    def entities(self) -> list[EntityStats]:
        return list(self._stats.values())

    def __len__(self) -> int:
        return len(self._stats)

    def _fallback_for(self, record: DealRecord) -> EntityStats:
        key = f'deal:{record.deal_id}'
        cached = self._fallbacks.get(key)
        if cached is not None:
            return cached

        close = self.close_date_of(record)
        is_revenue = record.is_pipeline(self.revenue_pipeline)
        stats = EntityStats(
            key=key,
            display_name=record.deal_name or key,
            first_payment_date=close,
            first_fiscal_year=(
                plain_fiscal_year(close, self.fy_start_month)
                if close is not None
                else None
            ),
            paid_months=frozenset({month_start(close)}) if close and is_revenue else frozenset(),
            revenue_deal_names=(record.deal_name,) if is_revenue and record.deal_name else (),
            is_fallback=True,
        )
        self._fallbacks[key] = stats
        return stats


class EntityResolver:
    """
    Groups deal records into entities and computes their EntityStats.

    Stats only draw on revenue-pipeline deals (first payment, paid months,
    deal names), but grouping uses every record so aliases seen only on
    relationship pipelines still join the entity.
    """

    def __init__(
        self,
        revenue_pipeline: str,
        fy_start_month: int = DEFAULT_FY_START_MONTH,
        close_date_of: Callable[[DealRecord], date | None] | None = None,
    ):
        """
        Args:
            revenue_pipeline: Pipeline whose deals count as realized revenue
            fy_start_month: 0-indexed fiscal start month
            close_date_of: Close date to use per record (defaults to
                record.close_date); lets callers apply an unknown-date policy
        """
        self.revenue_pipeline = revenue_pipeline
        self.fy_start_month = fy_start_month
        self.close_date_of = close_date_of or (lambda record: record.close_date)

    def resolve(self, records: Iterable[DealRecord]) -> EntityIndex:
        records = list(records)
        disjoint = _DisjointSet()

        for record in records:
            aliases = [normalize_alias(kind, value) for kind, value in record.identifiers]
            for alias in aliases:
                disjoint.add(alias)
            for alias in aliases[1:]:
                disjoint.union(aliases[0], alias)

        # Group records by component, in input order
        members: dict[Alias, list[DealRecord]] = {}
        unidentified = 0
        for record in records:
            if not record.has_identity:
                unidentified += 1
                continue
            first_alias = normalize_alias(*record.identifiers[0])
            members.setdefault(disjoint.find(first_alias), []).append(record)

        component_aliases: dict[Alias, set[Alias]] = {}
        for alias in disjoint:
            component_aliases.setdefault(disjoint.find(alias), set()).add(alias)

        index = EntityIndex(
            revenue_pipeline=self.revenue_pipeline,
            fy_start_month=self.fy_start_month,
            close_date_of=self.close_date_of,
        )
        for root, group in members.items():
            stats = self._build_stats(group, frozenset(component_aliases[root]))
            if stats.key in index._stats:
                # Same text used as an ID by one entity and a name by another
                kind, value = normalize_alias(*group[0].identifiers[0])
                stats = stats.model_copy(update={'key': f'{kind}:{value}'})
            index._stats[stats.key] = stats
            for alias in stats.aliases:
                index._alias_to_key[alias] = stats.key

        logger.info(
            'identity.resolved',
            records=len(records),
            entities=len(index),
            unidentified=unidentified,
        )
        return index

    def _build_stats(self, group: list[DealRecord], aliases: frozenset[Alias]) -> EntityStats:
        key = group[0].primary_key
        display_name = next((r.entity_name for r in group if r.entity_name), key)

        revenue = [r for r in group if r.is_pipeline(self.revenue_pipeline)]
        close_dates = [d for d in (self.close_date_of(r) for r in revenue) if d is not None]
        first_payment = min(close_dates) if close_dates else None

        return EntityStats(
            key=key,
            display_name=display_name,
            aliases=aliases,
            first_payment_date=first_payment,
            first_fiscal_year=(
                plain_fiscal_year(first_payment, self.fy_start_month)
                if first_payment is not None
                else None
            ),
            paid_months=frozenset(month_start(d) for d in close_dates),
            revenue_deal_names=tuple(r.deal_name for r in revenue if r.deal_name),
        )
