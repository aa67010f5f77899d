"""
POC team attribution.

Decides which business unit owns an entity's relationship. The decision is an
ordered list of tiers; each tier either returns a team or passes. Current
activity is consulted before stale history:

1. In-window revenue deals all owned by one team
2. All-time, all-pipeline ownership exclusive to one team
3. Current fiscal year revenue: exclusive owner, else transferred this FY
4. Mixed history ("CS & Sales") or no team at all ("C-Suite")

The last tier always answers, so every entity gets a team.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from ..models.classification import EnrichedRecord, EntityFlags, PocTeam


@dataclass(frozen=True)
class PocContext:
    """Everything the tiers look at for one entity."""

    window_revenue: Sequence[EnrichedRecord]
    fy_revenue: Sequence[EnrichedRecord]
    flags: EntityFlags


PocTier = Callable[[PocContext], PocTeam | None]


def exclusive_owner(records: Sequence[EnrichedRecord]) -> PocTeam | None:
    """The one team owning every record, or None (mixed, unowned or empty)."""
    if not records:
        return None
    if all(r.classification.is_sales_owned and not r.classification.is_cs_owned for r in records):
        return PocTeam.SALES
    if all(r.classification.is_cs_owned and not r.classification.is_sales_owned for r in records):
        return PocTeam.CS
    return None


def window_ownership(ctx: PocContext) -> PocTeam | None:
    return exclusive_owner(ctx.window_revenue)


def historical_ownership(ctx: PocContext) -> PocTeam | None:
    flags = ctx.flags
    if flags.has_sales_team_owner and not flags.has_cs_team_owner:
        return PocTeam.SALES
    if flags.has_cs_team_owner and not flags.has_sales_team_owner:
        return PocTeam.CS
    return None


def fiscal_year_ownership(ctx: PocContext) -> PocTeam | None:
    if not ctx.flags.has_revenue_this_fy:
        return None
    return exclusive_owner(ctx.fy_revenue) or PocTeam.TRANSFERRED


def mixed_history(ctx: PocContext) -> PocTeam | None:
    if ctx.flags.has_sales_team_owner and ctx.flags.has_cs_team_owner:
        return PocTeam.CS_AND_SALES
    return PocTeam.C_SUITE


POC_TEAM_TIERS: tuple[PocTier, ...] = (
    window_ownership,
    historical_ownership,
    fiscal_year_ownership,
    mixed_history,
)


def build_poc_context(
    entity_records: Iterable[EnrichedRecord],
    flags: EntityFlags,
    window_start: date,
    window_end: date,
) -> PocContext:
    """Collect the entity's in-window and current-FY revenue deals."""
    revenue = [r for r in entity_records if r.classification.is_revenue]
    return PocContext(
        window_revenue=[
            r for r in revenue if window_start <= r.effective_close_date <= window_end
        ],
        fy_revenue=[r for r in revenue if r.classification.is_revenue_this_fy],
        flags=flags,
    )


def resolve_poc_team(ctx: PocContext, tiers: Sequence[PocTier] = POC_TEAM_TIERS) -> PocTeam:
    for tier in tiers:
        team = tier(ctx)
        if team is not None:
            return team
    return PocTeam.C_SUITE
