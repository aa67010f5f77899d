"""
Enrichment cache builder.

Joins dedup, identity resolution and classification into one denormalized
dataset: one EnrichedRecord per deduplicated deal across all pipeline
sources. Every report reads this dataset instead of re-scanning raw records.

The cache is always rebuilt in full; nothing is updated in place.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog

from ..config import ReportConfig, UnknownDatePolicy
from ..errors import DataQualityReport
from ..fiscal import month_key, plain_fiscal_year
from ..models.classification import ClassificationResult, EnrichedRecord, EntityFlags
from ..models.deal import DealRecord
from .classifier import Classifier, TeamMembership
from .dedup import deduplicate_sources
from .identity import EntityIndex, EntityResolver

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EnrichmentCache:
    """The materialized enriched dataset for one report context."""

    records: tuple[EnrichedRecord, ...]
    report_config: ReportConfig
    flags: Mapping[str, EntityFlags] = field(default_factory=dict)
    quality: DataQualityReport = field(default_factory=DataQualityReport)

    def __len__(self) -> int:
        return len(self.records)

    def by_entity(self) -> dict[str, list[EnrichedRecord]]:
        """Records grouped by entity key, entities in first-seen order."""
        grouped: dict[str, list[EnrichedRecord]] = {}
        for record in self.records:
            grouped.setdefault(record.entity_key, []).append(record)
        return grouped

    def for_pipeline(self, pipeline: str) -> list[EnrichedRecord]:
        return [r for r in self.records if r.record.is_pipeline(pipeline)]

    def flags_for(self, entity_key: str) -> EntityFlags:
        return self.flags.get(entity_key, EntityFlags())

    def to_rows(self) -> list[dict[str, Any]]:
        return [record.to_row() for record in self.records]


class EnrichmentBuilder:
    """
    Builds the EnrichmentCache.

    Stages:
    1. Per-source deduplication
    2. Unknown close-date policy
    3. Identity resolution over all sources
    4. Classification of every record
    5. Entity-wide flags over all sources, broadcast onto each record
    """

    def __init__(self, report_config: ReportConfig, membership: TeamMembership):
        self.report_config = report_config
        self.membership = membership

    def build(
        self,
        records_by_source: Mapping[str, Iterable[DealRecord]],
        quality: DataQualityReport | None = None,
    ) -> EnrichmentCache:
        quality = quality if quality is not None else DataQualityReport()
        cfg = self.report_config

        deduped = deduplicate_sources(records_by_source, quality)
        records, effective_dates = self._apply_date_policy(deduped, quality)

        resolver = EntityResolver(
            revenue_pipeline=cfg.revenue_pipeline,
            fy_start_month=cfg.fy_start_month,
            close_date_of=lambda record: effective_dates[record.deal_id],
        )
        index = resolver.resolve(records)

        classifier = Classifier(cfg, self.membership)
        classified: list[tuple[DealRecord, ClassificationResult]] = []
        for record in records:
            stats = index.for_record(record)
            classified.append(
                (record, classifier.classify_record(record, stats, effective_dates[record.deal_id]))
            )

        flags = self._entity_flags(index, classified)

        enriched = []
        for record, classification in classified:
            stats = index.for_record(record)
            effective = effective_dates[record.deal_id]
            enriched.append(
                EnrichedRecord(
                    record=record,
                    classification=classification,
                    stats=stats,
                    flags=flags[stats.key],
                    effective_close_date=effective,
                    close_date_known=record.close_date is not None,
                    month_key=month_key(effective),
                    fiscal_year=plain_fiscal_year(effective, cfg.fy_start_month),
                )
            )

        logger.info(
            'enrichment.complete',
            records=len(enriched),
            entities=len(flags),
            defects=quality.defect_count,
        )
        return EnrichmentCache(
            records=tuple(enriched),
            report_config=cfg,
            flags=flags,
            quality=quality,
        )

    def _apply_date_policy(
        self,
        records: list[DealRecord],
        quality: DataQualityReport,
    ) -> tuple[list[DealRecord], dict[str, date]]:
        """Resolve each record's effective close date, dropping records if the policy says so."""
        cfg = self.report_config
        kept: list[DealRecord] = []
        effective: dict[str, date] = {}
        unknown = 0

        for record in records:
            if record.close_date is not None:
                kept.append(record)
                effective[record.deal_id] = record.close_date
                continue

            unknown += 1
            if cfg.unknown_close_date == UnknownDatePolicy.EXCLUDE:
                quality.add(
                    'close_date_policy',
                    'unknown close date, excluded',
                    deal_id=record.deal_id,
                    source=record.source,
                )
                continue
            quality.add(
                'close_date_policy',
                'unknown close date, treated as report date',
                deal_id=record.deal_id,
                source=record.source,
            )
            kept.append(record)
            effective[record.deal_id] = cfg.report_date

        if unknown:
            logger.warning(
                'enrichment.unknown_close_dates',
                count=unknown,
                policy=cfg.unknown_close_date.value,
            )
        return kept, effective

    def _entity_flags(
        self,
        index: EntityIndex,
        classified: list[tuple[DealRecord, ClassificationResult]],
    ) -> dict[str, EntityFlags]:
        """Entity-wide flags over every pipeline source."""
        accumulated: dict[str, dict[str, bool]] = {}
        for record, classification in classified:
            key = index.for_record(record).key
            current = accumulated.setdefault(
                key,
                {
                    'has_sales_team_owner': False,
                    'has_cs_team_owner': False,
                    'has_revenue_this_fy': False,
                    'has_any_deal_this_fy': False,
                },
            )
            current['has_sales_team_owner'] |= classification.is_sales_owned
            current['has_cs_team_owner'] |= classification.is_cs_owned
            current['has_revenue_this_fy'] |= classification.is_revenue_this_fy
            current['has_any_deal_this_fy'] |= classification.is_deal_this_fy

        return {key: EntityFlags(**values) for key, values in accumulated.items()}
