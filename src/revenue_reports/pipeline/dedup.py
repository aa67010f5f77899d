"""
Deal deduplication.

Collapses every group of records sharing a deal_id to the single most
recently modified version. A later record replaces the kept one only when its
last-modified timestamp is strictly greater, so the earliest-encountered
record wins ties. Records with no last-modified timestamp compare as the
epoch.

Deduplication runs per pipeline source; sources are then merged in order.
"""

from typing import Iterable, Mapping

import structlog

from ..errors import DataQualityReport
from ..fiscal import EPOCH_DATETIME
from ..logging import logging_context
from ..models.deal import DealRecord

logger = structlog.get_logger(__name__)


def deduplicate(
    records: Iterable[DealRecord],
    quality: DataQualityReport | None = None,
) -> list[DealRecord]:
    """
    Keep one record per deal_id.

    Output preserves the order in which each deal_id was first seen. Records
    without a deal_id are dropped (and recorded as defects when a quality
    report is given).
    """
    kept: dict[str, DealRecord] = {}
    dropped = 0

    for record in records:
        if not record.deal_id:
            dropped += 1
            if quality is not None:
                quality.add('deal_id', 'missing deal id, record dropped', source=record.source)
            continue

        current = kept.get(record.deal_id)
        if current is None:
            kept[record.deal_id] = record
            continue

        incoming_modified = record.last_modified_date or EPOCH_DATETIME
        current_modified = current.last_modified_date or EPOCH_DATETIME
        if incoming_modified > current_modified:
            kept[record.deal_id] = record

    if dropped:
        logger.warning('dedup.records_without_id', dropped=dropped)
    return list(kept.values())


def deduplicate_sources(
    records_by_source: Mapping[str, Iterable[DealRecord]],
    quality: DataQualityReport | None = None,
) -> list[DealRecord]:
    """
    Deduplicate each source independently, then merge in source order.

    A deal_id is expected to live in exactly one source. If one shows up in
    several, the merged list is deduplicated again with the same rule, so the
    earlier source wins a tie and exactly one record per deal_id survives.
    """
    merged: list[DealRecord] = []
    for source, records in records_by_source.items():
        with logging_context(source=source):
            unique = deduplicate(records, quality)
            logger.info('dedup.source_complete', unique=len(unique))
        merged.extend(unique)

    result = deduplicate(merged)
    if len(result) != len(merged):
        logger.warning('dedup.deal_in_multiple_sources', count=len(merged) - len(result))
    return result
