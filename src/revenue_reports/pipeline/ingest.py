"""
Source row ingestion.

Turns the grid-like tables persisted by the CRM sync (one per pipeline
source) into typed DealRecords. Header text is resolved to DealRecord fields
once per table through ColumnMap; after that every access is by field name.

Per-record defects (unparseable amount or dates) never stop ingestion: the
field falls back to its documented default and the defect is recorded on the
DataQualityReport.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import structlog

from ..errors import DataQualityReport, MissingColumnError
from ..fiscal import parse_date, parse_datetime
from ..models.deal import DealRecord

logger = structlog.get_logger(__name__)


# Header aliases per DealRecord field, compared after normalisation
# (lower case, non-alphanumerics removed).
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    'deal_id': ('dealid', 'id', 'hsobjectid', 'recordid'),
    'entity_id': ('companyid', 'entityid', 'associatedcompanyid', 'accountid'),
    'entity_name': ('companyname', 'company', 'entityname', 'accountname', 'associatedcompany'),
    'contact_email': ('contactemail', 'email', 'associatedcontactemail'),
    'amount': ('amount', 'dealamount', 'value', 'revenue'),
    'pipeline_name': ('pipeline', 'pipelinename'),
    'close_date': ('closedate', 'dateclosed', 'paymentdate'),
    'last_modified_date': ('lastmodifieddate', 'lastmodified', 'hslastmodifieddate', 'updatedat'),
    'owner_id': ('ownerid', 'dealowner', 'hubspotownerid', 'owner'),
    'deal_name': ('dealname', 'name', 'title'),
}

REQUIRED_FIELDS = ('deal_id',)

_NON_ALNUM = re.compile(r'[^a-z0-9]')
_AMOUNT_STRIP = re.compile(r'[\s,$€£¥]')


def normalize_header(header: Any) -> str:
    return _NON_ALNUM.sub('', str(header or '').lower())


@dataclass(frozen=True)
class ColumnMap:
    """DealRecord field name -> column index, resolved once per table."""

    indexes: dict[str, int]

    @classmethod
    def resolve(cls, headers: Sequence[Any], source: str | None = None) -> 'ColumnMap':
        """
        Match header text against FIELD_ALIASES.

        The first header matching a field wins; unknown headers are ignored.

        Raises:
            MissingColumnError: a required field has no column.
        """
        normalized = [normalize_header(h) for h in headers]
        indexes: dict[str, int] = {}
        for field_name, aliases in FIELD_ALIASES.items():
            for alias in aliases:
                if alias in normalized:
                    indexes[field_name] = normalized.index(alias)
                    break

        missing = [f for f in REQUIRED_FIELDS if f not in indexes]
        if missing:
            raise MissingColumnError(
                'Source table is missing required columns',
                context={'source': source, 'missing': missing, 'headers': list(headers)},
            )
        return cls(indexes=indexes)

    def get(self, row: Sequence[Any], field_name: str) -> Any:
        index = self.indexes.get(field_name)
        if index is None or index >= len(row):
            return None
        return row[index]


def parse_amount(value: Any) -> float | None:
    """
    Parse a monetary amount.

    Accepts numbers and strings with currency symbols, thousands separators
    and accounting-style negatives ("(1,200.00)"). Returns None when the value
    is present but unreadable; blank values are 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0 if value is None else None
    if isinstance(value, (int, float)):
        amount = float(value)
        return amount if math.isfinite(amount) else None
    text = str(value).strip()
    if not text:
        return 0.0
    negative = text.startswith('(') and text.endswith(')')
    if negative:
        text = text[1:-1]
    text = _AMOUNT_STRIP.sub('', text)
    try:
        amount = float(text)
    except ValueError:
        return None
    if not math.isfinite(amount):
        return None
    return -amount if negative else amount


def build_record(
    values: Mapping[str, Any],
    source: str,
    quality: DataQualityReport,
) -> DealRecord:
    """Build one DealRecord from field-name -> raw value, recording defects."""
    deal_id = values.get('deal_id')
    deal_id = str(deal_id).strip() if deal_id not in (None, '') else None

    raw_amount = values.get('amount')
    amount = parse_amount(raw_amount)
    if amount is None:
        quality.add('amount', f'unparseable amount {raw_amount!r}', deal_id=deal_id, source=source)
        amount = 0.0

    raw_close = values.get('close_date')
    close_date = parse_date(raw_close)
    if close_date is None:
        issue = 'missing close date' if raw_close in (None, '') else f'unparseable close date {raw_close!r}'
        quality.add('close_date', issue, deal_id=deal_id, source=source)

    raw_modified = values.get('last_modified_date')
    last_modified = parse_datetime(raw_modified)
    if last_modified is None and raw_modified not in (None, ''):
        quality.add(
            'last_modified_date',
            f'unparseable last modified date {raw_modified!r}',
            deal_id=deal_id,
            source=source,
        )

    return DealRecord(
        deal_id=deal_id,
        entity_id=values.get('entity_id'),
        entity_name=values.get('entity_name'),
        contact_email=values.get('contact_email'),
        amount=amount,
        pipeline_name=values.get('pipeline_name') or source,
        close_date=close_date,
        last_modified_date=last_modified,
        owner_id=values.get('owner_id'),
        deal_name=values.get('deal_name'),
        source=source,
    )


def ingest_table(
    headers: Sequence[Any],
    rows: Iterable[Sequence[Any]],
    source: str,
    quality: DataQualityReport | None = None,
) -> list[DealRecord]:
    """
    Convert a header row plus data rows into DealRecords.

    Fully blank rows are skipped. A missing pipeline column or cell falls back
    to the source label.
    """
    quality = quality if quality is not None else DataQualityReport()
    columns = ColumnMap.resolve(headers, source=source)

    records = []
    for row in rows:
        if not any(cell not in (None, '') for cell in row):
            continue
        values = {name: columns.get(row, name) for name in FIELD_ALIASES}
        records.append(build_record(values, source, quality))

    logger.debug('ingest.table', source=source, records=len(records))
    return records


def ingest_dicts(
    items: Iterable[Mapping[str, Any]],
    source: str,
    quality: DataQualityReport | None = None,
) -> list[DealRecord]:
    """
    Convert keyed rows (e.g. database rows or JSON objects) into DealRecords.

    Keys are matched with the same aliases as table headers. Rows may be
    sparse, so the mapping is resolved over every key seen in any item, in
    first-seen order; a key absent from an item reads as blank.
    """
    quality = quality if quality is not None else DataQualityReport()
    items = list(items)
    if not items:
        return []

    keys = list(dict.fromkeys(key for item in items for key in item))
    columns = ColumnMap.resolve(keys, source=source)
    field_keys = {name: keys[index] for name, index in columns.indexes.items()}

    records = []
    for item in items:
        values = {name: item.get(key) for name, key in field_keys.items()}
        records.append(build_record(values, source, quality))

    logger.debug('ingest.dicts', source=source, records=len(records))
    return records
