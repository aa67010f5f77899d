"""
DealRecord: the immutable input unit of the reporting pipeline.

One DealRecord is one CRM deal as persisted by the sync process for a given
pipeline source (e.g. the "Payment" sheet). Field access is typed: source
headers are resolved to these fields once, at ingestion.

Key design decisions:
- Identifiers are trimmed and empty strings become None; case is preserved.
- An unparseable close date is kept as None (Unknown) rather than replaced
  with the current date; the enrichment stage decides how to treat it.
- amount defaults to 0.0.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..fiscal import parse_datetime


class DealRecord(BaseModel):
    """A single deal as read from one pipeline source."""

    deal_id: str | None = Field(default=None, description='CRM deal identifier (dedup key)')
    entity_id: str | None = Field(default=None, description='Company ID from the CRM')
    entity_name: str | None = Field(default=None, description='Company name')
    contact_email: str | None = Field(default=None, description='Primary contact email')

    amount: float = Field(default=0.0, description='Deal amount')
    pipeline_name: str = Field(default='', description='CRM pipeline tag, e.g. Payment, Sales, CS')
    close_date: date | None = Field(default=None, description='Close date; None when unknown')
    last_modified_date: datetime | None = Field(
        default=None, description='Last modification timestamp, used for dedup only'
    )
    owner_id: str | None = Field(default=None, description='Deal owner identifier')
    deal_name: str = Field(default='', description='Free-text deal name')

    source: str = Field(default='', description='Pipeline source the record was read from')

    model_config = {'frozen': True}

    @field_validator(
        'deal_id', 'entity_id', 'entity_name', 'contact_email', 'owner_id', mode='before'
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator('last_modified_date', mode='before')
    @classmethod
    def _aware_timestamp(cls, value: Any) -> Any:
        # Naive timestamps are UTC so every record compares with every other
        if value is None:
            return None
        return parse_datetime(value)

    @field_validator('pipeline_name', 'deal_name', 'source', mode='before')
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if value is None:
            return ''
        return str(value).strip()

    @property
    def identifiers(self) -> list[tuple[str, str]]:
        """(kind, value) pairs for every identifier present, in priority order."""
        pairs = []
        if self.entity_id:
            pairs.append(('id', self.entity_id))
        if self.entity_name:
            pairs.append(('name', self.entity_name))
        if self.contact_email:
            pairs.append(('email', self.contact_email))
        return pairs

    @property
    def has_identity(self) -> bool:
        return bool(self.entity_id or self.entity_name or self.contact_email)

    @property
    def primary_key(self) -> str | None:
        """First non-empty of entity_id, entity_name, contact_email."""
        return self.entity_id or self.entity_name or self.contact_email

    def is_pipeline(self, pipeline: str) -> bool:
        return self.pipeline_name.casefold() == pipeline.casefold()
