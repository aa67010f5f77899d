"""
Fiscal calendar arithmetic.

Pure date helpers used by every pipeline stage:
- date -> fiscal year label/quarter for a configurable start month
- canonical pivot month keys ("2024-Jan")
- month stepping and ranges
- lenient parsing of date-like inputs from CRM exports and sheets

Fiscal start months are 0-indexed (0 = January, 6 = July), matching the
report configuration values.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

DEFAULT_FY_START_MONTH = 6

EPOCH = date(1970, 1, 1)
EPOCH_DATETIME = datetime(1970, 1, 1, tzinfo=timezone.utc)

MONTH_ABBREVIATIONS = (
    'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
    'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec',
)

# Missing components in partial dates ("Mar 2024") resolve against this
# instead of today's date so parsing stays deterministic.
_PARSE_DEFAULT = datetime(2000, 1, 1)

# Numeric timestamps at or above this are epoch milliseconds (CRM exports)
_EPOCH_MS_THRESHOLD = 10**11


@dataclass(frozen=True)
class FiscalYear:
    """A fiscal year, optionally narrowed to one quarter."""

    label: str
    start_year: int
    quarter: int | None = None

    @property
    def quarter_label(self) -> str:
        if self.quarter is None:
            return self.label
        return f'{self.label} Q{self.quarter}'

    def __str__(self) -> str:
        return self.label


def _fiscal_start_year(d: date, fy_start_month: int) -> int:
    return d.year if d.month - 1 >= fy_start_month else d.year - 1


def format_fiscal_label(start_year: int) -> str:
    """"FY 24/25" for the fiscal year starting in 2024."""
    return f'FY {start_year % 100:02d}/{(start_year + 1) % 100:02d}'


def fiscal_year(d: date, fy_start_month: int = DEFAULT_FY_START_MONTH) -> FiscalYear:
    """
    Fiscal year and quarter containing a date.

    Args:
        d: Any date (datetimes are accepted)
        fy_start_month: 0-indexed first month of the fiscal year

    Returns:
        FiscalYear with label "FY YY/YY+1" and quarter 1-4
    """
    start_year = _fiscal_start_year(d, fy_start_month)
    quarter = ((d.month - 1 - fy_start_month + 12) % 12) // 3 + 1
    return FiscalYear(label=format_fiscal_label(start_year), start_year=start_year, quarter=quarter)


def fiscal_year_label(d: date, fy_start_month: int = DEFAULT_FY_START_MONTH) -> str:
    """Fiscal year label without the quarter."""
    return format_fiscal_label(_fiscal_start_year(d, fy_start_month))


def plain_fiscal_year(d: date, fy_start_month: int = DEFAULT_FY_START_MONTH) -> FiscalYear:
    """Fiscal year containing a date, with no quarter attached."""
    return fiscal_year_for_start(_fiscal_start_year(d, fy_start_month))


def fiscal_year_for_start(start_year: int) -> FiscalYear:
    return FiscalYear(label=format_fiscal_label(start_year), start_year=start_year)


def fiscal_year_bounds(
    value: date | FiscalYear,
    fy_start_month: int = DEFAULT_FY_START_MONTH,
) -> tuple[date, date]:
    """First and last day of the fiscal year containing a date (or of a FiscalYear)."""
    if isinstance(value, FiscalYear):
        start_year = value.start_year
    else:
        start_year = _fiscal_start_year(value, fy_start_month)
    first_day = date(start_year, fy_start_month + 1, 1)
    last_day = first_day + relativedelta(years=1) - timedelta(days=1)
    return first_day, last_day


# =============================================================================
# Months
# =============================================================================


def month_start(d: date) -> date:
    """First day of the month containing d (datetimes collapse to dates)."""
    return date(d.year, d.month, 1)


def month_key(d: date) -> str:
    """Canonical pivot column key, e.g. "2024-Jan"."""
    return f'{d.year:04d}-{MONTH_ABBREVIATIONS[d.month - 1]}'


def parse_month_key(key: str) -> date:
    """Inverse of month_key(); returns the first day of the month."""
    year_text, _, month_text = key.partition('-')
    try:
        month = MONTH_ABBREVIATIONS.index(month_text) + 1
        return date(int(year_text), month, 1)
    except ValueError as exc:
        raise ValueError(f'Not a month key: {key!r}') from exc


def add_months(d: date, months: int) -> date:
    return d + relativedelta(months=months)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start's month to end's month (may be negative)."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def month_range(start: date, end: date) -> list[date]:
    """First-of-month dates from start's month through end's month, inclusive."""
    months = []
    current = month_start(start)
    last = month_start(end)
    while current <= last:
        months.append(current)
        current = current + relativedelta(months=1)
    return months


# =============================================================================
# Parsing
# =============================================================================


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse a date-like value into a UTC-aware datetime.

    Accepts datetime/date objects, ISO strings, locale strings
    ("Jan 5, 2024", "01/05/2024" read month-first) and epoch milliseconds as
    int or digit string. Naive values are taken as UTC. Returns None when the
    value cannot be read as a date.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        if abs(value) < _EPOCH_MS_THRESHOLD:
            return None
        try:
            return EPOCH_DATETIME + timedelta(milliseconds=value)
        except OverflowError:
            return None
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.isdigit() and len(text) >= 11:
            return parse_datetime(int(text))
        try:
            parsed = date_parser.parse(text, default=_PARSE_DEFAULT)
        except (ValueError, OverflowError):
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Any) -> date | None:
    """Like parse_datetime() but returns the calendar date."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_datetime(value)
    return parsed.date() if parsed is not None else None


def parse_date_or_epoch(value: Any) -> date:
    """Parse a date, returning 1970-01-01 (not the current date) on failure."""
    parsed = parse_date(value)
    return parsed if parsed is not None else EPOCH
