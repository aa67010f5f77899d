"""
Configuration management for the revenue reporting pipeline.

Two layers:
- Config: process defaults loaded from environment variables (.env supported).
- ReportConfig: the immutable per-run parameters, built from a flat
  key -> value mapping. Out-of-range or malformed optional values degrade to
  documented defaults; a missing or unusable report date is fatal.
"""

import os
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .errors import MissingParameterError
from .fiscal import FiscalYear, fiscal_year, fiscal_year_bounds, parse_date

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)

logger = structlog.get_logger(__name__)


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(',') if part.strip())


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class Config:
    """Configuration settings loaded from environment."""

    # Storage
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')

    # Fiscal calendar (0-indexed month, 6 = July)
    FY_START_MONTH: int = _env_int('FY_START_MONTH', 6)

    # Classification
    REVENUE_PIPELINE: str = os.getenv('REVENUE_PIPELINE', 'Payment')
    RECURRING_KEYWORDS: tuple[str, ...] = _split_csv(
        os.getenv('RECURRING_KEYWORDS', 'subscription,monthly plan')
    )
    RECURRING_MONTHS_IN_FY: int = _env_int('RECURRING_MONTHS_IN_FY', 8)
    REPEATED_TOTAL_MONTHS: int = _env_int('REPEATED_TOTAL_MONTHS', 5)

    # Forecasting
    FORECAST_MONTH_CAP: int = _env_int('FORECAST_MONTH_CAP', 12)
    TRANSFERRED_WINDOW_MONTHS: int = _env_int('TRANSFERRED_WINDOW_MONTHS', 12)

    # Data defects
    UNKNOWN_CLOSE_DATE_POLICY: str = os.getenv('UNKNOWN_CLOSE_DATE_POLICY', 'report_date')

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_JSON: bool = os.getenv('LOG_JSON', 'false').strip().lower() in ('1', 'true', 'yes')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        return missing


# Singleton config instance
config = Config()


class Granularity(str, Enum):
    """Column granularity of a rendered report."""

    MONTH = 'month'
    QUARTER = 'quarter'


class UnknownDatePolicy(str, Enum):
    """What to do with deals whose close date could not be parsed."""

    REPORT_DATE = 'report_date'
    EXCLUDE = 'exclude'


_TRUE_STRINGS = {'true', 'yes', 'y', '1', 'on'}
_FALSE_STRINGS = {'false', 'no', 'n', '0', 'off', ''}


class ReportConfig(BaseModel):
    """
    Immutable parameters for one report run.

    Build with ReportConfig.from_mapping() when the values come from a flat,
    user-edited source; construct directly in code and tests.
    """

    report_date: date = Field(..., description='As-of date of the report')
    report_start: date = Field(..., description='First day of the report window')
    report_end: date = Field(..., description='Last day of the report window / forecast ceiling')
    fy_start_month: int = Field(default=6, ge=0, le=11, description='0-indexed fiscal start month')

    revenue_pipeline: str = Field(default='Payment')
    recurring_keywords: tuple[str, ...] = Field(default=('subscription', 'monthly plan'))
    recurring_months_in_fy: int = Field(default=8, ge=1)
    repeated_total_months: int = Field(default=5, ge=0)

    granularity: Granularity = Granularity.MONTH
    new_clients_only: bool = False
    min_payment_count: int = Field(default=0, ge=0)
    growth_check: bool = False
    forecast_month_cap: int = Field(default=12, ge=1)
    transferred_window_months: int = Field(default=12, ge=1)
    unknown_close_date: UnknownDatePolicy = UnknownDatePolicy.REPORT_DATE
    sort_descending: bool | None = Field(
        default=None, description='Override the report variant sort direction'
    )

    model_config = {'frozen': True}

    @property
    def current_fiscal_year(self) -> FiscalYear:
        return fiscal_year(self.report_date, self.fy_start_month)

    @property
    def fiscal_year_end(self) -> date:
        return fiscal_year_bounds(self.report_date, self.fy_start_month)[1]

    @classmethod
    def for_date(cls, report_date: date, **overrides: Any) -> 'ReportConfig':
        """Config with the window defaulted to the fiscal year of report_date."""
        fy_start_month = overrides.get('fy_start_month', config.FY_START_MONTH)
        start, end = fiscal_year_bounds(report_date, fy_start_month)
        values: dict[str, Any] = {
            'report_date': report_date,
            'report_start': start,
            'report_end': end,
            'fy_start_month': fy_start_month,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'ReportConfig':
        """
        Build a ReportConfig from a flat key -> value mapping.

        Only report_date is required. Every other key is optional and falls
        back to its default (from Config) when missing or malformed; the
        fallback is logged so it does not pass silently.

        Raises:
            MissingParameterError: report_date is missing or not a date.
        """
        raw_report_date = values.get('report_date')
        report_date = parse_date(raw_report_date)
        if report_date is None:
            raise MissingParameterError(
                'report_date is required',
                context={'report_date': raw_report_date},
            )

        fy_start_month = _coerce_int(
            values, 'fy_start_month', config.FY_START_MONTH, minimum=0, maximum=11
        )
        if not 0 <= fy_start_month <= 11:
            fy_start_month = 6

        default_start, default_end = fiscal_year_bounds(report_date, fy_start_month)
        report_start = _coerce_date(values, 'report_start', default_start)
        report_end = _coerce_date(values, 'report_end', default_end)
        if report_start > report_end:
            logger.warning(
                'report_config.window_inverted',
                report_start=report_start.isoformat(),
                report_end=report_end.isoformat(),
            )
            report_start, report_end = default_start, default_end

        keywords = values.get('recurring_keywords')
        if isinstance(keywords, str):
            recurring_keywords = _split_csv(keywords) or config.RECURRING_KEYWORDS
        elif isinstance(keywords, (list, tuple)):
            recurring_keywords = tuple(str(k).strip() for k in keywords if str(k).strip())
        else:
            recurring_keywords = config.RECURRING_KEYWORDS

        return cls(
            report_date=report_date,
            report_start=report_start,
            report_end=report_end,
            fy_start_month=fy_start_month,
            revenue_pipeline=str(values.get('revenue_pipeline') or config.REVENUE_PIPELINE),
            recurring_keywords=recurring_keywords,
            recurring_months_in_fy=_coerce_int(
                values, 'recurring_months_in_fy', config.RECURRING_MONTHS_IN_FY, minimum=1
            ),
            repeated_total_months=_coerce_int(
                values, 'repeated_total_months', config.REPEATED_TOTAL_MONTHS, minimum=0
            ),
            granularity=_coerce_enum(values, 'granularity', Granularity, Granularity.MONTH),
            new_clients_only=_coerce_bool(values, 'new_clients_only', False),
            min_payment_count=_coerce_int(values, 'min_payment_count', 0, minimum=0),
            growth_check=_coerce_bool(values, 'growth_check', False),
            forecast_month_cap=_coerce_int(
                values, 'forecast_month_cap', config.FORECAST_MONTH_CAP, minimum=1
            ),
            transferred_window_months=_coerce_int(
                values, 'transferred_window_months', config.TRANSFERRED_WINDOW_MONTHS, minimum=1
            ),
            unknown_close_date=_coerce_enum(
                values,
                'unknown_close_date',
                UnknownDatePolicy,
                _default_unknown_date_policy(),
            ),
            sort_descending=(
                _coerce_bool(values, 'sort_descending', False)
                if values.get('sort_descending') not in (None, '')
                else None
            ),
        )


# =============================================================================
# Coercion helpers
# =============================================================================


def _fallback(key: str, raw: Any, default: Any) -> Any:
    logger.warning(
        'report_config.invalid_value',
        key=key,
        value=repr(raw),
        default=repr(default),
    )
    return default


def _coerce_int(
    values: Mapping[str, Any],
    key: str,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = values.get(key)
    if raw is None or raw == '':
        return default
    try:
        number = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return _fallback(key, raw, default)
    if minimum is not None and number < minimum:
        return _fallback(key, raw, default)
    if maximum is not None and number > maximum:
        return _fallback(key, raw, default)
    return number


def _coerce_bool(values: Mapping[str, Any], key: str, default: bool) -> bool:
    raw = values.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return _fallback(key, raw, default)


def _coerce_date(values: Mapping[str, Any], key: str, default: date) -> date:
    raw = values.get(key)
    if raw is None or raw == '':
        return default
    parsed = parse_date(raw)
    if parsed is None:
        return _fallback(key, raw, default)
    return parsed


def _coerce_enum(values: Mapping[str, Any], key: str, enum_cls: type[Enum], default: Enum) -> Any:
    raw = values.get(key)
    if raw is None or raw == '':
        return default
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        return _fallback(key, raw, default)


def _default_unknown_date_policy() -> UnknownDatePolicy:
    try:
        return UnknownDatePolicy(config.UNKNOWN_CLOSE_DATE_POLICY)
    except ValueError:
        return UnknownDatePolicy.REPORT_DATE
