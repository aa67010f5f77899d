"""
Structured logging for the revenue reporting pipeline.

Events are dotted names ("dedup.source_complete") with keyword fields. Every
event emitted inside logging_context() also carries the run-scoped fields:

- run_id: one ReportPipeline.run invocation
- report_name: the report variant being built
- source: the pipeline source whose rows are being ingested or deduplicated

Output is pretty console lines by default, or JSON lines when LOG_JSON is set.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator

import structlog
from structlog.types import Processor

from .config import config

CONTEXT_FIELDS = ('run_id', 'report_name', 'source')

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(name, default=None) for name in CONTEXT_FIELDS
}


def current_context() -> dict[str, str]:
    """Run-scoped fields that are currently set."""
    values = {name: var.get() for name, var in _context.items()}
    return {name: value for name, value in values.items() if value}


def get_run_id() -> str | None:
    return _context['run_id'].get()


def get_report_name() -> str | None:
    return _context['report_name'].get()


def get_source() -> str | None:
    return _context['source'].get()


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that fills run-scoped fields the event did not set itself."""
    for name, value in current_context().items():
        event_dict.setdefault(name, value)
    return event_dict


def _renderer(json_output: bool) -> list[Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def configure_logging(
    json_output: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the application.

    Args:
        json_output: JSON lines when True, console lines when False
                    (defaults to config.LOG_JSON)
        log_level: Override log level (defaults to config.LOG_LEVEL)
    """
    if json_output is None:
        json_output = config.LOG_JSON
    level_num = getattr(logging, (log_level or config.LOG_LEVEL).upper(), logging.INFO)

    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=level_num)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_context_info,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt='iso'),
            structlog.processors.StackInfoRenderer(),
            *_renderer(json_output),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def logging_context(**fields: str | None) -> Generator[None, None, None]:
    """
    Set run-scoped logging fields for the duration of the block.

    Only fields passed with a value change; nested blocks restore the outer
    values on exit, including when the block raises.

        with logging_context(run_id=run_id, report_name='sales'):
            with logging_context(source='Payment'):
                logger.info('dedup.source_complete')  # all three fields

    Raises:
        TypeError: A field outside CONTEXT_FIELDS was passed
    """
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f'Unknown logging context fields: {sorted(unknown)}')

    tokens = [
        (_context[name], _context[name].set(value))
        for name, value in fields.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class PipelineTimer:
    """
    Wall-clock durations of named pipeline stages, in milliseconds.

    A stage is recorded even when its block raises, so a failed run still
    reports how far it got.
    """

    def __init__(self):
        self.start_time = time.perf_counter()
        self.stages: dict[str, float] = {}

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.stages[name] = (time.perf_counter() - started) * 1000

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        """Rounded totals, ready to splat into a log event."""
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {name: round(ms, 2) for name, ms in self.stages.items()},
        }


configure_logging()
