"""Structured logging for analysis runs.

Every event logged while an analysis is running carries the run's
``analysis_id``. Events logged while a single tax year is being worked on
also carry ``tax_year``, so a multi-year run can be filtered per year.
Both values live in context variables bound with :func:`analysis_context`
and :func:`tax_year_context`.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import orjson
import structlog
from structlog.types import Processor

from taxlens.core.config import settings

analysis_id_ctx: ContextVar[str | None] = ContextVar("analysis_id", default=None)
tax_year_ctx: ContextVar[int | None] = ContextVar("tax_year", default=None)


@contextmanager
def analysis_context(analysis_id: str) -> Iterator[str]:
    """Bind ``analysis_id`` to every event logged inside the block."""
    token = analysis_id_ctx.set(analysis_id)
    try:
        yield analysis_id
    finally:
        analysis_id_ctx.reset(token)


@contextmanager
def tax_year_context(tax_year: int) -> Iterator[int]:
    """Bind ``tax_year`` to every event logged inside the block."""
    token = tax_year_ctx.set(tax_year)
    try:
        yield tax_year
    finally:
        tax_year_ctx.reset(token)


def _add_analysis_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor attaching the current run and tax year.

    An explicit ``tax_year`` keyword on the log call wins over the bound one.
    """
    if analysis_id := analysis_id_ctx.get():
        event_dict["analysis_id"] = analysis_id
    if (tax_year := tax_year_ctx.get()) is not None:
        event_dict.setdefault("tax_year", tax_year)
    return event_dict


def _orjson_serializer(obj: Any, **kwargs: Any) -> str:
    # Money is Decimal throughout; render it as its exact string.
    return orjson.dumps(obj, default=str).decode("utf-8")


def _wants_json() -> bool:
    """JSON unless ``log_format`` says otherwise or we run in development."""
    log_format = settings.log_format.lower() if settings.log_format else None
    if log_format is not None:
        return log_format == "json"
    return settings.environment != "development"


def configure_logging() -> None:
    """Configure structlog for the CLI and the API.

    JSON lines (rendered by orjson, event under ``message``) suit log
    shipping from a deployed service. The colored console renderer is used
    for local runs.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _add_analysis_context,
    ]
    if _wants_json():
        processors += [
            structlog.processors.EventRenamer("message"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(serializer=_orjson_serializer),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if settings.debug else logging.INFO,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger; pass the module's ``__name__``."""
    return structlog.get_logger(name)
