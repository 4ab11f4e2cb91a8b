"""Structured logging for pairwatch, built on structlog.

Every refresh runs inside ``tick_context``, so each provider call, cascade
decision and state transition of that tick carries the pair id and tick
sequence without passing them around. Decimal values (prices, volumes,
percentages) are rendered as plain strings so JSON output never falls back
to repr().
"""

import logging
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

import structlog

#: Third-party loggers that are too chatty at INFO for a 20s polling loop.
_QUIET_LOGGERS = ("aiohttp.access", "uvicorn.access")


def render_decimals(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor: Decimal field values become their string form."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Route structlog through stdlib logging with one shared handler.

    Args:
        log_level: Root level name, e.g. "DEBUG".
        log_format: "json" for machine-readable lines, anything else for
            the development console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        render_decimals,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def tick_context(pair_id: str, tick: int) -> Iterator[None]:
    """Bind pair id and tick sequence to every log line inside the block."""
    with structlog.contextvars.bound_contextvars(pair_id=pair_id, tick=tick):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
