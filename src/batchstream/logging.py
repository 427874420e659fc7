from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

_DROP_LOG_FIELDS = frozenset(
    {
        "access_token",
        "authorization",
        "body",
        "content",
        "headers",
        "json_body",
        "token",
    }
)


def drop_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: structlog.typing.EventDict
) -> structlog.typing.EventDict:
    """
    Remove payloads and credentials from a structlog event.

    Parameters
    ----------
    logger : logging.Logger
        Wrapped logger, unused.
    method_name : str
        Name of the log method, unused.
    event_dict : structlog.typing.EventDict
        Event being processed.

    Returns
    -------
    structlog.typing.EventDict
        Event without sensitive keys.
    """
    del logger, method_name
    return {key: value for key, value in event_dict.items() if key not in _DROP_LOG_FIELDS}


def setup_logging(level: int = logging.WARNING) -> None:
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("batchstream").setLevel(level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            drop_sensitive_fields,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def logging_context(**required_context) -> Iterator[None]:
    current = structlog.contextvars.get_contextvars()
    to_bind = {k: v for k, v in required_context.items() if k not in current}

    if to_bind:
        with structlog.contextvars.bound_contextvars(**to_bind):
            yield
    else:
        yield
