"""structlog setup for the service and CLI.

Every record goes through stdlib handlers, one per configured output, so
uvicorn and httpx records share the same rendering. A request id bound by the
HTTP middleware is attached to every line logged while handling that request.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from reposeek.config.models import LoggingConfig, LogOutputConfig

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def get_request_id() -> str | None:
    return _request_id.get()


def set_request_id(request_id: str | None = None) -> str:
    """Bind ``request_id`` (or a fresh 12-char id) to the current context."""
    rid = request_id or uuid4().hex[:12]
    _request_id.set(rid)
    return rid


def clear_request_id() -> None:
    _request_id.set(None)


def _add_request_id(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if rid := get_request_id():
        event_dict.setdefault("request_id", rid)
    return event_dict


def _handler_for(output: LogOutputConfig, level: int, chain: list[Any]) -> logging.Handler:
    handler: logging.Handler
    if output.destination == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    elif output.destination == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")

    if output.format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        tty = isinstance(handler, logging.StreamHandler) and handler.stream.isatty()
        renderer = structlog.dev.ConsoleRenderer(colors=tty, pad_event_to=0)

    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=chain)
    )
    return handler


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Install structlog and the stdlib handlers.

    ``config`` wins over ``json_format`` and ``level``, which only describe a
    single stderr output. Safe to call repeatedly; earlier handlers are replaced.
    """
    from reposeek.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level.upper(),  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    root_level = logging.getLevelName(config.level)

    chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _add_request_id,
    ]
    structlog.configure(
        processors=[
            *chain,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in root.handlers:
        old.close()
    root.handlers.clear()
    root.setLevel(root_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for output in config.outputs:
        level_name = output.level or config.level
        root.addHandler(_handler_for(output, logging.getLevelName(level_name), chain))
