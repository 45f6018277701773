"""Sharecheck logging configuration.

Call ``configure_logging()`` once at process startup (``__main__`` does).
Every other module logs through its own module-level logger:

    import logging
    logger = logging.getLogger(__name__)

Per-link progress lines, wave summaries and the run report all go through
the same root handler, so a run is one stream on ``stderr``.  Lines of one
run share a short run id (``RUN_ID_CTX``), which is how a scheduled job's
output is correlated after the fact.

Environment fallbacks (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR   (default: INFO)
    LOG_FORMAT  text | json                      (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = ["configure_logging", "JsonFormatter", "RUN_ID_CTX", "RunIdFilter"]

logger = logging.getLogger(__name__)

#: Identifier of the run in progress.  Set by
#: :func:`~sharecheck.orchestrator.runner.run_once`; wave tasks inherit it
#: because ``asyncio.gather`` copies the current context.  ``"-"`` outside a run.
RUN_ID_CTX: ContextVar[str] = ContextVar("run_id", default="-")

_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS: Final[tuple[str, ...]] = ("text", "json")

_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)-7s [%(run_id)s] %(message)s"
_DEBUG_TEXT_FORMAT: Final[str] = (
    "%(asctime)s %(levelname)-7s [%(run_id)s] %(name)s: %(message)s"
)
_DATE_FORMAT: Final[str] = "%H:%M:%S"

#: Client libraries that log every request at INFO/DEBUG.  A 15 000-link run
#: would otherwise bury the progress lines.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "hpack", "aiosqlite", "asyncio")

#: Structured fields promoted to the top level of a JSON line.
_TOP_LEVEL_FIELDS: Final[tuple[str, ...]] = ("run_id", "event", "source", "provider", "record_id")


class RunIdFilter(logging.Filter):
    """Stamp ``record.run_id`` from :data:`RUN_ID_CTX`."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.run_id = RUN_ID_CTX.get()
        return True


def _pick(
    value: str | None,
    env_var: str,
    default: str,
    allowed: tuple[str, ...],
    normalise: Callable[[str], str],
) -> str:
    chosen = value or os.environ.get(env_var) or default
    normalised = normalise(chosen)
    if normalised not in allowed:
        raise ValueError(f"Unknown {env_var} {chosen!r}. Must be one of: {', '.join(allowed)}")
    return normalised


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install the process-wide ``stderr`` handler.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``"text"`` or ``"json"``; falls back to ``$LOG_FORMAT``, then
            ``"text"``.  At ``DEBUG`` the text format also names the logger.
        force: Replace existing root handlers.  Without it, a root logger
            that already has handlers only gets its level adjusted.

    Raises:
        ValueError: If the level or format is not recognised.
    """
    resolved_level = _pick(level, "LOG_LEVEL", "INFO", _LEVELS, str.upper)
    resolved_fmt = _pick(fmt, "LOG_FORMAT", "text", _FORMATS, str.lower)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RunIdFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        text_format = _DEBUG_TEXT_FORMAT if resolved_level == "DEBUG" else _TEXT_FORMAT
        handler.setFormatter(logging.Formatter(fmt=text_format, datefmt=_DATE_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)

    chatty_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

#: Attribute names every LogRecord carries; anything else came from ``extra=``.
_STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers.

    Shape::

        {"ts": "2026-02-28T12:34:56.789Z", "level": "INFO",
         "logger": "sharecheck.orchestrator.pipeline",
         "message": "[12/400] ✓ [quark] https://pan.quark.cn/s/... - share available",
         "run_id": "a3f2b1c0", "event": "LINK_VALID", "source": "short_links",
         "provider": "quark", "record_id": "42"}

    The fields in ``_TOP_LEVEL_FIELDS`` appear at the top level when set.
    Any other ``extra=`` key lands under ``"extra"``.  Exceptions add
    ``"exc_info"``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        custom = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        for name in _TOP_LEVEL_FIELDS:
            value = custom.pop(name, None)
            if value is not None:
                payload[name] = value
        if custom:
            payload["extra"] = custom

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text

        return json.dumps(payload, default=str, ensure_ascii=False)
