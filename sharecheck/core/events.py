"""Structured log event name constants for the Sharecheck engine.

Every key transition in a run emits a log record with an ``event`` field
(passed via ``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the
value is a top-level ``event`` key; in text mode the message is
self-describing and the event name is not printed.

Usage example::

    import logging
    from sharecheck.core import events

    logger = logging.getLogger(__name__)

    logger.info("Run started", extra={"event": events.RUN_START})
"""

from __future__ import annotations

__all__ = [
    # Run lifecycle
    "RUN_START",
    "RUN_COMPLETE",
    "RUN_ABORT",
    "RUN_EMPTY",
    # Record sources
    "SOURCE_READ_OK",
    "SOURCE_READ_ERROR",
    # Waves
    "WAVE_START",
    "WAVE_DONE",
    # Per-link outcomes
    "LINK_VALID",
    "LINK_EXPIRED",
    "LINK_PRESERVED",
    "LINK_SKIPPED",
    "LINK_ERROR",
    # Breaker
    "PROVIDER_TRIPPED",
]

# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------

#: Emitted once at the start of :func:`~sharecheck.orchestrator.runner.run_once`.
RUN_START: str = "RUN_START"

#: Emitted once when the run summary is logged.
RUN_COMPLETE: str = "RUN_COMPLETE"

#: Every record source failed its initial read; the run stops.
RUN_ABORT: str = "RUN_ABORT"

#: The work queue came back empty; nothing to check.
RUN_EMPTY: str = "RUN_EMPTY"

# ---------------------------------------------------------------------------
# Record sources
# ---------------------------------------------------------------------------

#: A source was paged successfully into the candidate set.
SOURCE_READ_OK: str = "SOURCE_READ_OK"

#: Counting or paging a source raised; its remaining rows are dropped.
SOURCE_READ_ERROR: str = "SOURCE_READ_ERROR"

# ---------------------------------------------------------------------------
# Waves
# ---------------------------------------------------------------------------

WAVE_START: str = "WAVE_START"
WAVE_DONE: str = "WAVE_DONE"

# ---------------------------------------------------------------------------
# Per-link outcomes
# ---------------------------------------------------------------------------

#: Probe said live; status written as ``valid``.
LINK_VALID: str = "LINK_VALID"

#: Probe said dead; status written as ``expired``.
LINK_EXPIRED: str = "LINK_EXPIRED"

#: Probe was inconclusive; only the check timestamp was written.
LINK_PRESERVED: str = "LINK_PRESERVED"

#: Provider breaker is tripped; the link was not probed.
LINK_SKIPPED: str = "LINK_SKIPPED"

#: The per-link pipeline failed (usually the store write).
LINK_ERROR: str = "LINK_ERROR"

# ---------------------------------------------------------------------------
# Breaker
# ---------------------------------------------------------------------------

#: A provider reached the consecutive-inconclusive threshold.
PROVIDER_TRIPPED: str = "PROVIDER_TRIPPED"
