"""Sharecheck exception taxonomy.

Every custom exception inherits from :class:`SharecheckError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    SharecheckError
    ├── ConfigError
    ├── FetchError
    │   └── RateLimitError
    ├── StoreError
    │   ├── StoreReadError
    │   └── StoreWriteError
    ├── ProbeError
    │   └── ProbeParseError
    └── OrchestratorError
        └── RunAbortedError

:class:`FetchError` is raised by the shared
:class:`~sharecheck.core.http_client.HttpClient` for both probe and store
traffic.  The store layer wraps it in :class:`StoreError`; the probe registry
turns it into an ``inconclusive`` verdict.

Usage:

    from sharecheck.core.exceptions import FetchError

    raise FetchError("quark", "Connection refused") from exc
"""

from __future__ import annotations

import logging

__all__ = [
    "SharecheckError",
    # Config
    "ConfigError",
    # Transport
    "FetchError",
    "RateLimitError",
    # Store
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    # Probe
    "ProbeError",
    "ProbeParseError",
    # Orchestrator
    "OrchestratorError",
    "RunAbortedError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class SharecheckError(Exception):
    """Root exception for all Sharecheck errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(SharecheckError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - ``STORE_URL`` or ``STORE_KEY`` is missing.
        - ``RECORD_SOURCES`` is not a valid JSON list of source configs.
    """


# ---------------------------------------------------------------------------
# Transport layer
# ---------------------------------------------------------------------------


class FetchError(SharecheckError):
    """Raised when a remote endpoint cannot be reached or answers with an
    unexpected HTTP status.

    Args:
        label: Short name of the remote party (provider or store host).
        message: Human-readable error description.
        status_code: HTTP status of the failing response, if there was one.
    """

    def __init__(self, label: str, message: str, status_code: int | None = None) -> None:
        self.label = label
        self.status_code = status_code
        super().__init__(f"[{label}] {message}")


class RateLimitError(FetchError):
    """Raised when an endpoint answers HTTP 429.

    Args:
        label: Short name of the remote party.
        retry_after: Recommended back-off interval in seconds, if known.
    """

    def __init__(self, label: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        detail = f"retry after {retry_after}s" if retry_after is not None else "no retry hint"
        super().__init__(label, f"Rate limited, {detail}", status_code=429)


# ---------------------------------------------------------------------------
# Store layer
# ---------------------------------------------------------------------------


class StoreError(SharecheckError):
    """Base class for record-store failures.

    Args:
        source: Name of the record source (table) involved.
        message: Human-readable error description.
    """

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"[{source}] {message}")


class StoreReadError(StoreError):
    """Raised when counting or paging a record source fails."""


class StoreWriteError(StoreError):
    """Raised when writing a verdict back to a record source fails.

    Args:
        source: Name of the record source.
        record_id: Identifier of the row whose update failed.
        message: Human-readable error description.
    """

    def __init__(self, source: str, record_id: str, message: str) -> None:
        self.record_id = record_id
        super().__init__(source, f"update of {record_id!r} failed: {message}")


# ---------------------------------------------------------------------------
# Probe layer
# ---------------------------------------------------------------------------


class ProbeError(SharecheckError):
    """Base class for provider probe errors.

    Probe errors never escape :meth:`~sharecheck.probes.registry.ProbeRegistry.probe`;
    they are converted into an ``inconclusive`` verdict there.

    Args:
        provider: Short name of the provider (e.g. ``"quark"``).
        message: Human-readable error description.
    """

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProbeParseError(ProbeError):
    """Raised when a provider response does not have the expected shape."""


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(SharecheckError):
    """Raised for errors originating in the scheduling or orchestration layer."""


class RunAbortedError(OrchestratorError):
    """Raised when a run cannot start because no record source could be read.

    Args:
        failed_sources: Names of the sources whose initial read failed.
    """

    def __init__(self, failed_sources: list[str]) -> None:
        self.failed_sources = failed_sources
        super().__init__(
            "Initial record read failed for every source: " + ", ".join(failed_sources)
        )
