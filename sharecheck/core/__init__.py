"""Core domain models, settings, logging configuration, and shared utilities."""

from sharecheck.core.exceptions import (
    ConfigError,
    FetchError,
    OrchestratorError,
    ProbeError,
    ProbeParseError,
    RateLimitError,
    RunAbortedError,
    SharecheckError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)
from sharecheck.core.logging_config import JsonFormatter, configure_logging
from sharecheck.core.models import LinkRecord, LinkStatus, Outcome, ProbeResult, Verdict
from sharecheck.core.settings import Settings, SourceConfig

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "LinkRecord",
    "LinkStatus",
    "Outcome",
    "ProbeResult",
    "Verdict",
    # Settings
    "Settings",
    "SourceConfig",
    # Exceptions: base
    "SharecheckError",
    # Exceptions: config
    "ConfigError",
    # Exceptions: transport
    "FetchError",
    "RateLimitError",
    # Exceptions: store
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    # Exceptions: probe
    "ProbeError",
    "ProbeParseError",
    # Exceptions: orchestrator
    "OrchestratorError",
    "RunAbortedError",
]
