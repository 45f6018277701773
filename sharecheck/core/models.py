"""Sharecheck core domain models.

This module defines the canonical :class:`LinkRecord` read from every record
source, the tri-state :class:`Verdict` produced by provider probes, and the
per-link :class:`Outcome` counted by the orchestrator.

Typical usage::

    from sharecheck.core.models import LinkRecord, ProbeResult, Verdict

    record = LinkRecord(
        id="42",
        url="https://pan.quark.cn/s/abc123",
        source="short_links",
        status=None,
        last_checked=None,
    )
    result = ProbeResult(verdict=Verdict.LIVE, reason="ok", provider="quark")
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

__all__ = [
    "LinkStatus",
    "Verdict",
    "Outcome",
    "LinkRecord",
    "ProbeResult",
]

logger = logging.getLogger(__name__)

_DATETIME: TypeAdapter[datetime] = TypeAdapter(datetime)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class LinkStatus(StrEnum):
    """Persisted freshness of a share link.

    ``UNCHECKED`` stands for "no definitive verdict has ever been stored";
    a ``NULL`` column reads as ``UNCHECKED``.
    """

    VALID = "valid"
    EXPIRED = "expired"
    UNCHECKED = "unchecked"


class Verdict(StrEnum):
    """Tri-state probe outcome."""

    LIVE = "live"
    DEAD = "dead"
    INCONCLUSIVE = "inconclusive"

    @property
    def is_definitive(self) -> bool:
        """``True`` for :attr:`LIVE` and :attr:`DEAD`."""
        return self is not Verdict.INCONCLUSIVE


class Outcome(StrEnum):
    """What happened to one record during a run."""

    VALID = "valid"
    EXPIRED = "expired"
    PRESERVED = "preserved"
    SKIPPED = "skipped"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class LinkRecord(BaseModel):
    """One share link under management, as read from a record source.

    The model is frozen: a record is owned by exactly one task during a run
    and is never mutated; the store is the only place its state changes.

    Attributes:
        id: Opaque row identifier assigned by the store.  Integer keys are
            coerced to ``str`` so every source looks the same upstream.
        url: Share URL.
        source: Name of the record source (table) the row came from.
        status: Last stored verdict; ``UNCHECKED`` when the column is null
            or holds a value this engine does not write.
        last_checked: Time of the most recent check attempt, timezone-aware
            (naive values are taken as UTC).  ``None`` if never checked.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1, description="Store-assigned identifier.")
    url: str = Field(default="", description="Share URL.")
    source: str = Field(..., min_length=1, description="Originating record source.")
    status: LinkStatus = Field(default=LinkStatus.UNCHECKED)
    last_checked: datetime | None = Field(default=None)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: object) -> object:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("url", mode="before")
    @classmethod
    def _url_to_text(cls, v: object) -> str:
        """A null or non-text URL becomes ``""``; the registry reports it as unsupported."""
        if isinstance(v, str):
            return v.strip()
        if v is not None:
            logger.debug("Non-text url %r read as blank", v)
        return ""

    @field_validator("status", mode="before")
    @classmethod
    def _status_unknown_to_unchecked(cls, v: object) -> object:
        if isinstance(v, LinkStatus):
            return v
        if not isinstance(v, str) or v not in LinkStatus._value2member_map_:
            if v is not None:
                logger.debug("Unknown stored status %r read as unchecked", v)
            return LinkStatus.UNCHECKED
        return v

    @field_validator("last_checked", mode="before")
    @classmethod
    def _unparseable_to_never(cls, v: object) -> datetime | None:
        """An unreadable timestamp reads as never checked.

        Such rows sort first and the next write-back replaces the value.
        """
        if v is None or v == "":
            return None
        try:
            return _DATETIME.validate_python(v)
        except ValidationError:
            logger.debug("Unparseable last_checked %r read as never checked", v)
            return None

    @field_validator("last_checked", mode="after")
    @classmethod
    def _assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class ProbeResult(BaseModel):
    """Uniform result of probing one URL.

    Attributes:
        verdict: ``live`` / ``dead`` / ``inconclusive``.
        reason: Human-readable explanation, shown in the progress log.
        provider: Name of the probe that handled the URL, or ``None`` when
            no registered probe recognised it.
        permanent: ``True`` when an inconclusive verdict can never become
            definitive on retry (unsupported provider, unrecognised URL).
            Such verdicts do not feed the circuit breaker.
    """

    model_config = {"frozen": True}

    verdict: Verdict
    reason: str = ""
    provider: str | None = None
    permanent: bool = False

    @property
    def is_definitive(self) -> bool:
        return self.verdict.is_definitive
