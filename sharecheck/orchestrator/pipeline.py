"""Per-record check pipeline: breaker gate → probe → breaker accounting → write.

:func:`check_link` handles exactly one work item and always returns an
:class:`~sharecheck.core.models.Outcome`; nothing it does can raise into the
wave driver.

Stages
------
1. **Resolve** the URL to a probe (once per record).
2. **Gate**: if that provider is tripped, the record is ``skipped``: no
   request and no write.
3. **Probe** through :meth:`~sharecheck.probes.registry.ProbeRegistry.run`,
   which maps every probe failure to ``inconclusive``.
4. **Account**: definitive verdicts reset the provider's breaker counter,
   inconclusive ones increment it.  Permanent verdicts (unsupported provider,
   unrecognised URL) are not counted.
5. **Write** through :func:`~sharecheck.orchestrator.applier.apply_verdict`.

An unexpected exception in stages 3–4 counts as an inconclusive check for
the breaker and yields ``error``; a failed write yields ``error`` without
touching the breaker.

Each record produces one progress line::

    [12/400] ✓ [quark] https://pan.quark.cn/s/1a2b3c4d5e6f7g8h9i0j1k2l3m... - share available
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sharecheck.core import events
from sharecheck.core.models import Outcome, ProbeResult
from sharecheck.orchestrator.applier import apply_verdict
from sharecheck.orchestrator.circuit_breaker import BreakerState
from sharecheck.orchestrator.scheduler import WorkItem
from sharecheck.probes.registry import ProbeRegistry

__all__ = ["RunStats", "check_link", "progress_line"]

logger = logging.getLogger(__name__)

#: Characters of the URL shown in progress lines.
_URL_PREVIEW = 45

#: Rough wall-clock seconds per wave, used only for the start-of-run estimate.
_SECONDS_PER_WAVE = 2

_MARKS: dict[Outcome, str] = {
    Outcome.VALID: "✓",
    Outcome.EXPIRED: "✗",
    Outcome.PRESERVED: "?",
    Outcome.SKIPPED: "⊘",
    Outcome.ERROR: "!",
}

_EVENTS: dict[Outcome, str] = {
    Outcome.VALID: events.LINK_VALID,
    Outcome.EXPIRED: events.LINK_EXPIRED,
    Outcome.PRESERVED: events.LINK_PRESERVED,
    Outcome.SKIPPED: events.LINK_SKIPPED,
    Outcome.ERROR: events.LINK_ERROR,
}


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass
class RunStats:
    """Summary of one run.

    Attributes:
        started_at: UTC start time.
        mode: ``"live"`` or ``"dry-run"``.
        found: ``{source: total rows}`` (``None`` when the count failed).
        failed_sources: Sources whose read stopped on an error.
        batch_size: Records queued for checking.
        wave_size: Concurrency ceiling used for the run.
        outcomes: Per-outcome counters.
        tripped_providers: Providers tripped by the circuit breaker.
        duration_s: Wall-clock duration, filled in at the end of the run.
    """

    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    mode: str = "live"
    found: dict[str, int | None] = field(default_factory=dict)
    failed_sources: list[str] = field(default_factory=list)
    batch_size: int = 0
    wave_size: int = 1
    outcomes: Counter[Outcome] = field(default_factory=Counter)
    tripped_providers: list[str] = field(default_factory=list)
    duration_s: float = 0.0

    def tally(self, results: Iterable[Outcome]) -> None:
        self.outcomes.update(results)

    @property
    def valid(self) -> int:
        return self.outcomes[Outcome.VALID]

    @property
    def expired(self) -> int:
        return self.outcomes[Outcome.EXPIRED]

    @property
    def preserved(self) -> int:
        return self.outcomes[Outcome.PRESERVED]

    @property
    def skipped(self) -> int:
        return self.outcomes[Outcome.SKIPPED]

    @property
    def errors(self) -> int:
        return self.outcomes[Outcome.ERROR]

    @property
    def checked(self) -> int:
        """Records that produced an outcome."""
        return sum(self.outcomes.values())

    @property
    def estimated_minutes(self) -> int:
        """Rough run length announced before the first wave."""
        return math.ceil(self.batch_size / self.wave_size * _SECONDS_PER_WAVE / 60)

    def format_start_report(self) -> str:
        found = ", ".join(
            f"{name}={'?' if total is None else total}" for name, total in self.found.items()
        )
        return (
            f"Run started {self.started_at.isoformat(timespec='seconds')} ({self.mode}) | "
            f"found: {found or 'none'} | batch: {self.batch_size} | "
            f"wave size: {self.wave_size} | est. {self.estimated_minutes} min"
        )

    def format_run_report(self) -> str:
        """One-line summary logged at the end of the run."""
        report = (
            f"Run complete in {self.duration_s:.1f}s | checked: {self.checked}/{self.batch_size} | "
            f"valid: {self.valid} | expired: {self.expired} | preserved: {self.preserved} | "
            f"skipped: {self.skipped} | errors: {self.errors}"
        )
        if self.tripped_providers:
            report += f" | tripped providers: {', '.join(self.tripped_providers)}"
        if self.failed_sources:
            report += f" | failed sources: {', '.join(self.failed_sources)}"
        return report


# ---------------------------------------------------------------------------
# Per-record processing
# ---------------------------------------------------------------------------


def progress_line(
    index: int,
    total: int,
    outcome: Outcome,
    provider: str | None,
    url: str,
    reason: str,
) -> str:
    """Format the ``[i/total] mark [provider] url… - reason`` progress line."""
    return (
        f"[{index + 1}/{total}] {_MARKS[outcome]} [{provider or '-'}] "
        f"{url[:_URL_PREVIEW]}... - {reason}"
    )


async def check_link(
    item: WorkItem,
    index: int,
    total: int,
    *,
    registry: ProbeRegistry,
    breaker: BreakerState,
    dry_run: bool = False,
    clock: Callable[[], datetime] | None = None,
) -> Outcome:
    """Check one record end to end and return its outcome.  Never raises.

    Args:
        item: The record and its source.
        index: 0-based position in the run queue.
        total: Queue length, for the progress line.
        registry: Probe dispatch table.
        breaker: Run-wide breaker state.
        dry_run: Skip store writes.
        clock: Returns the timezone-aware "now" stamped on the record.
            Defaults to :func:`datetime.now` in UTC.
    """
    record = item.record
    probe = registry.resolve(record.url)
    provider = probe.name if probe is not None else None

    def _log(outcome: Outcome, reason: str, level: int = logging.INFO) -> None:
        logger.log(
            level,
            "%s",
            progress_line(index, total, outcome, provider, record.url, reason),
            extra={
                "event": _EVENTS[outcome],
                "source": item.source.name,
                "record_id": record.id,
                "provider": provider,
            },
        )

    if provider is not None and breaker.is_tripped(provider):
        _log(Outcome.SKIPPED, "provider skipped")
        return Outcome.SKIPPED

    result: ProbeResult
    try:
        result = await registry.run(probe, record.url)
        if provider is not None and not result.permanent:
            if result.is_definitive:
                await breaker.record_definitive(provider)
            else:
                await breaker.record_inconclusive(provider)
    except Exception as exc:  # noqa: BLE001
        logger.debug("Unexpected failure checking %s", record.url, exc_info=True)
        if provider is not None:
            await breaker.record_inconclusive(provider)
        _log(Outcome.ERROR, f"check raised {type(exc).__name__}", logging.WARNING)
        return Outcome.ERROR

    now = (clock or _utcnow)()
    outcome = await apply_verdict(record, result, item.source, now=now, dry_run=dry_run)

    if outcome is Outcome.ERROR:
        _log(outcome, f"{result.reason} (write failed)", logging.WARNING)
    else:
        _log(outcome, result.reason or outcome.value)
    return outcome


def _utcnow() -> datetime:
    return datetime.now(UTC)
