"""Work-queue construction and wave scheduling for one run.

Building the queue
------------------
:func:`build_work_queue` reads every record source page by page, ordered by
its last-check column with never-checked rows first, up to ``run_cap`` rows
per source.  The per-source lists are merged, stable-sorted by
:func:`staleness_key` and truncated to ``run_cap``, so the queue holds the
stalest ``run_cap`` records across all sources.

Source failures are isolated.  A failing page keeps the rows already read
from that source, marks it failed and moves on to the next source; the
caller decides whether the run can proceed (see
:attr:`WorkQueue.all_sources_failed`).

Running waves
-------------
:func:`run_waves` slices the queue into consecutive waves of ``wave_size``
items.  Items inside a wave run concurrently (``asyncio.gather``); waves run
strictly one after another, with the :class:`Pacer` awaited between them.

Typical usage::

    queue = await build_work_queue(sources, run_cap=15000, page_size=1000)
    outcomes = await run_waves(
        queue.items,
        handler,
        wave_size=20,
        pacer=FixedDelayPacer(0.5),
    )
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeVar

from sharecheck.core import events
from sharecheck.core.exceptions import StoreError
from sharecheck.core.models import LinkRecord
from sharecheck.storage.base import RecordSource

__all__ = [
    "WorkItem",
    "WorkQueue",
    "staleness_key",
    "build_work_queue",
    "partition_waves",
    "Pacer",
    "FixedDelayPacer",
    "run_waves",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_EPOCH = datetime.min.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Queue types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkItem:
    """One record paired with the source it must be written back to."""

    record: LinkRecord
    source: RecordSource


@dataclass
class WorkQueue:
    """Result of reading every source for one run.

    Attributes:
        items: Records to check, stalest first, at most ``run_cap`` long.
        found: ``{source: total rows}`` as reported by ``count()``; ``None``
            when the count itself failed.
        read: ``{source: rows read}`` before the global truncation.
        failed_sources: Sources whose paging stopped on an error.
    """

    items: list[WorkItem] = field(default_factory=list)
    found: dict[str, int | None] = field(default_factory=dict)
    read: dict[str, int] = field(default_factory=dict)
    failed_sources: list[str] = field(default_factory=list)

    @property
    def all_sources_failed(self) -> bool:
        """``True`` when every source failed before yielding a single row."""
        if not self.read:
            return False
        return all(
            name in self.failed_sources and count == 0 for name, count in self.read.items()
        )


def staleness_key(record: LinkRecord) -> tuple[bool, datetime]:
    """Sort key: never-checked records first, then oldest check first."""
    if record.last_checked is None:
        return (False, _EPOCH)
    return (True, record.last_checked)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


async def _read_source(
    source: RecordSource,
    run_cap: int,
    page_size: int,
    queue: WorkQueue,
) -> list[WorkItem]:
    """Page through one source, recording its counts and failure on *queue*."""
    total: int | None
    try:
        total = await source.count()
    except StoreError as exc:
        total = None
        logger.warning("Could not count %s (reading anyway): %s", source.name, exc)
    queue.found[source.name] = total

    items: list[WorkItem] = []
    offset = 0
    while len(items) < run_cap:
        limit = min(page_size, run_cap - len(items))
        try:
            page = await source.page(
                offset, limit, source.config.checked_field, nulls_first=True
            )
        except Exception as exc:  # noqa: BLE001
            queue.failed_sources.append(source.name)
            logger.error(
                "Reading %s failed at offset %d, keeping %d row(s) already read: %s",
                source.name,
                offset,
                len(items),
                exc,
                extra={"event": events.SOURCE_READ_ERROR, "source": source.name},
            )
            break

        if not page:
            break
        items.extend(WorkItem(record=r, source=source) for r in page)
        offset += limit
        if total is not None and offset >= total:
            break

    queue.read[source.name] = len(items)
    if source.name not in queue.failed_sources:
        logger.info(
            "%s: %s row(s) in table, %d read",
            source.name,
            "?" if total is None else total,
            len(items),
            extra={"event": events.SOURCE_READ_OK, "source": source.name},
        )
    return items


async def build_work_queue(
    sources: Sequence[RecordSource],
    run_cap: int,
    page_size: int,
) -> WorkQueue:
    """Read every source and return the merged, stalest-first work queue.

    Sources are read one after another.

    Args:
        sources: Record sources in configuration order.
        run_cap: Maximum items in the final queue (and per source).
        page_size: Rows requested per page.
    """
    if run_cap < 1 or page_size < 1:
        raise ValueError(f"run_cap and page_size must be ≥ 1, got {run_cap}, {page_size}")

    queue = WorkQueue()
    merged: list[WorkItem] = []
    for source in sources:
        merged.extend(await _read_source(source, run_cap, page_size, queue))

    merged.sort(key=lambda item: staleness_key(item.record))
    queue.items = merged[:run_cap]
    logger.debug(
        "Work queue built: %d merged, %d kept (cap %d).", len(merged), len(queue.items), run_cap
    )
    return queue


# ---------------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------------


class Pacer(ABC):
    """Decides how long to wait between two consecutive waves."""

    @abstractmethod
    async def pause(self, completed_wave: int) -> None:
        """Wait after wave *completed_wave* (0-based) before the next one."""


class FixedDelayPacer(Pacer):
    """Constant pause between waves.

    Args:
        delay: Seconds to wait.  ``0`` disables pacing.
    """

    def __init__(self, delay: float = 0.5) -> None:
        if delay < 0:
            raise ValueError(f"delay must be ≥ 0, got {delay!r}")
        self.delay = delay

    async def pause(self, completed_wave: int) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)


# ---------------------------------------------------------------------------
# Waves
# ---------------------------------------------------------------------------


def partition_waves(items: Sequence[T], wave_size: int) -> list[list[T]]:
    """Split *items* into consecutive slices of at most *wave_size*."""
    if wave_size < 1:
        raise ValueError(f"wave_size must be ≥ 1, got {wave_size!r}")
    return [list(items[i : i + wave_size]) for i in range(0, len(items), wave_size)]


async def run_waves(
    items: Sequence[T],
    handler: Callable[[T, int], Awaitable[R]],
    wave_size: int,
    pacer: Pacer,
    on_wave_done: Callable[[int, list[R]], None] | None = None,
) -> list[R]:
    """Run *handler* over *items* in sequential waves.

    Args:
        items: Work items in queue order.
        handler: ``handler(item, index)`` where ``index`` is the item's
            0-based queue position.  Must not raise.
        wave_size: Concurrency ceiling.
        pacer: Awaited between waves, never after the last one.
        on_wave_done: Called with ``(wave_index, results)`` after each wave.

    Returns:
        Handler results in queue order.
    """
    waves = partition_waves(items, wave_size)
    results: list[R] = []
    start = 0

    for wave_index, wave in enumerate(waves):
        logger.debug(
            "Wave %d/%d: %d item(s)",
            wave_index + 1,
            len(waves),
            len(wave),
            extra={"event": events.WAVE_START},
        )
        wave_results = list(
            await asyncio.gather(*(handler(item, start + i) for i, item in enumerate(wave)))
        )
        results.extend(wave_results)
        start += len(wave)

        if on_wave_done is not None:
            on_wave_done(wave_index, wave_results)

        if wave_index < len(waves) - 1:
            await pacer.pause(wave_index)

    return results
