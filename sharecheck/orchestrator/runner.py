"""Orchestrator entry-point: assemble all components and execute one run.

:func:`run_once` is the top-level coroutine invoked by
:mod:`sharecheck.__main__`.

Component wiring
----------------
Each call to :func:`run_once`:

1. Loads :class:`~sharecheck.core.settings.Settings` (or uses the supplied
   instance) and tags every log line of the run with a fresh run id.
2. Opens the record sources via :func:`~sharecheck.storage.open_sources`
   unless the caller supplies them.
3. Builds the probe registry via
   :func:`~sharecheck.probes.registry.build_default_registry` unless the
   caller supplies one.
4. Builds the stalest-first work queue
   (:func:`~sharecheck.orchestrator.scheduler.build_work_queue`) and aborts
   with :class:`~sharecheck.core.exceptions.RunAbortedError` if no source
   could be read at all.
5. Drives :func:`~sharecheck.orchestrator.pipeline.check_link` over the
   queue in paced waves, tallying outcomes after each wave.
6. Tears down every resource it opened on exit, including on exceptions,
   through a single :class:`contextlib.AsyncExitStack`.

Caller-supplied sources and registries are used as-is and never closed
here.

Typical usage::

    import asyncio
    from sharecheck.core.run_context import RunContext
    from sharecheck.orchestrator.runner import run_once

    stats = asyncio.run(run_once(RunContext(dry_run=True, limit=100)))
    print(stats.format_run_report())
"""

from __future__ import annotations

import dataclasses
import logging
import time
import uuid
from collections.abc import Sequence
from contextlib import AsyncExitStack

from sharecheck.core import events
from sharecheck.core.exceptions import RunAbortedError
from sharecheck.core.logging_config import RUN_ID_CTX
from sharecheck.core.models import Outcome
from sharecheck.core.run_context import RunContext
from sharecheck.core.settings import Settings
from sharecheck.orchestrator.circuit_breaker import BreakerState
from sharecheck.orchestrator.pipeline import RunStats, check_link
from sharecheck.orchestrator.scheduler import (
    FixedDelayPacer,
    Pacer,
    WorkItem,
    build_work_queue,
    run_waves,
)
from sharecheck.probes.registry import ProbeRegistry, build_default_registry
from sharecheck.storage import open_sources
from sharecheck.storage.base import RecordSource

__all__ = ["run_once"]

logger = logging.getLogger(__name__)


async def run_once(
    ctx: RunContext,
    settings: Settings | None = None,
    sources: Sequence[RecordSource] | None = None,
    registry: ProbeRegistry | None = None,
    pacer: Pacer | None = None,
) -> RunStats:
    """Execute one full link-check run.

    Args:
        ctx: Runtime flags (dry-run, record limit).
        settings: Pre-loaded settings.  If ``None``, loaded from the
            environment and ``.env`` via :meth:`Settings.load`.
        sources: Record sources to read.  Opened from settings when ``None``.
        registry: Probe registry.  Built from settings when ``None``.
        pacer: Inter-wave pacer.  Defaults to
            ``FixedDelayPacer(settings.wave_delay)``.

    Returns:
        A :class:`~sharecheck.orchestrator.pipeline.RunStats` summary.

    Raises:
        ConfigError: If settings cannot be loaded.
        RunAbortedError: If every source failed before yielding a row.
    """
    if settings is None:
        settings = Settings.load()

    token = RUN_ID_CTX.set(uuid.uuid4().hex[:8])
    t0 = time.monotonic()
    if settings.dry_run and ctx.should_write:
        ctx = dataclasses.replace(ctx, dry_run=True)
    stats = RunStats(mode=ctx.mode_label, wave_size=settings.wave_size)

    try:
        async with AsyncExitStack() as stack:
            if sources is None:
                sources = await stack.enter_async_context(open_sources(settings))
            if registry is None:
                registry = await stack.enter_async_context(build_default_registry(settings))

            run_cap = ctx.effective_run_cap(settings.run_cap)
            logger.info(
                "run_once starting: mode=%s backend=%s sources=%s cap=%d",
                stats.mode,
                settings.store_backend,
                ",".join(s.name for s in sources),
                run_cap,
                extra={"event": events.RUN_START},
            )

            queue = await build_work_queue(sources, run_cap, settings.page_size)
            stats.found = dict(queue.found)
            stats.failed_sources = list(queue.failed_sources)

            if queue.all_sources_failed:
                logger.error(
                    "Initial read failed for every source; aborting run.",
                    extra={"event": events.RUN_ABORT},
                )
                raise RunAbortedError(list(queue.failed_sources))

            stats.batch_size = len(queue.items)
            logger.info("%s", stats.format_start_report())

            if not queue.items:
                logger.info("Nothing to check.", extra={"event": events.RUN_EMPTY})
                stats.duration_s = time.monotonic() - t0
                return stats

            breaker = BreakerState(settings.breaker_threshold)
            total = len(queue.items)
            active_registry = registry

            async def _handle(item: WorkItem, index: int) -> Outcome:
                return await check_link(
                    item,
                    index,
                    total,
                    registry=active_registry,
                    breaker=breaker,
                    dry_run=not ctx.should_write,
                )

            def _on_wave_done(wave_index: int, results: list[Outcome]) -> None:
                stats.tally(results)
                logger.debug(
                    "Wave %d done: %d checked so far, breaker %s",
                    wave_index + 1,
                    stats.checked,
                    breaker.summary(),
                    extra={"event": events.WAVE_DONE},
                )

            await run_waves(
                queue.items,
                _handle,
                settings.wave_size,
                pacer or FixedDelayPacer(settings.wave_delay),
                on_wave_done=_on_wave_done,
            )
            stats.tripped_providers = breaker.tripped_providers

        stats.duration_s = time.monotonic() - t0
        logger.info("%s", stats.format_run_report(), extra={"event": events.RUN_COMPLETE})
        return stats
    finally:
        RUN_ID_CTX.reset(token)
