"""Run orchestration: work queue, waves, circuit breaker, verdict write-back.

Public API
----------
* :func:`~sharecheck.orchestrator.runner.run_once`: one full run; the CLI
  entry-point.
* :func:`~sharecheck.orchestrator.scheduler.build_work_queue` /
  :func:`~sharecheck.orchestrator.scheduler.run_waves`: stalest-first queue
  and paced concurrent waves.
* :class:`~sharecheck.orchestrator.circuit_breaker.BreakerState`: per-run,
  per-provider trip state.
* :func:`~sharecheck.orchestrator.pipeline.check_link`: one record end to end.
* :func:`~sharecheck.orchestrator.applier.apply_verdict`: verdict to store
  update.
"""

from sharecheck.orchestrator.applier import apply_verdict
from sharecheck.orchestrator.circuit_breaker import BreakerState, ProviderBreakerState
from sharecheck.orchestrator.pipeline import RunStats, check_link
from sharecheck.orchestrator.runner import run_once
from sharecheck.orchestrator.scheduler import (
    FixedDelayPacer,
    Pacer,
    WorkItem,
    WorkQueue,
    build_work_queue,
    partition_waves,
    run_waves,
    staleness_key,
)

__all__ = [
    # Circuit breaker
    "BreakerState",
    "ProviderBreakerState",
    # Scheduler
    "FixedDelayPacer",
    "Pacer",
    "WorkItem",
    "WorkQueue",
    "build_work_queue",
    "partition_waves",
    "run_waves",
    "staleness_key",
    # Per-record pipeline
    "RunStats",
    "apply_verdict",
    "check_link",
    # Entry-point
    "run_once",
]
