"""Runtime context for a single Sharecheck invocation.

Encapsulates the user-selected operating modes that alter run behaviour
without changing configuration values.  A single :class:`RunContext` is
created in :mod:`sharecheck.__main__` and threaded through the orchestrator
down to the verdict applier.

Current flags
-------------
dry_run
    Probe every selected link and log what would be written, but send no
    update to the record store.  Breaker accounting and the run summary
    behave exactly as in a live run.

limit
    Optional per-invocation override of ``RUN_CAP``; ``None`` keeps the
    configured cap.

Typical usage::

    from sharecheck.core.run_context import RunContext

    ctx = RunContext(dry_run=args.dry_run, limit=args.limit)

    if not ctx.should_write:
        logger.info("dry-run: would write %s", fields)
        return
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

__all__ = ["RunContext"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    """Immutable container for per-run operating-mode flags.

    Attributes:
        dry_run: When ``True``, verdicts are logged instead of written.
        limit: Optional cap on records checked this run; overrides
            ``Settings.run_cap`` when set.
    """

    dry_run: bool = field(default=False)
    limit: int | None = field(default=None)

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit!r}")

    @property
    def should_write(self) -> bool:
        """``True`` if verdicts should be persisted to the record store."""
        return not self.dry_run

    @property
    def mode_label(self) -> str:
        """``"dry-run"`` or ``"live"``, used in log lines."""
        return "dry-run" if self.dry_run else "live"

    def effective_run_cap(self, configured: int) -> int:
        """Return the run cap for this invocation.

        Args:
            configured: ``Settings.run_cap``.
        """
        if self.limit is None:
            return configured
        return min(self.limit, configured)

    def __str__(self) -> str:
        return f"RunContext(mode={self.mode_label}, limit={self.limit})"
