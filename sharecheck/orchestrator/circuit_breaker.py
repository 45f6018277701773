"""Per-provider circuit breaker for a single run.

A provider that keeps answering ambiguously (timeouts, HTTP 403, unexpected
payloads) is most likely blocking this client.  After ``threshold``
consecutive inconclusive verdicts the provider is **tripped**: every later
record of that provider in the run is skipped without a request.

State machine
~~~~~~~~~~~~~
::

    OK ──(threshold consecutive inconclusive)──▶ TRIPPED
     ▲  │
     │  └─(definitive verdict)─▶ counter reset
     │
     └── (a new run)

A trip lasts until the end of the run; there is no half-open state.  Records
already in flight when the trip happens still finish and are recorded, but
cannot untrip the provider.

Concurrency
~~~~~~~~~~~
Items of one wave report concurrently, so every mutation takes an
:class:`asyncio.Lock`.  :meth:`BreakerState.is_tripped` is a plain read and
needs no lock on a single event loop.

Typical usage::

    breaker = BreakerState(threshold=10)

    if breaker.is_tripped("quark"):
        ...  # skip
    elif result.is_definitive:
        await breaker.record_definitive("quark")
    else:
        await breaker.record_inconclusive("quark")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Final

from sharecheck.core import events

__all__ = ["BreakerState", "ProviderBreakerState"]

logger = logging.getLogger(__name__)

_DEFAULT_THRESHOLD: Final[int] = 10


@dataclass
class ProviderBreakerState:
    """Mutable state bag for one provider.

    Attributes:
        consecutive_inconclusive: Inconclusive verdicts since the last
            definitive one.
        tripped: ``True`` once the threshold has been reached in this run.
    """

    consecutive_inconclusive: int = 0
    tripped: bool = False


class BreakerState:
    """Circuit-breaker state for every provider, owned by one run.

    Args:
        threshold: Consecutive inconclusive verdicts that trip a provider.

    Raises:
        ValueError: If ``threshold`` is less than 1.
    """

    def __init__(self, threshold: int = _DEFAULT_THRESHOLD) -> None:
        if threshold < 1:
            raise ValueError(f"threshold must be ≥ 1, got {threshold!r}.")
        self._threshold = threshold
        self._states: dict[str, ProviderBreakerState] = {}
        self._lock = asyncio.Lock()

    @property
    def threshold(self) -> int:
        return self._threshold

    def _get_state(self, provider: str) -> ProviderBreakerState:
        if provider not in self._states:
            self._states[provider] = ProviderBreakerState()
        return self._states[provider]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_tripped(self, provider: str) -> bool:
        pcs = self._states.get(provider)
        return pcs is not None and pcs.tripped

    def get_state(self, provider: str) -> ProviderBreakerState:
        """Return the live state object for *provider*.  Treat as read-only."""
        return self._get_state(provider)

    @property
    def tripped_providers(self) -> list[str]:
        """Names of tripped providers, in the order they were first seen."""
        return [name for name, pcs in self._states.items() if pcs.tripped]

    def summary(self) -> dict[str, str]:
        """Return ``{provider: "tripped" | "ok (n/threshold)"}`` for log lines."""
        return {
            name: (
                "tripped"
                if pcs.tripped
                else f"ok ({pcs.consecutive_inconclusive}/{self._threshold})"
            )
            for name, pcs in self._states.items()
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def record_definitive(self, provider: str) -> None:
        """A live or dead verdict: reset the consecutive counter."""
        async with self._lock:
            pcs = self._get_state(provider)
            if pcs.consecutive_inconclusive > 0:
                logger.debug(
                    "Provider %s answered definitively, resetting %d inconclusive.",
                    provider,
                    pcs.consecutive_inconclusive,
                )
            pcs.consecutive_inconclusive = 0

    async def record_inconclusive(self, provider: str) -> bool:
        """An inconclusive verdict: increment and trip at the threshold.

        Returns:
            ``True`` only for the call that trips the provider.
        """
        async with self._lock:
            pcs = self._get_state(provider)
            pcs.consecutive_inconclusive += 1
            if pcs.tripped or pcs.consecutive_inconclusive < self._threshold:
                return False

            pcs.tripped = True
            logger.warning(
                "Provider %s tripped after %d consecutive inconclusive checks; "
                "its remaining links are skipped this run (client may be blocked).",
                provider,
                pcs.consecutive_inconclusive,
                extra={"event": events.PROVIDER_TRIPPED, "provider": provider},
            )
            return True
