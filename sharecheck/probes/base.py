"""Probe interface contract for every share-link provider.

Every provider probe subclasses :class:`BaseProbe`, declares the hosts it
recognises, and implements :meth:`check`.

Design decisions
----------------
* **Abstract base class** rather than a ``Protocol``: probes share the
  host-matching helper, the verdict constructors, and the async context
  manager protocol.
* **``name`` and ``patterns`` as class variables**: the registry and the
  circuit breaker key on the provider name without instantiating anything.
* **Host matching, not substring matching**: patterns are matched against
  the URL's hostname so a query string mentioning another provider's domain
  cannot misroute a link.

Typical usage::

    from sharecheck.probes.base import BaseProbe


    class MyProbe(BaseProbe):
        name = "mydrive"
        patterns = (re.compile(r"(^|\\.)mydrive\\.example$"),)

        async def check(self, url: str) -> ProbeResult:
            ...
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar
from urllib.parse import urlsplit

from sharecheck.core.http_client import HttpClient
from sharecheck.core.models import ProbeResult, Verdict

__all__ = ["BaseProbe", "hostname_of"]

logger = logging.getLogger(__name__)


def hostname_of(url: str) -> str:
    """Return the lower-cased hostname of *url*, or ``""`` if there is none.

    Scheme-less links (``pan.quark.cn/s/abc``) are read as ``https``.
    """
    candidate = url.strip()
    if not candidate:
        return ""
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        return (urlsplit(candidate).hostname or "").lower()
    except ValueError:
        return ""


class BaseProbe(ABC):
    """Abstract base for all share-link probes.

    Subclasses **must** declare :attr:`name` and :attr:`patterns` and
    implement :meth:`check`.

    :meth:`check` may raise; the
    :class:`~sharecheck.probes.registry.ProbeRegistry` is the boundary that
    turns exceptions into ``inconclusive`` verdicts.

    Args:
        http: Shared HTTP client.  The probe never closes it.

    Attributes:
        name: Provider name used for breaker accounting and log lines.
        patterns: Compiled regexes matched against the URL hostname.
    """

    name: ClassVar[str]
    patterns: ClassVar[tuple[re.Pattern[str], ...]]

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:  # noqa: B027
        """Release resources held by this probe.  No-op by default."""

    async def __aenter__(self) -> BaseProbe:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    @classmethod
    def matches(cls, url: str) -> bool:
        """Return ``True`` if *url* is hosted by this provider."""
        host = hostname_of(url)
        if not host:
            return False
        return any(p.search(host) for p in cls.patterns)

    # ------------------------------------------------------------------
    # Verdict helpers
    # ------------------------------------------------------------------

    def live(self, reason: str = "share available") -> ProbeResult:
        return ProbeResult(verdict=Verdict.LIVE, reason=reason, provider=self.name)

    def dead(self, reason: str) -> ProbeResult:
        return ProbeResult(verdict=Verdict.DEAD, reason=reason, provider=self.name)

    def inconclusive(self, reason: str, *, permanent: bool = False) -> ProbeResult:
        return ProbeResult(
            verdict=Verdict.INCONCLUSIVE,
            reason=reason,
            provider=self.name,
            permanent=permanent,
        )

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def check(self, url: str) -> ProbeResult:
        """Probe *url* and return a verdict.

        Implementations should:

        * Return ``dead`` only when the provider itself says the share is
          gone (expired, cancelled, emptied).
        * Return ``inconclusive`` when the answer is ambiguous.
        * Let transport errors (:class:`httpx.TransportError`,
          :class:`~sharecheck.core.exceptions.FetchError`) and parse errors
          propagate; the registry classifies them.
        """
