"""Provider dispatch table and the never-raise probe boundary.

:class:`ProbeRegistry` holds the probes in registration order.  A URL is
resolved to the first probe whose host pattern matches it; URLs no probe
recognises get a permanent ``inconclusive`` verdict.

:meth:`ProbeRegistry.probe` is the only place where probe exceptions are
caught.  Whatever goes wrong inside a probe (timeout, transport error,
unexpected status, malformed JSON) comes back as an ``inconclusive``
:class:`~sharecheck.core.models.ProbeResult`; nothing propagates to the
wave driver.

Typical usage::

    async with build_default_registry(settings) as registry:
        result = await registry.probe("https://pan.quark.cn/s/abc123")
"""

from __future__ import annotations

import logging
from types import TracebackType

import httpx

from sharecheck.core.http_client import HttpClient
from sharecheck.core.models import ProbeResult, Verdict
from sharecheck.core.settings import Settings
from sharecheck.probes.baidu import BaiduProbe
from sharecheck.probes.base import BaseProbe
from sharecheck.probes.quark import QuarkProbe
from sharecheck.probes.unsupported import XunleiProbe

__all__ = [
    "ProbeRegistry",
    "build_default_registry",
    "REASON_UNSUPPORTED",
    "REASON_TIMEOUT",
]

logger = logging.getLogger(__name__)

REASON_UNSUPPORTED = "unsupported share type"
REASON_TIMEOUT = "check timed out"


class ProbeRegistry:
    """Ordered table of probes keyed by provider name.

    Args:
        probes: Initial probes, registered in order.
        http: Optional HTTP client owned by the registry.  It is closed by
            :meth:`close` after every probe has been closed.
    """

    def __init__(
        self,
        probes: list[BaseProbe] | None = None,
        *,
        http: HttpClient | None = None,
    ) -> None:
        self._probes: dict[str, BaseProbe] = {}
        self._http = http
        for probe in probes or []:
            self.register(probe)

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------

    def register(self, probe: BaseProbe) -> None:
        """Add *probe* to the end of the dispatch table.

        Raises:
            ValueError: If a probe with the same name is already registered.
        """
        if probe.name in self._probes:
            raise ValueError(f"Probe {probe.name!r} is already registered.")
        self._probes[probe.name] = probe
        logger.debug("Registered probe %r.", probe.name)

    @property
    def names(self) -> list[str]:
        """Provider names in dispatch order."""
        return list(self._probes)

    def resolve(self, url: str) -> BaseProbe | None:
        """Return the first probe that recognises *url*, or ``None``."""
        for probe in self._probes.values():
            if probe.matches(url):
                return probe
        return None

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def probe(self, url: str) -> ProbeResult:
        """Resolve *url* and probe it.  Never raises."""
        return await self.run(self.resolve(url), url)

    async def run(self, probe: BaseProbe | None, url: str) -> ProbeResult:
        """Run *probe* against *url*, mapping every failure to ``inconclusive``.

        Callers that already resolved the probe (to consult the circuit
        breaker first) pass it in so the URL is matched only once.
        """
        if probe is None:
            return ProbeResult(
                verdict=Verdict.INCONCLUSIVE,
                reason=REASON_UNSUPPORTED,
                provider=None,
                permanent=True,
            )

        try:
            return await probe.check(url)
        except httpx.TimeoutException:
            logger.debug("Probe %s timed out on %s", probe.name, url)
            return probe.inconclusive(REASON_TIMEOUT)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Probe %s failed on %s: %s", probe.name, url, exc, exc_info=True)
            return probe.inconclusive(f"check failed: {exc}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        for probe in self._probes.values():
            await probe.close()
        if self._http is not None:
            await self._http.close()

    async def __aenter__(self) -> ProbeRegistry:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


def build_default_registry(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProbeRegistry:
    """Build the standard registry: Quark, Baidu, then Xunlei.

    All probes share one :class:`HttpClient` limited to
    ``settings.probe_timeout`` seconds per request, with no retries.

    Args:
        settings: Loaded settings.
        transport: Optional transport override (tests pass
            :class:`httpx.MockTransport`).
    """
    http = HttpClient(
        timeout=settings.probe_timeout,
        max_attempts=1,
        label="probe",
        transport=transport,
    )
    return ProbeRegistry(
        [QuarkProbe(http), BaiduProbe(http), XunleiProbe(http)],
        http=http,
    )
