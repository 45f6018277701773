"""Baidu Netdisk share probe.

Baidu has no public share-status API.  The probe requests the share landing
page as a mobile browser with redirects disabled and reads the answer:

* A live share redirects (``302``) to the mobile share viewer.
* A revoked share redirects to an ``/error/...`` page.
* An expired share is served directly (``200``) as a "link expired" page
  with no ``Location`` header.

Every other answer counts as live, plain 4xx statuses included.  Only 429
and 5xx propagate (as :class:`~sharecheck.core.exceptions.FetchError`), so
the registry reports them as ``inconclusive`` and the circuit breaker can
notice a throttled client.
"""

from __future__ import annotations

import logging
import re

from sharecheck.core.http_client import MOBILE_USER_AGENT
from sharecheck.core.models import ProbeResult
from sharecheck.probes.base import BaseProbe

__all__ = ["BaiduProbe"]

logger = logging.getLogger(__name__)


class BaiduProbe(BaseProbe):
    """Liveness probe for ``pan.baidu.com`` and ``yun.baidu.com`` shares."""

    name = "baidu"
    patterns = (
        re.compile(r"(^|\.)pan\.baidu\.com$"),
        re.compile(r"(^|\.)yun\.baidu\.com$"),
    )

    async def check(self, url: str) -> ProbeResult:
        response = await self._http.get(
            url,
            headers={"User-Agent": MOBILE_USER_AGENT},
            follow_redirects=False,
            raise_for_status=False,
        )
        location = response.headers.get("location", "")
        logger.debug(
            "baidu share answered HTTP %d (location=%r)", response.status_code, location
        )

        if response.status_code == 200 and not location:
            return self.dead("share expired")
        if "error" in location:
            return self.dead("share revoked")
        return self.live()
