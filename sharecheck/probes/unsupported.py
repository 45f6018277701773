"""Probes for providers that are recognised but cannot be checked.

Recognising the host still matters: the record is attributed to a named
provider in progress lines, and the verdict is flagged ``permanent`` so the
circuit breaker ignores it.
"""

from __future__ import annotations

import re

from sharecheck.core.models import ProbeResult
from sharecheck.probes.base import BaseProbe

__all__ = ["UnsupportedProbe", "XunleiProbe"]


class UnsupportedProbe(BaseProbe):
    """Base for recognised providers with no liveness check.

    Never touches the network.
    """

    reason: str = "provider not supported"

    async def check(self, url: str) -> ProbeResult:
        return self.inconclusive(self.reason, permanent=True)


class XunleiProbe(UnsupportedProbe):
    """Xunlei (Thunder) cloud drive.  Share pages require a signed-in client."""

    name = "xunlei"
    patterns = (re.compile(r"(^|\.)pan\.xunlei\.com$"),)
