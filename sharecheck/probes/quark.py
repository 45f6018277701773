"""Quark Drive share probe.

Quark exposes the share landing page through a two-step JSON API, captured
from the web client:

1. ``POST /1/clouddrive/share/sharepage/token`` with the share id
   (``pwd_id``) and optional passcode returns a session token (``stoken``)
   or an error code.
2. ``GET /1/clouddrive/share/sharepage/detail`` with that token lists the
   root folder of the share.

Verdict mapping
---------------

+------------------------------------------+----------------------------------+
| token response                           | verdict                          |
+==========================================+==================================+
| ``code == 41003``                        | dead, share expired              |
+------------------------------------------+----------------------------------+
| ``code == 41006``                        | dead, share cancelled            |
+------------------------------------------+----------------------------------+
| other non-zero ``code``                  | dead, provider message           |
+------------------------------------------+----------------------------------+
| no ``code`` at all                       | inconclusive                     |
+------------------------------------------+----------------------------------+
| ``code == 0``, detail ``_total == 0``    | dead, content removed            |
+------------------------------------------+----------------------------------+
| ``code == 0`` otherwise                  | live                             |
+------------------------------------------+----------------------------------+

Typical usage::

    async with HttpClient(timeout=10.0, label="quark") as http:
        result = await QuarkProbe(http).check("https://pan.quark.cn/s/abc123?pwd=x1y2")
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Final
from urllib.parse import parse_qs, urlsplit

import httpx

from sharecheck.core.exceptions import ProbeParseError
from sharecheck.core.models import ProbeResult
from sharecheck.probes.base import BaseProbe

__all__ = ["QuarkProbe", "parse_share_url"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_API_BASE: Final[str] = "https://drive-h.quark.cn/1/clouddrive/share/sharepage"
_TOKEN_URL: Final[str] = f"{_API_BASE}/token"
_DETAIL_URL: Final[str] = f"{_API_BASE}/detail"

#: Query parameters the web client sends with every share-page call.
_CLIENT_PARAMS: Final[dict[str, str]] = {"pr": "ucpro", "fr": "pc"}

_CODE_OK: Final[int] = 0
_CODE_EXPIRED: Final[int] = 41003
_CODE_CANCELLED: Final[int] = 41006

_SHARE_ID_RE: Final[re.Pattern[str]] = re.compile(r"/s/([A-Za-z0-9]+)")

# ---------------------------------------------------------------------------
# Parsing helpers (module-level, stateless)
# ---------------------------------------------------------------------------


def parse_share_url(url: str) -> tuple[str, str] | None:
    """Extract ``(share_id, passcode)`` from a Quark share URL.

    The passcode comes from the ``pwd`` query parameter and defaults to
    ``""``.  Returns ``None`` when the path has no ``/s/<id>`` segment.

    Example::

        >>> parse_share_url("https://pan.quark.cn/s/a1b2c3?pwd=xyz")
        ('a1b2c3', 'xyz')
    """
    match = _SHARE_ID_RE.search(url)
    if match is None:
        return None
    query = parse_qs(urlsplit(url).query)
    passcode = (query.get("pwd") or [""])[0]
    return match.group(1), passcode


def _json_body(response: httpx.Response, provider: str) -> dict[str, Any]:
    """Decode a JSON object body or raise :class:`ProbeParseError`."""
    try:
        payload = response.json()
    except ValueError as exc:
        raise ProbeParseError(
            provider, f"non-JSON body (HTTP {response.status_code})"
        ) from exc
    if not isinstance(payload, dict):
        raise ProbeParseError(provider, f"expected a JSON object, got {type(payload).__name__}")
    return payload


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------


class QuarkProbe(BaseProbe):
    """Liveness probe for ``pan.quark.cn`` shares.

    A successful token exchange is followed by a detail call so emptied
    shares read as dead.
    """

    name = "quark"
    patterns = (re.compile(r"(^|\.)quark\.cn$"),)

    async def check(self, url: str) -> ProbeResult:
        parsed = parse_share_url(url)
        if parsed is None:
            return self.dead("malformed share link")
        share_id, passcode = parsed

        token_response = await self._http.post(
            _TOKEN_URL,
            params={
                **_CLIENT_PARAMS,
                "uc_param_str": "",
                "__dt": 2000,
                "__t": int(time.time() * 1000),
            },
            json={"pwd_id": share_id, "passcode": passcode},
            headers={"Content-Type": "application/json"},
            raise_for_status=False,
        )
        token_data = _json_body(token_response, self.name)

        code = token_data.get("code")
        if code is None:
            return self.inconclusive(
                f"token response without code (HTTP {token_response.status_code})"
            )
        if code == _CODE_EXPIRED:
            return self.dead("share expired")
        if code == _CODE_CANCELLED:
            return self.dead("share cancelled")
        if code != _CODE_OK:
            return self.dead(token_data.get("message") or "share invalid")

        stoken = (token_data.get("data") or {}).get("stoken")
        if not stoken:
            return self.live()

        return await self._check_detail(share_id, stoken)

    async def _check_detail(self, share_id: str, stoken: str) -> ProbeResult:
        """List the share root and treat an empty listing as removed content."""
        detail_response = await self._http.get(
            _DETAIL_URL,
            params={
                **_CLIENT_PARAMS,
                "pwd_id": share_id,
                "stoken": stoken,
                "pdir_fid": "0",
                "force": "0",
                "_page": 1,
                "_size": 50,
            },
            raise_for_status=False,
        )
        detail = _json_body(detail_response, self.name)

        if detail.get("code") == _CODE_OK:
            total = (detail.get("metadata") or {}).get("_total") or 0
            if total == 0:
                return self.dead("content removed")
            logger.debug("quark share %s lists %s entr(ies)", share_id, total)
        return self.live()
