"""PostgREST (Supabase) record source.

Talks to ``<STORE_URL>/rest/v1/<table>`` with the service key in both the
``apikey`` and ``Authorization: Bearer`` headers.

Request shapes
--------------
* **count**: ``HEAD /<table>?select=<id>`` with ``Prefer: count=exact``; the
  total is the part after ``/`` in the ``Content-Range`` response header.
* **page**: ``GET /<table>?select=...&order=<col>.asc.nullsfirst,<id>.asc
  &offset=N&limit=M``.
* **update**: ``PATCH /<table>?<id>=eq.<value>`` with a JSON body and
  ``Prefer: return=minimal``.

Retries (5xx, 429, network errors) are handled by the shared
:class:`~sharecheck.core.http_client.HttpClient`; whatever survives the retry
budget is wrapped in :class:`~sharecheck.core.exceptions.StoreReadError` or
:class:`~sharecheck.core.exceptions.StoreWriteError`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from sharecheck.core.exceptions import FetchError, StoreReadError, StoreWriteError
from sharecheck.core.http_client import HttpClient
from sharecheck.core.models import LinkRecord
from sharecheck.core.settings import Settings, SourceConfig
from sharecheck.storage.base import RecordSource

__all__ = ["RestRecordSource", "build_store_client", "parse_content_range"]

logger = logging.getLogger(__name__)

_REST_PREFIX = "/rest/v1"


def build_store_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """Return an :class:`HttpClient` pointed at the store's REST root."""
    return HttpClient(
        base_url=f"{settings.store_url}{_REST_PREFIX}",
        headers={
            "apikey": settings.store_key,
            "Authorization": f"Bearer {settings.store_key}",
        },
        timeout=settings.store_timeout,
        max_attempts=settings.store_max_attempts,
        label="store",
        transport=transport,
    )


def parse_content_range(header: str) -> int | None:
    """Extract the total from a ``Content-Range`` header.

    Example::

        >>> parse_content_range("0-999/15234")
        15234
        >>> parse_content_range("*/0")
        0
        >>> parse_content_range("0-9/*") is None
        True
    """
    _, sep, total = header.partition("/")
    if not sep:
        return None
    try:
        return int(total)
    except ValueError:
        return None


class RestRecordSource(RecordSource):
    """One PostgREST table.

    Args:
        config: Table name and column mapping.
        http: Store client from :func:`build_store_client`.  Shared between
            sources and closed by whoever opened it.
    """

    def __init__(self, config: SourceConfig, http: HttpClient) -> None:
        super().__init__(config)
        self._http = http
        self._path = f"/{config.name}"

    async def count(self) -> int:
        try:
            response = await self._http.head(
                self._path,
                params={"select": self.config.id_field},
                headers={"Prefer": "count=exact"},
            )
        except (FetchError, httpx.HTTPError) as exc:
            raise StoreReadError(self.name, f"count failed: {exc}") from exc

        total = parse_content_range(response.headers.get("content-range", ""))
        if total is None:
            raise StoreReadError(
                self.name,
                f"no total in Content-Range {response.headers.get('content-range')!r}",
            )
        return total

    async def page(
        self,
        offset: int,
        limit: int,
        order_by: str,
        nulls_first: bool = True,
    ) -> list[LinkRecord]:
        nulls = "nullsfirst" if nulls_first else "nullslast"
        params = {
            "select": ",".join(self.columns),
            "order": f"{order_by}.asc.{nulls},{self.config.id_field}.asc",
            "offset": offset,
            "limit": limit,
        }
        try:
            response = await self._http.get(self._path, params=params)
            rows = response.json()
        except (FetchError, httpx.HTTPError) as exc:
            raise StoreReadError(self.name, f"page at offset {offset} failed: {exc}") from exc
        except ValueError as exc:
            raise StoreReadError(self.name, f"page at offset {offset} is not JSON") from exc

        if not isinstance(rows, list):
            raise StoreReadError(
                self.name, f"expected a JSON array, got {type(rows).__name__}"
            )

        records = [self.to_record(row) for row in rows if isinstance(row, dict)]
        return [r for r in records if r is not None]

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        self.check_columns(fields)
        try:
            await self._http.patch(
                self._path,
                params={self.config.id_field: f"eq.{record_id}"},
                json=dict(fields),
                headers={"Prefer": "return=minimal"},
            )
        except (FetchError, httpx.HTTPError) as exc:
            raise StoreWriteError(self.name, record_id, str(exc)) from exc
