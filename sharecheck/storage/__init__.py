"""Record-store backends and the factory that opens them from settings."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from sharecheck.core.settings import Settings
from sharecheck.storage.base import RecordSource
from sharecheck.storage.rest import RestRecordSource, build_store_client
from sharecheck.storage.sqlite import SqliteRecordSource, open_db

__all__ = [
    "RecordSource",
    "RestRecordSource",
    "SqliteRecordSource",
    "open_sources",
]

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_sources(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[list[RecordSource]]:
    """Open one :class:`RecordSource` per configured table.

    The backend is picked from the ``STORE_URL`` scheme: ``http(s)://`` opens
    PostgREST sources sharing one HTTP client, ``sqlite:///`` opens SQLite
    sources sharing one connection.  The shared resource is closed on exit.

    Args:
        settings: Loaded settings.
        transport: Optional HTTP transport override for the REST backend.
    """
    if settings.store_backend == "sqlite":
        conn = await open_db(settings.sqlite_path, settings.record_sources)
        try:
            yield [SqliteRecordSource(cfg, conn) for cfg in settings.record_sources]
        finally:
            await conn.close()
        return

    async with build_store_client(settings, transport=transport) as http:
        logger.debug("REST store client ready for %d source(s).", len(settings.record_sources))
        yield [RestRecordSource(cfg, http) for cfg in settings.record_sources]
