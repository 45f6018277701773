"""SQLite record source for local catalogs.

Selected when ``STORE_URL`` has the form ``sqlite:///path/to/catalog.db``.
Every configured source maps to one table in that file; all sources share a
single :mod:`aiosqlite` connection opened by :func:`open_db`.

Table and column names come from
:class:`~sharecheck.core.settings.SourceConfig`, whose validator restricts them
to plain identifiers, so they can be interpolated (quoted) into SQL.  Values
are always bound as parameters.

Typical usage::

    conn = await open_db(Path("catalog.db"), settings.record_sources)
    source = SqliteRecordSource(settings.record_sources[0], conn)
    rows = await source.page(0, 1000, source.config.checked_field)
    await conn.close()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import aiosqlite

from sharecheck.core.exceptions import StoreReadError, StoreWriteError
from sharecheck.core.models import LinkRecord
from sharecheck.core.settings import SourceConfig
from sharecheck.storage.base import RecordSource

__all__ = ["SqliteRecordSource", "open_db", "create_table"]

logger = logging.getLogger(__name__)


def _q(identifier: str) -> str:
    return f'"{identifier}"'


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


async def open_db(
    path: Path,
    sources: Iterable[SourceConfig] = (),
) -> aiosqlite.Connection:
    """Open (or create) the catalog file and make sure every source table exists.

    Args:
        path: Filesystem path of the SQLite file.  Parent directories are
            created if missing.
        sources: Source configs whose tables are created when absent.

    Returns:
        An open :class:`aiosqlite.Connection` with ``row_factory`` set to
        :class:`aiosqlite.Row`.  The caller closes it.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite catalog at %s", path)
    conn = await aiosqlite.connect(path)
    conn.row_factory = aiosqlite.Row

    cursor = await conn.execute("PRAGMA journal_mode=WAL")
    row = await cursor.fetchone()
    if not row or row[0] != "wal":
        logger.warning(
            "Requested WAL journal mode but SQLite reported: %r.",
            row[0] if row else None,
        )

    for config in sources:
        await create_table(conn, config)

    logger.info("SQLite catalog ready at %s", path)
    return conn


async def create_table(conn: aiosqlite.Connection, config: SourceConfig) -> None:
    """``CREATE TABLE IF NOT EXISTS`` for one source.  Existing tables are untouched."""
    await conn.execute(
        f"CREATE TABLE IF NOT EXISTS {_q(config.name)} ("
        f"{_q(config.id_field)} INTEGER PRIMARY KEY, "
        f"{_q(config.url_field)} TEXT, "
        f"{_q(config.status_field)} TEXT, "
        f"{_q(config.checked_field)} TEXT)"
    )
    await conn.commit()


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


class SqliteRecordSource(RecordSource):
    """One table in a local SQLite catalog.

    Args:
        config: Table name and column mapping.
        conn: Open connection from :func:`open_db`.  Not closed here.
    """

    def __init__(self, config: SourceConfig, conn: aiosqlite.Connection) -> None:
        super().__init__(config)
        self._conn = conn
        self._table = _q(config.name)

    async def count(self) -> int:
        try:
            cursor = await self._conn.execute(f"SELECT COUNT(*) FROM {self._table}")
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreReadError(self.name, f"count failed: {exc}") from exc
        return int(row[0]) if row else 0

    async def page(
        self,
        offset: int,
        limit: int,
        order_by: str,
        nulls_first: bool = True,
    ) -> list[LinkRecord]:
        if order_by not in self.columns:
            raise StoreReadError(self.name, f"cannot order by unknown column {order_by!r}")

        col = _q(order_by)
        null_term = f"{col} IS NOT NULL" if nulls_first else f"{col} IS NULL"
        select = ", ".join(_q(c) for c in self.columns)
        sql = (
            f"SELECT {select} FROM {self._table} "
            f"ORDER BY {null_term}, {col} ASC, {_q(self.config.id_field)} ASC "
            "LIMIT ? OFFSET ?"
        )
        try:
            cursor = await self._conn.execute(sql, (limit, offset))
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreReadError(self.name, f"page at offset {offset} failed: {exc}") from exc

        records = [self.to_record(dict(row)) for row in rows]
        return [r for r in records if r is not None]

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        self.check_columns(fields)
        if not fields:
            return
        assignments = ", ".join(f"{_q(col)} = ?" for col in fields)
        sql = f"UPDATE {self._table} SET {assignments} WHERE {_q(self.config.id_field)} = ?"
        try:
            await self._conn.execute(sql, (*fields.values(), record_id))
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StoreWriteError(self.name, record_id, str(exc)) from exc
