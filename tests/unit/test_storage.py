"""Unit tests for the record-source backends.

* :class:`~sharecheck.storage.sqlite.SqliteRecordSource` runs against a real
  SQLite file under ``tmp_path``.
* :class:`~sharecheck.storage.rest.RestRecordSource` runs against an
  :class:`httpx.MockTransport` that imitates PostgREST.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import aiosqlite
import httpx
import pytest

from sharecheck.core import http_client as http_client_module
from sharecheck.core.exceptions import StoreReadError, StoreWriteError
from sharecheck.core.models import LinkStatus
from sharecheck.core.settings import Settings, SourceConfig
from sharecheck.orchestrator.scheduler import build_work_queue
from sharecheck.storage import open_sources
from sharecheck.storage.rest import RestRecordSource, build_store_client, parse_content_range
from sharecheck.storage.sqlite import SqliteRecordSource, open_db

RESOURCES = SourceConfig(name="resources", url_field="url", checked_field="last_checked_at")


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(http_client_module, "_backoff_wait", lambda retry_state: 0.0)


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


@pytest.fixture()
async def sqlite_conn(tmp_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    conn = await open_db(tmp_path / "catalog.db", [RESOURCES])
    await conn.executemany(
        "INSERT INTO resources (id, url, status, last_checked_at) VALUES (?, ?, ?, ?)",
        [
            (1, "https://pan.quark.cn/s/a", "valid", "2024-03-01T00:00:00+00:00"),
            (2, "https://pan.quark.cn/s/b", None, None),
            (3, "https://pan.baidu.com/s/1c", "expired", "2024-01-01T00:00:00+00:00"),
            (4, "https://pan.xunlei.com/s/d", None, None),
            (5, None, None, "2024-02-01T00:00:00+00:00"),
        ],
    )
    await conn.commit()
    yield conn
    await conn.close()


class TestSqliteRecordSource:
    async def test_count(self, sqlite_conn: aiosqlite.Connection) -> None:
        assert await SqliteRecordSource(RESOURCES, sqlite_conn).count() == 5

    async def test_page_orders_never_checked_first(
        self, sqlite_conn: aiosqlite.Connection
    ) -> None:
        source = SqliteRecordSource(RESOURCES, sqlite_conn)
        records = await source.page(0, 10, "last_checked_at")
        assert [r.id for r in records] == ["2", "4", "3", "5", "1"]
        assert records[0].last_checked is None
        assert records[0].status is LinkStatus.UNCHECKED
        assert records[2].status is LinkStatus.EXPIRED
        assert records[3].url == ""
        assert all(r.source == "resources" for r in records)

    async def test_page_offset_and_limit(self, sqlite_conn: aiosqlite.Connection) -> None:
        source = SqliteRecordSource(RESOURCES, sqlite_conn)
        first = await source.page(0, 2, "last_checked_at")
        second = await source.page(2, 2, "last_checked_at")
        assert [r.id for r in first] == ["2", "4"]
        assert [r.id for r in second] == ["3", "5"]

    async def test_nulls_last(self, sqlite_conn: aiosqlite.Connection) -> None:
        source = SqliteRecordSource(RESOURCES, sqlite_conn)
        records = await source.page(0, 10, "last_checked_at", nulls_first=False)
        assert [r.id for r in records][-2:] == ["2", "4"]

    async def test_update_writes_only_given_columns(
        self, sqlite_conn: aiosqlite.Connection
    ) -> None:
        source = SqliteRecordSource(RESOURCES, sqlite_conn)
        await source.update("1", {"last_checked_at": "2024-06-01T00:00:00+00:00"})

        cursor = await sqlite_conn.execute(
            "SELECT status, last_checked_at FROM resources WHERE id = 1"
        )
        row = await cursor.fetchone()
        assert row["status"] == "valid"
        assert row["last_checked_at"] == "2024-06-01T00:00:00+00:00"

    async def test_update_rejects_unknown_column(
        self, sqlite_conn: aiosqlite.Connection
    ) -> None:
        source = SqliteRecordSource(RESOURCES, sqlite_conn)
        with pytest.raises(ValueError):
            await source.update("1", {"url": "https://elsewhere"})

    async def test_missing_table_raises_read_error(
        self, sqlite_conn: aiosqlite.Connection
    ) -> None:
        source = SqliteRecordSource(SourceConfig(name="nope"), sqlite_conn)
        with pytest.raises(StoreReadError):
            await source.count()
        with pytest.raises(StoreReadError):
            await source.page(0, 10, "last_checked")

    async def test_update_on_missing_table_raises_write_error(
        self, sqlite_conn: aiosqlite.Connection
    ) -> None:
        source = SqliteRecordSource(SourceConfig(name="nope"), sqlite_conn)
        with pytest.raises(StoreWriteError):
            await source.update("1", {"status": "valid"})

    async def test_unreadable_timestamp_is_queued_as_never_checked(
        self, sqlite_conn: aiosqlite.Connection
    ) -> None:
        await sqlite_conn.execute(
            "INSERT INTO resources (id, url, status, last_checked_at) VALUES (?, ?, ?, ?)",
            (6, "https://pan.baidu.com/s/1a", "valid", "not-a-date"),
        )
        await sqlite_conn.commit()
        source = SqliteRecordSource(RESOURCES, sqlite_conn)

        queue = await build_work_queue([source], run_cap=100, page_size=100)

        assert [i.record.id for i in queue.items] == ["2", "4", "6", "3", "5", "1"]
        assert queue.items[2].record.last_checked is None
        assert queue.items[2].record.status is LinkStatus.VALID

    async def test_open_sources_sqlite_backend(
        self, tmp_path: Path, make_settings: Callable[..., Settings]
    ) -> None:
        settings = make_settings(store_url=f"sqlite:///{tmp_path / 'new' / 'catalog.db'}")
        async with open_sources(settings) as sources:
            assert [s.name for s in sources] == ["short_links", "resources"]
            assert all(isinstance(s, SqliteRecordSource) for s in sources)
            assert [await s.count() for s in sources] == [0, 0]


# ---------------------------------------------------------------------------
# REST (PostgREST)
# ---------------------------------------------------------------------------


class TestParseContentRange:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [("0-999/15234", 15234), ("*/0", 0), ("0-9/*", None), ("", None)],
    )
    def test_parse(self, header: str, expected: int | None) -> None:
        assert parse_content_range(header) == expected


class TestRestRecordSource:
    def _source(
        self,
        handler: Callable[[httpx.Request], httpx.Response],
        make_settings: Callable[..., Settings],
    ) -> RestRecordSource:
        settings = make_settings(store_url="https://proj.supabase.co", store_key="svc")
        http = build_store_client(settings, transport=httpx.MockTransport(handler))
        return RestRecordSource(RESOURCES, http)

    async def test_count_uses_head_and_content_range(
        self, make_settings: Callable[..., Settings]
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, headers={"Content-Range": "0-0/4321"})

        assert await self._source(handler, make_settings).count() == 4321
        request = seen[0]
        assert request.method == "HEAD"
        assert request.url.path == "/rest/v1/resources"
        assert request.headers["apikey"] == "svc"
        assert request.headers["Authorization"] == "Bearer svc"
        assert request.headers["Prefer"] == "count=exact"

    async def test_count_without_total_is_read_error(
        self, make_settings: Callable[..., Settings]
    ) -> None:
        source = self._source(lambda request: httpx.Response(200), make_settings)
        with pytest.raises(StoreReadError):
            await source.count()

    async def test_page_request_shape_and_mapping(
        self, make_settings: Callable[..., Settings]
    ) -> None:
        seen: list[httpx.Request] = []
        rows = [
            {"id": 9, "url": "https://pan.quark.cn/s/x", "status": None, "last_checked_at": None},
            {
                "id": 3,
                "url": "https://pan.baidu.com/s/1y",
                "status": "valid",
                "last_checked_at": "2024-04-02T08:30:00.123456+00:00",
            },
            {"id": None, "url": "https://broken", "status": None, "last_checked_at": None},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=rows)

        records = await self._source(handler, make_settings).page(1000, 500, "last_checked_at")

        params = seen[0].url.params
        assert params["select"] == "id,url,status,last_checked_at"
        assert params["order"] == "last_checked_at.asc.nullsfirst,id.asc"
        assert params["offset"] == "1000"
        assert params["limit"] == "500"
        assert [r.id for r in records] == ["9", "3"]
        assert records[1].status is LinkStatus.VALID
        assert records[1].last_checked is not None

    async def test_page_server_error_after_retries_is_read_error(
        self, make_settings: Callable[..., Settings]
    ) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        source = self._source(handler, make_settings)
        with pytest.raises(StoreReadError):
            await source.page(0, 10, "last_checked_at")
        assert calls == 3

    async def test_page_non_array_is_read_error(
        self, make_settings: Callable[..., Settings]
    ) -> None:
        source = self._source(
            lambda request: httpx.Response(200, json={"message": "bad"}), make_settings
        )
        with pytest.raises(StoreReadError):
            await source.page(0, 10, "last_checked_at")

    async def test_update_patches_by_id(self, make_settings: Callable[..., Settings]) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        fields = {"status": "expired", "last_checked_at": "2024-06-01T00:00:00+00:00"}
        await self._source(handler, make_settings).update("42", fields)

        request = seen[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.42"
        assert request.headers["Prefer"] == "return=minimal"
        assert json.loads(request.content) == fields

    async def test_update_failure_is_write_error(
        self, make_settings: Callable[..., Settings]
    ) -> None:
        source = self._source(lambda request: httpx.Response(401), make_settings)
        with pytest.raises(StoreWriteError) as excinfo:
            await source.update("42", {"status": "valid"})
        assert excinfo.value.record_id == "42"
