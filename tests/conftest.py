"""Shared pytest fixtures and configuration for the Sharecheck test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import Callable, Mapping
from typing import Any

import pytest
from pydantic_settings import SettingsConfigDict

from sharecheck.core import configure_logging
from sharecheck.core.exceptions import StoreReadError, StoreWriteError
from sharecheck.core.models import LinkRecord, ProbeResult, Verdict
from sharecheck.core.settings import Settings, SourceConfig
from sharecheck.probes.base import BaseProbe
from sharecheck.probes.registry import ProbeRegistry
from sharecheck.storage.base import RecordSource

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove store credentials and tunables from the environment for one test.

    Also disables pydantic-settings ``.env`` file loading so that a developer's
    local ``.env`` does not leak into Settings isolation tests.
    """
    prefixes = (
        "STORE_",
        "SUPABASE_",
        "RECORD_SOURCES",
        "PAGE_SIZE",
        "RUN_CAP",
        "WAVE_",
        "PROBE_",
        "BREAKER_",
        "DRY_RUN",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
            populate_by_name=True,
        ),
    )


@pytest.fixture()
def make_settings(clean_env: None) -> Callable[..., Settings]:
    """Return a factory building isolated :class:`Settings` with test defaults."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "store_url": "https://example.supabase.co",
            "store_key": "test-service-key",
            "wave_delay": 0.0,
        }
        values.update(overrides)
        return Settings.load(**values)

    return _make


# ---------------------------------------------------------------------------
# In-memory record source
# ---------------------------------------------------------------------------


class InMemorySource(RecordSource):
    """Dict-backed :class:`RecordSource` with switchable failures.

    Rows are stored under the configured column names, exactly as a real
    table would hold them.

    Attributes:
        fail_count: Raise :class:`StoreReadError` from :meth:`count`.
        fail_page_at: Raise :class:`StoreReadError` when paging reaches this
            offset (``0`` fails the very first page).
        fail_update_ids: Record ids whose update raises
            :class:`StoreWriteError`.
        page_calls: ``(offset, limit)`` of every :meth:`page` call.
        updates: ``(record_id, fields)`` of every successful update.
    """

    def __init__(self, config: SourceConfig, rows: list[dict[str, Any]] | None = None) -> None:
        super().__init__(config)
        self.rows: dict[str, dict[str, Any]] = {}
        for row in rows or []:
            self.rows[str(row[config.id_field])] = dict(row)
        self.fail_count = False
        self.fail_page_at: int | None = None
        self.fail_update_ids: set[str] = set()
        self.page_calls: list[tuple[int, int]] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []

    async def count(self) -> int:
        if self.fail_count:
            raise StoreReadError(self.name, "count unavailable")
        return len(self.rows)

    async def page(
        self,
        offset: int,
        limit: int,
        order_by: str,
        nulls_first: bool = True,
    ) -> list[LinkRecord]:
        self.page_calls.append((offset, limit))
        if self.fail_page_at is not None and offset >= self.fail_page_at:
            raise StoreReadError(self.name, f"page at offset {offset} failed")

        id_field = self.config.id_field

        def _key(row: dict[str, Any]) -> tuple[bool, str, str]:
            value = row.get(order_by)
            is_null = value is None
            return (not is_null if nulls_first else is_null, str(value or ""), str(row[id_field]))

        ordered = sorted(self.rows.values(), key=_key)
        records = [self.to_record(r) for r in ordered[offset : offset + limit]]
        return [r for r in records if r is not None]

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        self.check_columns(fields)
        if record_id in self.fail_update_ids:
            raise StoreWriteError(self.name, record_id, "simulated write failure")
        self.rows[record_id].update(fields)
        self.updates.append((record_id, dict(fields)))


@pytest.fixture()
def make_source() -> Callable[..., InMemorySource]:
    """Return a factory for :class:`InMemorySource` instances.

    Rows are given as ``(id, url, status, last_checked)`` tuples and stored
    under the source's configured column names.
    """

    def _make(
        name: str = "resources",
        rows: list[tuple[Any, str | None, str | None, str | None]] | None = None,
        *,
        url_field: str = "url",
        checked_field: str = "last_checked_at",
    ) -> InMemorySource:
        config = SourceConfig(name=name, url_field=url_field, checked_field=checked_field)
        raw = [
            {
                config.id_field: rid,
                config.url_field: url,
                config.status_field: status,
                config.checked_field: checked,
            }
            for rid, url, status, checked in rows or []
        ]
        return InMemorySource(config, raw)

    return _make


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")


# ---------------------------------------------------------------------------
# Scripted probes
# ---------------------------------------------------------------------------


class ScriptedProbe(BaseProbe):
    """Network-free probe whose verdict comes from a callable.

    ``answer(url)`` returns a :class:`Verdict` or raises.  Every checked URL
    is appended to :attr:`calls`.  Each check yields to the event loop once,
    so checks in one wave are in flight together as real requests would be.
    """

    def __init__(self, answer: Callable[[str], Verdict]) -> None:
        super().__init__(None)  # type: ignore[arg-type]
        self._answer = answer
        self.calls: list[str] = []

    async def check(self, url: str) -> ProbeResult:
        self.calls.append(url)
        await asyncio.sleep(0)
        verdict = self._answer(url)
        if verdict is Verdict.LIVE:
            return self.live()
        if verdict is Verdict.DEAD:
            return self.dead("share expired")
        return self.inconclusive("provider blocked")


def scripted_probe(name: str, host: str, answer: Callable[[str], Verdict]) -> ScriptedProbe:
    """Return a :class:`ScriptedProbe` registered as *name* for *host*."""
    probe_cls = type(
        f"Scripted{name.title()}Probe",
        (ScriptedProbe,),
        {"name": name, "patterns": (re.compile(rf"(^|\.){re.escape(host)}$"),)},
    )
    return probe_cls(answer)


@pytest.fixture()
def make_registry() -> Callable[..., ProbeRegistry]:
    """Return a factory building a :class:`ProbeRegistry` of scripted probes.

    Keyword arguments map a provider name to ``(host, answer)``.
    """

    def _make(**providers: tuple[str, Callable[[str], Verdict]]) -> ProbeRegistry:
        return ProbeRegistry(
            [scripted_probe(name, host, answer) for name, (host, answer) in providers.items()]
        )

    return _make
