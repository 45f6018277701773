"""Live integration tests: provider probes and the record store.

These tests send real requests to Quark, Baidu and the configured store.
They validate that:

* The share endpoints still accept our request shape and answer with a
  payload the probes can classify.
* A link known to be gone is still reported ``dead`` (guards against a
  provider silently changing its error codes or redirect target).
* The store still answers ``count`` and ``page`` in the shape the REST
  backend expects.

Default behaviour
-----------------
All tests are marked ``@pytest.mark.integration`` and are excluded from the
default run (``addopts = "-m 'not integration'"`` in ``pyproject.toml``).

Run on demand::

    pytest -m integration tests/integration/test_probes_live.py

Guards
------
Each test is skipped unless its link or credential is set, read from the
environment or a local ``.env``:

* ``LIVE_QUARK_URL`` / ``DEAD_QUARK_URL``
* ``LIVE_BAIDU_URL`` / ``DEAD_BAIDU_URL``
* ``STORE_URL`` (or ``SUPABASE_URL``) with its key, for the read-only store test

Nothing here writes to the store.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator

import pytest
from dotenv import load_dotenv

from sharecheck.core.http_client import HttpClient
from sharecheck.core.models import Verdict
from sharecheck.core.settings import Settings
from sharecheck.probes.baidu import BaiduProbe
from sharecheck.probes.quark import QuarkProbe
from sharecheck.storage import open_sources

__all__: list[str] = []

logger = logging.getLogger(__name__)

load_dotenv()

# ---------------------------------------------------------------------------
# Skip guards
# ---------------------------------------------------------------------------


def _skip_unless(var: str) -> pytest.MarkDecorator:
    return pytest.mark.skipif(
        not os.environ.get(var),
        reason=f"{var} is not set; add it to .env or export it in your shell.",
    )


_STORE_CONFIGURED = bool(os.environ.get("STORE_URL") or os.environ.get("SUPABASE_URL"))


@pytest.fixture()
async def http() -> AsyncIterator[HttpClient]:
    async with HttpClient(timeout=10.0, max_attempts=1, label="probe") as client:
        yield client


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestQuarkLive:
    @_skip_unless("LIVE_QUARK_URL")
    async def test_live_share(self, http: HttpClient) -> None:
        result = await QuarkProbe(http).check(os.environ["LIVE_QUARK_URL"])
        logger.info("Quark live share: %s (%s)", result.verdict, result.reason)
        assert result.verdict is Verdict.LIVE

    @_skip_unless("DEAD_QUARK_URL")
    async def test_dead_share(self, http: HttpClient) -> None:
        result = await QuarkProbe(http).check(os.environ["DEAD_QUARK_URL"])
        logger.info("Quark dead share: %s (%s)", result.verdict, result.reason)
        assert result.verdict is Verdict.DEAD


@pytest.mark.integration
class TestBaiduLive:
    @_skip_unless("LIVE_BAIDU_URL")
    async def test_live_share(self, http: HttpClient) -> None:
        result = await BaiduProbe(http).check(os.environ["LIVE_BAIDU_URL"])
        logger.info("Baidu live share: %s (%s)", result.verdict, result.reason)
        assert result.verdict is Verdict.LIVE

    @_skip_unless("DEAD_BAIDU_URL")
    async def test_dead_share(self, http: HttpClient) -> None:
        result = await BaiduProbe(http).check(os.environ["DEAD_BAIDU_URL"])
        logger.info("Baidu dead share: %s (%s)", result.verdict, result.reason)
        assert result.verdict is Verdict.DEAD


# ---------------------------------------------------------------------------
# Store (read-only)
# ---------------------------------------------------------------------------


@pytest.mark.integration
@pytest.mark.skipif(not _STORE_CONFIGURED, reason="No STORE_URL / SUPABASE_URL configured.")
async def test_store_count_and_first_page() -> None:
    settings = Settings.load()
    async with open_sources(settings) as sources:
        for source in sources:
            total = await source.count()
            page = await source.page(0, 5, source.config.checked_field)
            logger.info("%s: %d row(s), first page %d", source.name, total, len(page))
            assert total >= 0
            assert len(page) <= 5
            assert all(r.source == source.name for r in page)
