"""Unit tests for :func:`~sharecheck.orchestrator.pipeline.check_link` and
:class:`~sharecheck.orchestrator.pipeline.RunStats`."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

from sharecheck.core import events
from sharecheck.core.models import Outcome, Verdict
from sharecheck.orchestrator.circuit_breaker import BreakerState
from sharecheck.orchestrator.pipeline import RunStats, check_link, progress_line
from sharecheck.orchestrator.scheduler import WorkItem
from sharecheck.probes.registry import ProbeRegistry
from sharecheck.probes.unsupported import XunleiProbe

NOW = datetime(2024, 6, 1, tzinfo=UTC)


def _clock() -> datetime:
    return NOW


def _item(source: Any, record_id: str) -> WorkItem:
    return WorkItem(record=source.to_record(source.rows[record_id]), source=source)


@pytest.fixture()
def source(make_source: Callable[..., Any]) -> Any:
    return make_source(
        "resources",
        [
            (1, "https://pan.quark.cn/s/live", "expired", None),
            (2, "https://pan.quark.cn/s/blocked", "valid", None),
            (3, "https://example.com/file.zip", "valid", None),
            (4, "https://pan.xunlei.com/s/abc", None, None),
        ],
    )


@pytest.fixture()
def registry(make_registry: Callable[..., ProbeRegistry]) -> ProbeRegistry:
    def quark(url: str) -> Verdict:
        return Verdict.LIVE if url.endswith("live") else Verdict.INCONCLUSIVE

    reg = make_registry(quark=("pan.quark.cn", quark))
    reg.register(XunleiProbe(None))  # type: ignore[arg-type]
    return reg


async def _check(
    item: WorkItem, registry: ProbeRegistry, breaker: BreakerState, **kw: Any
) -> Outcome:
    return await check_link(item, 0, 1, registry=registry, breaker=breaker, clock=_clock, **kw)


class TestCheckLink:
    async def test_live_is_written_and_resets_breaker(
        self, source: Any, registry: ProbeRegistry
    ) -> None:
        breaker = BreakerState(threshold=3)
        await breaker.record_inconclusive("quark")

        outcome = await _check(_item(source, "1"), registry, breaker)

        assert outcome is Outcome.VALID
        assert source.rows["1"]["status"] == "valid"
        assert source.rows["1"]["last_checked_at"] == NOW.isoformat()
        assert breaker.get_state("quark").consecutive_inconclusive == 0

    async def test_inconclusive_preserves_and_counts(
        self, source: Any, registry: ProbeRegistry
    ) -> None:
        breaker = BreakerState(threshold=3)
        outcome = await _check(_item(source, "2"), registry, breaker)

        assert outcome is Outcome.PRESERVED
        assert source.rows["2"]["status"] == "valid"
        assert source.rows["2"]["last_checked_at"] == NOW.isoformat()
        assert breaker.get_state("quark").consecutive_inconclusive == 1

    async def test_tripped_provider_is_skipped_without_request_or_write(
        self, source: Any, registry: ProbeRegistry
    ) -> None:
        breaker = BreakerState(threshold=1)
        await breaker.record_inconclusive("quark")

        outcome = await _check(_item(source, "1"), registry, breaker)

        assert outcome is Outcome.SKIPPED
        assert registry.resolve("https://pan.quark.cn/s/x").calls == []  # type: ignore[union-attr]
        assert source.updates == []

    async def test_unrecognised_url_is_preserved_outside_breaker(
        self, source: Any, registry: ProbeRegistry
    ) -> None:
        breaker = BreakerState(threshold=1)
        outcome = await _check(_item(source, "3"), registry, breaker)

        assert outcome is Outcome.PRESERVED
        assert source.rows["3"]["status"] == "valid"
        assert breaker.summary() == {}

    async def test_unsupported_provider_never_trips(
        self, source: Any, registry: ProbeRegistry
    ) -> None:
        breaker = BreakerState(threshold=1)
        for _ in range(3):
            assert await _check(_item(source, "4"), registry, breaker) is Outcome.PRESERVED
        assert not breaker.is_tripped("xunlei")
        assert source.rows["4"]["status"] is None

    async def test_unexpected_exception_is_error_and_counts(
        self, source: Any, registry: ProbeRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(registry, "run", AsyncMock(side_effect=RuntimeError("boom")))
        breaker = BreakerState(threshold=5)

        outcome = await _check(_item(source, "1"), registry, breaker)

        assert outcome is Outcome.ERROR
        assert source.updates == []
        assert breaker.get_state("quark").consecutive_inconclusive == 1

    async def test_write_failure_is_error(self, source: Any, registry: ProbeRegistry) -> None:
        source.fail_update_ids.add("1")
        outcome = await _check(_item(source, "1"), registry, BreakerState())
        assert outcome is Outcome.ERROR
        assert source.rows["1"]["status"] == "expired"

    async def test_dry_run_writes_nothing(self, source: Any, registry: ProbeRegistry) -> None:
        outcome = await _check(_item(source, "1"), registry, BreakerState(), dry_run=True)
        assert outcome is Outcome.VALID
        assert source.updates == []

    async def test_progress_line_logged_with_event(
        self, source: Any, registry: ProbeRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="sharecheck.orchestrator.pipeline"):
            await check_link(
                _item(source, "1"), 11, 400, registry=registry, breaker=BreakerState(), clock=_clock
            )
        [record] = [r for r in caplog.records if getattr(r, "event", None)]
        assert record.event == events.LINK_VALID  # type: ignore[attr-defined]
        assert record.getMessage().startswith("[12/400] ✓ [quark] https://pan.quark.cn/s/live")


class TestProgressLine:
    def test_long_url_truncated(self) -> None:
        url = "https://pan.quark.cn/s/" + "a" * 60
        line = progress_line(0, 3, Outcome.EXPIRED, "quark", url, "share expired")
        assert line == f"[1/3] ✗ [quark] {url[:45]}... - share expired"

    def test_unknown_provider_shown_as_dash(self) -> None:
        line = progress_line(2, 3, Outcome.PRESERVED, None, "https://x.io", "unsupported share type")
        assert line.startswith("[3/3] ? [-] https://x.io")


class TestRunStats:
    def test_counters_and_reports(self) -> None:
        stats = RunStats(mode="live", found={"short_links": 10, "resources": None})
        stats.batch_size = 5
        stats.wave_size = 2
        stats.tally(
            [Outcome.VALID, Outcome.VALID, Outcome.EXPIRED, Outcome.SKIPPED, Outcome.ERROR]
        )
        stats.tripped_providers = ["quark"]
        stats.failed_sources = ["resources"]

        assert (stats.valid, stats.expired, stats.preserved) == (2, 1, 0)
        assert (stats.skipped, stats.errors, stats.checked) == (1, 1, 5)
        assert "found: short_links=10, resources=?" in stats.format_start_report()
        report = stats.format_run_report()
        assert "checked: 5/5" in report
        assert "tripped providers: quark" in report
        assert "failed sources: resources" in report

    def test_estimate(self) -> None:
        stats = RunStats(batch_size=15000, wave_size=20)
        assert stats.estimated_minutes == 25
