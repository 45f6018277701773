"""Translate a probe verdict into a store update.

+---------------+------------------------------------------+-------------+
| verdict       | fields written                           | outcome     |
+===============+==========================================+=============+
| live          | status = ``valid``, checked = now        | valid       |
+---------------+------------------------------------------+-------------+
| dead          | status = ``expired``, checked = now      | expired     |
+---------------+------------------------------------------+-------------+
| inconclusive  | checked = now (status untouched)         | preserved   |
+---------------+------------------------------------------+-------------+

Every verdict moves the check timestamp, so a link that could not be
decided drops to the back of the staleness order instead of being retried
first on the next run.  An inconclusive verdict never changes the stored
status.

A failing write turns the outcome into ``error``; it never raises.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sharecheck.core.models import LinkRecord, LinkStatus, Outcome, ProbeResult, Verdict
from sharecheck.storage.base import RecordSource

__all__ = ["apply_verdict", "fields_for"]

logger = logging.getLogger(__name__)

_OUTCOME_BY_VERDICT: dict[Verdict, Outcome] = {
    Verdict.LIVE: Outcome.VALID,
    Verdict.DEAD: Outcome.EXPIRED,
    Verdict.INCONCLUSIVE: Outcome.PRESERVED,
}


def fields_for(result: ProbeResult, source: RecordSource, now: datetime) -> dict[str, Any]:
    """Return the ``{column: value}`` update for *result* on *source*."""
    cfg = source.config
    fields: dict[str, Any] = {cfg.checked_field: now.isoformat()}
    if result.verdict is Verdict.LIVE:
        fields[cfg.status_field] = LinkStatus.VALID.value
    elif result.verdict is Verdict.DEAD:
        fields[cfg.status_field] = LinkStatus.EXPIRED.value
    return fields


async def apply_verdict(
    record: LinkRecord,
    result: ProbeResult,
    source: RecordSource,
    *,
    now: datetime,
    dry_run: bool,
) -> Outcome:
    """Write *result* for *record* back to *source* and return the outcome.

    Args:
        record: The record that was probed.
        result: Its verdict.
        source: Where the record lives.
        now: Timezone-aware check time.
        dry_run: Log the update instead of sending it.
    """
    fields = fields_for(result, source, now)

    if dry_run:
        logger.debug("[dry-run] would update %s/%s with %s", source.name, record.id, fields)
        return _OUTCOME_BY_VERDICT[result.verdict]

    try:
        await source.update(record.id, fields)
    except Exception as exc:  # noqa: BLE001
        logger.error("Write-back for %s/%s failed: %s", source.name, record.id, exc)
        return Outcome.ERROR

    return _OUTCOME_BY_VERDICT[result.verdict]
