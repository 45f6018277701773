"""Record-source interface shared by every store backend.

A *record source* is one table of share links in the catalog store.  The
engine needs exactly three things from it:

* :meth:`RecordSource.count`: total rows, for the run summary only.
* :meth:`RecordSource.page`: one ordered page of rows.
* :meth:`RecordSource.update`: a partial update of one row by id.

Column names differ per table, so every source carries its
:class:`~sharecheck.core.settings.SourceConfig` and callers address columns
through it.  Backends translate their raw rows to
:class:`~sharecheck.core.models.LinkRecord` with :meth:`RecordSource.to_record`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from sharecheck.core.models import LinkRecord
from sharecheck.core.settings import SourceConfig

__all__ = ["RecordSource"]

logger = logging.getLogger(__name__)


class RecordSource(ABC):
    """Abstract base for one table of share links.

    Args:
        config: Table name and column mapping.

    Implementations raise
    :class:`~sharecheck.core.exceptions.StoreReadError` from :meth:`count`
    and :meth:`page`, and
    :class:`~sharecheck.core.exceptions.StoreWriteError` from :meth:`update`.
    """

    def __init__(self, config: SourceConfig) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def columns(self) -> tuple[str, str, str, str]:
        """``(id, url, status, checked)`` column names, in select order."""
        c = self.config
        return (c.id_field, c.url_field, c.status_field, c.checked_field)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def count(self) -> int:
        """Return the total number of rows in the source."""

    @abstractmethod
    async def page(
        self,
        offset: int,
        limit: int,
        order_by: str,
        nulls_first: bool = True,
    ) -> list[LinkRecord]:
        """Return up to *limit* rows starting at *offset*.

        Rows are ordered ascending by *order_by* with nulls placed first
        (or last), then by id so consecutive pages never overlap.
        """

    @abstractmethod
    async def update(self, record_id: str, fields: Mapping[str, Any]) -> None:
        """Set *fields* (column name → value) on the row with *record_id*."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def to_record(self, row: Mapping[str, Any]) -> LinkRecord | None:
        """Map a raw row to a :class:`LinkRecord`.

        Returns ``None`` (and logs a warning) for rows that cannot be
        represented, such as a null id.
        """
        c = self.config
        try:
            return LinkRecord(
                id=row.get(c.id_field),
                url=row.get(c.url_field),
                source=c.name,
                status=row.get(c.status_field),
                last_checked=row.get(c.checked_field),
            )
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable row in %s (id=%r): %s",
                c.name,
                row.get(c.id_field),
                exc.errors()[0].get("msg", exc),
            )
            return None

    def check_columns(self, fields: Mapping[str, Any]) -> None:
        """Raise :class:`ValueError` if *fields* names a column outside the mapping."""
        allowed = {self.config.status_field, self.config.checked_field}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(
                f"{self.name}: cannot update column(s) {sorted(unknown)}; "
                f"allowed: {sorted(allowed)}"
            )
