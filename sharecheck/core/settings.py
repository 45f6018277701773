"""Sharecheck application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.

The field name is the **lowercase** version of the env-var name
(e.g. ``WAVE_SIZE`` → ``wave_size``).  The two store credentials also accept
the ``SUPABASE_URL`` / ``SUPABASE_SERVICE_KEY`` names used by existing
deployments.

Typical usage::

    from sharecheck.core.settings import Settings

    settings = Settings.load()            # raises ConfigError when incomplete
    print(settings.store_backend)         # "rest" or "sqlite"
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sharecheck.core.exceptions import ConfigError

__all__ = ["Settings", "SourceConfig", "DEFAULT_RECORD_SOURCES"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

#: Column and table names are interpolated into SQL / PostgREST queries, so
#: they are restricted to plain identifiers.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SQLITE_SCHEME = "sqlite:///"


class SourceConfig(BaseModel):
    """Per-source table name and column mapping.

    Attributes:
        name: Table name in the store; also used as the source label.
        url_field: Column holding the share URL.
        status_field: Column holding ``valid`` / ``expired`` / null.
        checked_field: Column holding the last-check timestamp.
        id_field: Primary-key column used for updates.
    """

    model_config = {"frozen": True}

    name: str
    url_field: str = "url"
    status_field: str = "status"
    checked_field: str = "last_checked"
    id_field: str = "id"

    @field_validator("name", "url_field", "status_field", "checked_field", "id_field")
    @classmethod
    def _plain_identifier(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"{v!r} is not a plain identifier")
        return v


#: The two catalog tables of the production store.
DEFAULT_RECORD_SOURCES: tuple[SourceConfig, ...] = (
    SourceConfig(
        name="short_links",
        url_field="original_url",
        status_field="status",
        checked_field="last_checked",
    ),
    SourceConfig(
        name="resources",
        url_field="url",
        status_field="status",
        checked_field="last_checked_at",
    ),
)


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Keyword arguments (tests).
    2. Actual environment variables.
    3. ``.env`` file in the working directory.
    4. Field defaults.

    ``store_url`` and ``store_key`` have no default: constructing
    :class:`Settings` without them fails, and :meth:`load` turns that failure
    into a :class:`~sharecheck.core.exceptions.ConfigError`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------
    store_url: str = Field(
        ...,
        validation_alias=AliasChoices("store_url", "STORE_URL", "SUPABASE_URL"),
        description="Record store endpoint: https://<project>.supabase.co or sqlite:///path.db",
    )
    store_key: str = Field(
        ...,
        validation_alias=AliasChoices("store_key", "STORE_KEY", "SUPABASE_SERVICE_KEY"),
        description="Service credential sent to the store.",
    )
    store_timeout: float = Field(
        default=15.0,
        gt=0.0,
        description="Per-request timeout for store calls, in seconds.",
    )
    store_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts for a store call (1 initial + retries).",
    )
    record_sources: list[SourceConfig] = Field(
        default_factory=lambda: list(DEFAULT_RECORD_SOURCES),
        description="JSON list of source configs (name + column mapping).",
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        description="Rows fetched per page when reading a source.",
    )

    # ------------------------------------------------------------------
    # Run shape
    # ------------------------------------------------------------------
    run_cap: int = Field(
        default=15000,
        ge=1,
        description="Maximum number of records checked per invocation.",
    )
    wave_size: int = Field(
        default=20,
        ge=1,
        description="Records probed concurrently in one wave.",
    )
    wave_delay: float = Field(
        default=0.5,
        ge=0.0,
        description="Pause between consecutive waves, in seconds.",
    )
    probe_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout applied to every probe request, in seconds.",
    )
    breaker_threshold: int = Field(
        default=10,
        ge=1,
        description="Consecutive inconclusive results that trip a provider.",
    )

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    dry_run: bool = Field(
        default=False,
        description="Probe links but do not write verdicts back.",
    )
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("store_url")
    @classmethod
    def _validate_store_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("store_url must not be blank")
        if not (v.startswith(("http://", "https://")) or v.startswith(_SQLITE_SCHEME)):
            raise ValueError(
                f"store_url must be an http(s) URL or {_SQLITE_SCHEME}<path>, got {v!r}"
            )
        return v.rstrip("/")

    @field_validator("store_key")
    @classmethod
    def _validate_store_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("store_key must not be blank")
        return v

    @field_validator("record_sources")
    @classmethod
    def _validate_record_sources(cls, v: list[SourceConfig]) -> list[SourceConfig]:
        if not v:
            raise ValueError("record_sources must name at least one source")
        names = [s.name for s in v]
        if len(set(names)) != len(names):
            raise ValueError(f"record_sources names must be unique, got {names}")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, **overrides: object) -> Settings:
        """Build settings from the environment, mapping validation failures
        to :class:`~sharecheck.core.exceptions.ConfigError`.

        Args:
            **overrides: Field values that take precedence over the
                environment.

        Raises:
            ConfigError: A required value is missing or a value is invalid.
        """
        try:
            return cls(**overrides)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigError(f"Invalid configuration: {problems}") from exc

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def store_backend(self) -> Literal["rest", "sqlite"]:
        """``"sqlite"`` for ``sqlite:///`` URLs, ``"rest"`` otherwise."""
        return "sqlite" if self.store_url.startswith(_SQLITE_SCHEME) else "rest"

    @property
    def sqlite_path(self) -> Path:
        """Filesystem path of a ``sqlite:///`` store URL.

        Raises:
            ConfigError: If the store is not a SQLite URL.
        """
        if self.store_backend != "sqlite":
            raise ConfigError(f"store_url {self.store_url!r} is not a sqlite:/// URL")
        return Path(self.store_url[len(_SQLITE_SCHEME):])
