"""Pydantic models used across listing-harvester configuration flow."""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RevealMode(str, Enum):
    """How more catalog items are revealed during discovery."""

    PAGES = "pages"
    BROWSER = "browser"


class JobConfig(BaseModel):
    """Immutable pacing and bounding parameters of one bulk-crawl job."""

    model_config = ConfigDict(frozen=True)

    inter_item_delay: float = Field(default=3.0, ge=0, description="Seconds slept between items.")
    discovery_stability_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive rounds without new candidates before discovery stops.",
    )
    max_discovery_rounds: int = Field(default=50, ge=0)
    max_items: int | None = Field(default=None, ge=1)
    settle_delay: float = Field(default=2.0, ge=0, description="Seconds waited after each reveal.")


class IdentityRule(BaseModel):
    """Map URLs of one site to ``(source, external_id)`` identities."""

    source: str
    hosts: list[str] = Field(default_factory=list)
    patterns: list[str]

    @field_validator("source")
    @classmethod
    def _non_empty_source(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Identity rule source cannot be empty")
        return value

    @field_validator("hosts", mode="before")
    @classmethod
    def _coerce_hosts(cls, value: Any) -> list[str]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            value = [value]
        return [str(host).strip().lower().lstrip(".") for host in value if str(host).strip()]

    @field_validator("patterns")
    @classmethod
    def _validate_patterns(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("Identity rule requires at least one pattern")
        for pattern in value:
            try:
                compiled = re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid identity pattern {pattern!r}: {exc}") from exc
            if compiled.groups < 1:
                raise ValueError(f"Identity pattern must capture the id in a group: {pattern!r}")
        return value


DEFAULT_IDENTITY_RULES: tuple[IdentityRule, ...] = (
    IdentityRule(
        source="avito",
        hosts=["avito.ru"],
        patterns=[
            r"/kvartiry/.*_(\d+)(?:[?#]|$)",
            r"_(\d+)(?:[?#]|$)",
            r"/(\d{8,})(?:[?#]|$)",
        ],
    ),
    IdentityRule(
        source="cian",
        hosts=["cian.ru"],
        patterns=[r"/flat/(\d+)(?:/|[?#]|$)"],
    ),
)


class RevealConfig(BaseModel):
    """Catalog reveal settings.

    ``pages`` mode requests ``catalog_url`` with ``page_param`` incremented on
    every advance; ``browser`` mode keeps one headless page open and scrolls it.
    """

    mode: RevealMode = RevealMode.PAGES
    page_param: str = "p"
    first_page: int = 1
    wait_selector: str | None = None
    scroll_pause_ms: int = 1500
    headless: bool = True
    navigation_timeout: int = 30000

    @model_validator(mode="after")
    def _validate_non_negative(self) -> "RevealConfig":
        if self.first_page < 0:
            raise ValueError("first_page must be >= 0")
        if self.scroll_pause_ms < 0:
            raise ValueError("scroll_pause_ms must be >= 0")
        if self.navigation_timeout <= 0:
            raise ValueError("navigation_timeout must be > 0")
        if not self.page_param:
            raise ValueError("page_param cannot be empty")
        return self


class FetchConfig(BaseModel):
    """HTTP settings for catalog and item requests."""

    timeout: float = 20.0
    retry_attempts: int = 3
    retry_interval: float = 2.0
    user_agent: str | None = None
    extra_headers: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "FetchConfig":
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        if self.retry_interval < 0:
            raise ValueError("retry_interval must be >= 0")
        return self


class SourceConfig(BaseModel):
    """Full definition of a catalog source to harvest."""

    source_name: str
    catalog_url: str
    entry_pattern: str
    link_pattern: str | None = Field(
        default=None,
        description="Regex an entry link must match to count as an item reference.",
    )
    detail_pattern: dict[str, str | list[str]] = Field(default_factory=dict)
    required_fields: list[str] = Field(default_factory=lambda: ["title"])
    identity_rules: list[IdentityRule] = Field(default_factory=list)
    job: JobConfig = Field(default_factory=JobConfig)
    reveal: RevealConfig = Field(default_factory=RevealConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)

    @field_validator("catalog_url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("catalog_url must be an absolute http(s) URL")
        return value

    @field_validator("link_pattern")
    @classmethod
    def _validate_link_pattern(cls, value: str | None) -> str | None:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"Invalid link_pattern: {exc}") from exc
        return value or None

    @model_validator(mode="after")
    def _validate_patterns(self) -> "SourceConfig":
        if not self.source_name.strip():
            raise ValueError("source_name cannot be empty")
        if not self.entry_pattern:
            raise ValueError("entry_pattern cannot be empty")
        return self


class GlobalConfig(BaseModel):
    """Global controls shared across sources."""

    identity_rules: list[IdentityRule] = Field(
        default_factory=lambda: [rule.model_copy() for rule in DEFAULT_IDENTITY_RULES]
    )
    enable_progress_bar: bool = True
    max_url_display_length: int = 60
    refresh_after_days: int = Field(
        default=7, ge=1, le=365, description="Stored listings older than this are re-extracted by refresh."
    )
    store_path: Path = Field(default=Path("data/store/listings.db"))

    @field_validator("store_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_store_path(self, base_dir: Path) -> Path:
        """Return the listing store path relative to the project root."""

        if not self.store_path.is_absolute():
            return (base_dir / self.store_path).resolve()
        return self.store_path


__all__ = [
    "DEFAULT_IDENTITY_RULES",
    "FetchConfig",
    "GlobalConfig",
    "IdentityRule",
    "JobConfig",
    "RevealConfig",
    "RevealMode",
    "SourceConfig",
]
