from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from listing_harvester.config import (
    DEFAULT_IDENTITY_RULES,
    FetchConfig,
    GlobalConfig,
    IdentityRule,
    JobConfig,
    RevealConfig,
    RevealMode,
    SourceConfig,
)


def test_job_config_defaults_and_immutability() -> None:
    config = JobConfig()
    assert config.inter_item_delay == 3.0
    assert config.discovery_stability_threshold == 5
    assert config.max_discovery_rounds == 50
    assert config.max_items is None
    with pytest.raises(ValidationError):
        config.inter_item_delay = 1.0  # type: ignore[misc]


@pytest.mark.parametrize(
    "overrides",
    [
        {"inter_item_delay": -1},
        {"discovery_stability_threshold": 0},
        {"max_discovery_rounds": -1},
        {"max_items": 0},
        {"settle_delay": -0.1},
    ],
)
def test_job_config_rejects_out_of_range_values(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        JobConfig(**overrides)


def test_identity_rule_normalises_hosts() -> None:
    rule = IdentityRule(source=" avito ", hosts=".Avito.RU", patterns=[r"_(\d+)$"])
    assert rule.source == "avito"
    assert rule.hosts == ["avito.ru"]


@pytest.mark.parametrize(
    "patterns",
    [[], [r"/flat/\d+"], [r"/flat/(\d+"]],
)
def test_identity_rule_requires_capturing_valid_patterns(patterns: list[str]) -> None:
    with pytest.raises(ValidationError):
        IdentityRule(source="cian", patterns=patterns)


def test_default_identity_rules_cover_known_sites() -> None:
    assert [rule.source for rule in DEFAULT_IDENTITY_RULES] == ["avito", "cian"]
    assert GlobalConfig().identity_rules == list(DEFAULT_IDENTITY_RULES)


def test_source_config_validation(sample_source_config) -> None:
    source = sample_source_config()
    assert source.reveal.mode is RevealMode.PAGES
    assert source.required_fields == ["title"]

    with pytest.raises(ValidationError):
        sample_source_config(catalog_url="example.com/catalog")
    with pytest.raises(ValidationError):
        sample_source_config(link_pattern="(unclosed")
    with pytest.raises(ValidationError):
        sample_source_config(entry_pattern="")
    with pytest.raises(ValidationError):
        sample_source_config(source_name="   ")


def test_reveal_and_fetch_bounds() -> None:
    with pytest.raises(ValidationError):
        RevealConfig(scroll_pause_ms=-1)
    with pytest.raises(ValidationError):
        RevealConfig(page_param="")
    with pytest.raises(ValidationError):
        FetchConfig(retry_attempts=0)
    with pytest.raises(ValidationError):
        FetchConfig(timeout=0)


def test_global_config_resolves_store_path(tmp_path: Path) -> None:
    config = GlobalConfig(store_path="data/store/custom.db")
    assert config.resolved_store_path(tmp_path) == (tmp_path / "data/store/custom.db").resolve()
    absolute = tmp_path / "elsewhere.db"
    assert GlobalConfig(store_path=absolute).resolved_store_path(Path("/unused")) == absolute


def test_refresh_after_days_bounds() -> None:
    assert GlobalConfig().refresh_after_days == 7
    assert GlobalConfig(refresh_after_days=365).refresh_after_days == 365
    for value in (0, 366):
        with pytest.raises(ValidationError):
            GlobalConfig(refresh_after_days=value)
