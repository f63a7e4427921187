"""Shared fixtures: scripted collaborators and config builders."""

from __future__ import annotations

import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Iterable

import pytest

from listing_harvester.config import (
    ConfigLocator,
    ConfigRepository,
    IdentityRule,
    JobConfig,
    SourceConfig,
)
from listing_harvester.domain import CandidateRef, Identity, JobRunSnapshot, Record
from listing_harvester.engine import IdentityResolver
from listing_harvester.errors import ExtractionError, StoreError

EXAMPLE_RULE = IdentityRule(
    source="example",
    hosts=["example.com"],
    patterns=[r"/item/(\d+)"],
)


def item_url(item_id: int | str) -> str:
    return f"https://example.com/item/{item_id}"


class ScriptedRevealer:
    """Returns one scripted snapshot per call; the last one repeats forever."""

    def __init__(self, snapshots: Iterable[Iterable[CandidateRef]]) -> None:
        self.snapshots = [list(snapshot) for snapshot in snapshots]
        self.snapshot_calls = 0
        self.advance_calls = 0
        self.closed = False

    def snapshot(self) -> list[CandidateRef]:
        if not self.snapshots:
            return []
        index = min(self.snapshot_calls, len(self.snapshots) - 1)
        self.snapshot_calls += 1
        return list(self.snapshots[index])

    def advance(self) -> None:
        self.advance_calls += 1

    def close(self) -> None:
        self.closed = True


class FakeExtractor:
    """Extractor whose outcome per ref is configurable.

    ``fail`` holds refs that raise; ``fail_once`` holds refs that raise on the
    first call only. When ``gate`` is set, each call blocks until the event is
    set, and ``entered`` is set as soon as a call starts.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        fail: Iterable[CandidateRef] = (),
        fail_once: Iterable[CandidateRef] = (),
        gate: threading.Event | None = None,
    ) -> None:
        self.resolver = resolver
        self.fail = set(fail)
        self.fail_once = set(fail_once)
        self.gate = gate
        self.entered = threading.Event()
        self.calls: list[CandidateRef] = []
        self._lock = threading.Lock()

    def extract_item(self, ref: CandidateRef) -> Record:
        with self._lock:
            self.calls.append(ref)
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if ref in self.fail:
            raise ExtractionError(ref, "scripted_failure")
        if ref in self.fail_once:
            self.fail_once.discard(ref)
            raise ExtractionError(ref, "transient_failure")
        identity = self.resolver.resolve(ref)
        assert identity is not None
        return Record(identity=identity, url=ref, data={"title": f"Item {identity.external_id}"})


class MemoryStore:
    """In-memory store; ``fail_lookups`` makes ``exists`` raise."""

    def __init__(self, known: Iterable[Identity] = (), fail_lookups: bool = False) -> None:
        self.records: dict[Identity, Record | None] = {identity: None for identity in known}
        self.fail_lookups = fail_lookups
        self.fail_upserts: set[CandidateRef] = set()
        self.upserts: list[Record] = []

    def exists(self, identity: Identity) -> bool:
        if self.fail_lookups:
            raise StoreError("lookup unavailable")
        return identity in self.records

    def upsert(self, record: Record) -> None:
        if record.url in self.fail_upserts:
            raise StoreError("disk full")
        self.records[record.identity] = record
        self.upserts.append(record)


class CollectingSink:
    def __init__(self) -> None:
        self.snapshots: list[JobRunSnapshot] = []
        self._lock = threading.Lock()

    def on_snapshot(self, snapshot: JobRunSnapshot) -> None:
        with self._lock:
            self.snapshots.append(snapshot)

    @property
    def states(self) -> list[str]:
        return [snapshot.state.value for snapshot in self.snapshots]


@pytest.fixture
def resolver() -> IdentityResolver:
    return IdentityResolver([EXAMPLE_RULE])


@pytest.fixture
def fast_job() -> Callable[..., JobConfig]:
    def _builder(**overrides: Any) -> JobConfig:
        base: dict[str, Any] = {
            "inter_item_delay": 0.0,
            "discovery_stability_threshold": 2,
            "max_discovery_rounds": 10,
            "settle_delay": 0.0,
        }
        base.update(overrides)
        return JobConfig(**base)

    return _builder


@pytest.fixture
def sample_source_config() -> Callable[..., SourceConfig]:
    def _builder(**overrides: Any) -> SourceConfig:
        base: dict[str, Any] = {
            "source_name": "Example",
            "catalog_url": "https://example.com/catalog",
            "entry_pattern": "a.item",
            "link_pattern": r"/item/\d+",
            "detail_pattern": {"title": "h1", "price": ["span.price", "div.price"]},
            "identity_rules": [EXAMPLE_RULE],
            "job": {"inter_item_delay": 0.0, "settle_delay": 0.0, "discovery_stability_threshold": 1},
            "fetch": {"retry_attempts": 1, "retry_interval": 0.0},
        }
        base.update(overrides)
        return SourceConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("LISTING_HARVESTER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


@pytest.fixture
def fakes() -> SimpleNamespace:
    return SimpleNamespace(
        Revealer=ScriptedRevealer,
        Extractor=FakeExtractor,
        Store=MemoryStore,
        Sink=CollectingSink,
        item_url=item_url,
        rule=EXAMPLE_RULE,
    )
