"""Core data model and collaborator contracts of a bulk-crawl job."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol

# A candidate reference is the absolute URL of one catalog item.
CandidateRef = str


@dataclass(frozen=True, slots=True)
class Identity:
    """Stable store key of an item: originating source plus its external id."""

    source: str
    external_id: str

    def __str__(self) -> str:
        return f"{self.source}:{self.external_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Record:
    """Extracted payload of one item page."""

    identity: Identity
    url: str
    data: Mapping[str, Any] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=_utcnow)

    def as_row(self) -> dict[str, Any]:
        return {
            "source": self.identity.source,
            "external_id": self.identity.external_id,
            "url": self.url,
            "fetched_at": self.fetched_at.isoformat(timespec="seconds"),
            **dict(self.data),
        }


class JobState(str, Enum):
    """Lifecycle states of a job."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"

    @property
    def is_active(self) -> bool:
        return self in (JobState.DISCOVERING, JobState.PROCESSING, JobState.PAUSED)

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.STOPPED)


@dataclass(frozen=True, slots=True)
class JobRunSnapshot:
    """Immutable view of a job run handed to progress sinks and callers."""

    source_name: str
    state: JobState
    discovered_count: int = 0
    skipped_count: int = 0
    unresolved_count: int = 0
    total_to_process: int = 0
    processed_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    failure_queue: tuple[CandidateRef, ...] = ()
    succeeded: tuple[Record, ...] = ()
    discovery_rounds: int = 0
    discovery_converged: bool | None = None
    retry_pass: int = 0
    max_items: int | None = None
    current_ref: CandidateRef | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def planned_total(self) -> int:
        """Items this job will process at most: ``total_to_process`` capped by ``max_items``."""

        if self.max_items is None:
            return self.total_to_process
        return min(self.total_to_process, self.max_items)

    def summary(self) -> dict[str, int]:
        return {
            "discovered": self.discovered_count,
            "skipped": self.skipped_count,
            "unresolved": self.unresolved_count,
            "processed": self.processed_count,
            "success": self.succeeded_count,
            "failed": self.failed_count,
        }


@dataclass(slots=True)
class JobRun:
    """Mutable counters of one job; the orchestrator writes them under its lock."""

    discovered_count: int = 0
    skipped_count: int = 0
    unresolved_count: int = 0
    total_to_process: int = 0
    processed_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    # dict preserves insertion order and gives set semantics over refs
    failure_queue: dict[CandidateRef, None] = field(default_factory=dict)
    succeeded: list[Record] = field(default_factory=list)
    discovery_rounds: int = 0
    discovery_converged: bool | None = None
    retry_pass: int = 0
    max_items: int | None = None
    current_ref: CandidateRef | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def record_success(self, ref: CandidateRef, record: Record) -> None:
        self.failure_queue.pop(ref, None)
        self.succeeded.append(record)
        self.succeeded_count += 1
        self.processed_count += 1

    def record_failure(self, ref: CandidateRef) -> None:
        self.failure_queue[ref] = None
        self.failed_count += 1
        self.processed_count += 1

    def take_failures(self) -> list[CandidateRef]:
        """Detach the failure queue for a retry pass; its refs count as unprocessed again."""

        refs = list(self.failure_queue)
        self.failure_queue = {}
        self.processed_count -= self.failed_count
        self.failed_count = 0
        return refs

    def freeze(self, source_name: str, state: JobState) -> JobRunSnapshot:
        return JobRunSnapshot(
            source_name=source_name,
            state=state,
            discovered_count=self.discovered_count,
            skipped_count=self.skipped_count,
            unresolved_count=self.unresolved_count,
            total_to_process=self.total_to_process,
            processed_count=self.processed_count,
            succeeded_count=self.succeeded_count,
            failed_count=self.failed_count,
            failure_queue=tuple(self.failure_queue),
            succeeded=tuple(self.succeeded),
            discovery_rounds=self.discovery_rounds,
            discovery_converged=self.discovery_converged,
            retry_pass=self.retry_pass,
            max_items=self.max_items,
            current_ref=self.current_ref,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


class Revealer(Protocol):
    """Exposes progressively more candidate references of a catalog view."""

    def snapshot(self) -> Iterable[CandidateRef]:
        """Return the references visible right now, in page order."""

    def advance(self) -> None:
        """Ask the source to reveal more items; may be a no-op when exhausted."""


class Extractor(Protocol):
    """Fetches one item and maps it to a record, raising on failure."""

    def extract_item(self, ref: CandidateRef) -> Record:
        """Return the record for ``ref``."""


class Store(Protocol):
    """Durable record storage keyed by identity."""

    def exists(self, identity: Identity) -> bool:
        """Return whether a record with ``identity`` is already stored."""

    def upsert(self, record: Record) -> None:
        """Insert or replace ``record``."""


class ProgressSink(Protocol):
    """Receives job snapshots; must return promptly."""

    def on_snapshot(self, snapshot: JobRunSnapshot) -> None:
        """Observe a new snapshot."""


__all__ = [
    "CandidateRef",
    "Extractor",
    "Identity",
    "JobRun",
    "JobRunSnapshot",
    "JobState",
    "ProgressSink",
    "Record",
    "Revealer",
    "Store",
]
