"""Service wiring configured sources into job orchestrators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from .config import ConfigRepository, GlobalConfig, JobConfig, RevealMode, SourceConfig
from .domain import CandidateRef, JobRunSnapshot, JobState, ProgressSink, Record, Revealer
from .engine import (
    BrowserRevealer,
    Fetcher,
    HttpExtractor,
    IdentityResolver,
    PagedRevealer,
    Parser,
    ThreadPoolManager,
)
from .infra import SQLiteListingStore, SQLiteManager
from .logging_conf import configure_logging, source_logger
from .orchestrator import JobOrchestrator
from .ui import LoggingProgressSink


@dataclass(slots=True)
class HarvestJob:
    """An orchestrator plus the resources it borrowed for one source."""

    source: SourceConfig
    orchestrator: JobOrchestrator
    fetcher: Fetcher

    def close(self) -> None:
        self.fetcher.close()


class Harvester:
    """Central coordinator building and running jobs for configured sources."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        thread_pool: ThreadPoolManager,
        storage: SQLiteManager,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.thread_pool = thread_pool
        self.storage = storage
        self.logger = configure_logging().bind(component="harvester")
        self._store: SQLiteListingStore | None = None

    @property
    def store(self) -> SQLiteListingStore:
        if self._store is None:
            self._store = SQLiteListingStore(self.storage, self.config_repository.store_path())
        return self._store

    def resolver_for(self, source: SourceConfig) -> IdentityResolver:
        # source-specific rules take precedence over the global ones
        return IdentityResolver([*source.identity_rules, *self.global_config.identity_rules])

    def build_job(self, source: SourceConfig, progress: ProgressSink | None = None) -> HarvestJob:
        log = source_logger(source.source_name)
        fetcher = Fetcher(source.fetch, logger=log)
        parser = Parser()
        resolver = self.resolver_for(source)
        revealer: Revealer
        if source.reveal.mode is RevealMode.BROWSER:
            revealer = BrowserRevealer(source, parser, logger=log)
        else:
            revealer = PagedRevealer(source, fetcher, parser, logger=log)
        extractor = HttpExtractor(source, fetcher, parser, resolver, logger=log)
        orchestrator = JobOrchestrator(
            source.source_name,
            revealer,
            extractor,
            self.store,
            resolver,
            progress or LoggingProgressSink(log),
            executor=self.thread_pool.get(source.source_name, max_workers=1),
            logger=log,
        )
        return HarvestJob(source=source, orchestrator=orchestrator, fetcher=fetcher)

    def run_source(
        self,
        source_name: str,
        progress: ProgressSink | None = None,
        max_items: int | None = None,
        retry_passes: int = 0,
    ) -> JobRunSnapshot:
        """Run one job to its end, then up to ``retry_passes`` retry passes.

        Ctrl+C while waiting stops the job at the next item boundary and the
        stopped snapshot is returned.
        """

        source = self.config_repository.load_source(source_name)
        config = self._job_config(source, max_items)
        return self._drive(source, progress, retry_passes, lambda job: job.start(config))

    def refresh_source(
        self,
        source_name: str,
        older_than_days: int | None = None,
        progress: ProgressSink | None = None,
        max_items: int | None = None,
        retry_passes: int = 0,
    ) -> JobRunSnapshot:
        """Re-extract stored listings not updated for ``older_than_days`` days.

        Defaults to ``GlobalConfig.refresh_after_days``. Oldest listings go
        first; a successful extraction rewrites the record and its update time.
        """

        source = self.config_repository.load_source(source_name)
        config = self._job_config(source, max_items)
        days = older_than_days
        if days is None:
            days = self.global_config.refresh_after_days
        refs = self.stale_refs(source, days)
        self.logger.info(
            "refresh_selected", source=source.source_name, items=len(refs), older_than_days=days
        )
        return self._drive(source, progress, retry_passes, lambda job: job.refresh(config, refs))

    def stale_refs(self, source: SourceConfig, older_than_days: int) -> list[CandidateRef]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        return [record.url for record in self.store.stale(self.store_source(source), cutoff)]

    @staticmethod
    def _job_config(source: SourceConfig, max_items: int | None) -> JobConfig:
        if max_items is None:
            return source.job
        return source.job.model_copy(update={"max_items": max_items})

    def _drive(
        self,
        source: SourceConfig,
        progress: ProgressSink | None,
        retry_passes: int,
        begin: Callable[[JobOrchestrator], None],
    ) -> JobRunSnapshot:
        job = self.build_job(source, progress)
        orchestrator = job.orchestrator
        try:
            begin(orchestrator)
            snapshot = self._wait(orchestrator)
            passes = 0
            while (
                snapshot.state is JobState.COMPLETED
                and snapshot.failure_queue
                and passes < retry_passes
            ):
                passes += 1
                orchestrator.retry_failed()
                snapshot = self._wait(orchestrator)
            self.logger.info(
                "source_finished",
                source=source.source_name,
                state=snapshot.state.value,
                retry_passes=passes,
                **snapshot.summary(),
            )
            return snapshot
        finally:
            job.close()

    def _wait(self, orchestrator: JobOrchestrator) -> JobRunSnapshot:
        try:
            return orchestrator.wait()
        except KeyboardInterrupt:
            self.logger.warning("interrupted_stopping_job", source=orchestrator.source_name)
            orchestrator.stop()
            return orchestrator.wait()

    def store_source(self, source: SourceConfig) -> str:
        """Return the identity source under which ``source``'s records are stored."""

        return self.resolver_for(source).source_for(source.catalog_url) or source.source_name

    def view_history(self, source_name: str, limit: int = 20) -> list[Record]:
        source = self.config_repository.load_source(source_name)
        return self.store.recent(self.store_source(source), limit=limit)

    def reset_history(self, source_name: str) -> int:
        source = self.config_repository.load_source(source_name)
        removed = self.store.delete_source(self.store_source(source))
        self.logger.info("history_reset", source=source.source_name, removed=removed)
        return removed


__all__ = ["HarvestJob", "Harvester"]
