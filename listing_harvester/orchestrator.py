"""Bulk-crawl job state machine: discover, deduplicate, then extract item by item."""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timezone
from threading import Condition, RLock
from typing import Sequence

import structlog

from .config import JobConfig
from .domain import (
    CandidateRef,
    Extractor,
    JobRun,
    JobRunSnapshot,
    JobState,
    ProgressSink,
    Record,
    Revealer,
    Store,
)
from .engine import DeduplicationStage, DiscoveryEngine, IdentityResolver
from .errors import AlreadyRunningError, InvalidStateError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _NullSink:
    def on_snapshot(self, snapshot: JobRunSnapshot) -> None:
        return


class JobOrchestrator:
    """Own one job's state and drive it on a single worker thread.

    ``start``, ``refresh`` and ``retry_failed`` return as soon as the work is
    scheduled.
    ``pause`` and ``stop`` are cooperative: an item already handed to the
    extractor always runs to completion, and the request takes effect at the
    next item boundary. ``stop`` also interrupts the discovery settle delay,
    the inter-item delay and a paused wait.
    """

    def __init__(
        self,
        source_name: str,
        revealer: Revealer,
        extractor: Extractor,
        store: Store,
        resolver: IdentityResolver,
        progress: ProgressSink | None = None,
        *,
        executor: Executor | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.source_name = source_name
        self.revealer = revealer
        self.extractor = extractor
        self.store = store
        self.resolver = resolver
        self.progress: ProgressSink = progress or _NullSink()
        self.logger = logger or structlog.get_logger("listing_harvester.orchestrator").bind(
            source=source_name
        )
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"harvester-{source_name}"
        )
        self._cond = Condition()
        # reentrant: a sink may call start or retry_failed from inside on_snapshot
        self._emit_lock = RLock()
        self._state = JobState.IDLE
        self._run = JobRun()
        self._config: JobConfig | None = None
        self._stop_requested = False
        # cleared by _begin/retry_failed, set again when _finish publishes the end state
        self._worker_idle = True
        self._future: Future | None = None

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------
    def start(self, config: JobConfig) -> None:
        self._begin(config, JobRun(), JobState.DISCOVERING)
        self.logger.info("job_started", **config.model_dump())
        self._emit()
        self._future = self._executor.submit(self._run_job, config)

    def refresh(self, config: JobConfig, refs: Sequence[CandidateRef]) -> None:
        """Re-extract already stored items; discovery and deduplication are skipped.

        ``refs`` count as discovered and as items to process. An empty list
        completes the job without touching the extractor.
        """

        refs = list(refs)
        run = JobRun(discovered_count=len(refs), total_to_process=len(refs))
        self._begin(config, run, JobState.PROCESSING)
        self.logger.info("refresh_started", items=len(refs), **config.model_dump())
        self._emit()
        if config.max_items is not None:
            refs = refs[: config.max_items]
        self._future = self._executor.submit(self._run_items, refs, config)

    def pause(self) -> None:
        with self._cond:
            if self._state is not JobState.PROCESSING:
                self.logger.debug("pause_ignored", state=self._state.value)
                return
            self._state = JobState.PAUSED
        self.logger.info("job_paused")
        self._emit()

    def resume(self) -> None:
        with self._cond:
            if self._state is not JobState.PAUSED:
                raise InvalidStateError("resume", self._state)
            self._state = JobState.PROCESSING
            self._cond.notify_all()
        self.logger.info("job_resumed")
        self._emit()

    def stop(self) -> None:
        with self._cond:
            if not self._state.is_active:
                return
            self._stop_requested = True
            self._state = JobState.STOPPED
            self._cond.notify_all()
        self.logger.info("job_stopped")
        self._emit()

    def retry_failed(self) -> None:
        with self._cond:
            if self._state is not JobState.COMPLETED or not self._worker_idle:
                raise InvalidStateError("retry failed items", self._state)
            config = self._config
            refs = self._run.take_failures()
            if config is None or not refs:
                self.logger.info("retry_nothing_to_do")
                return
            self._run.retry_pass += 1
            self._run.finished_at = None
            self._stop_requested = False
            self._state = JobState.PROCESSING
            self._worker_idle = False
            retry_pass = self._run.retry_pass
        self.logger.info("retry_started", items=len(refs), retry_pass=retry_pass)
        self._emit()
        self._future = self._executor.submit(self._run_items, refs, config)

    def current_state(self) -> JobState:
        with self._cond:
            return self._state

    def current_run(self) -> JobRunSnapshot:
        with self._cond:
            return self._run.freeze(self.source_name, self._state)

    def wait(self, timeout: float | None = None) -> JobRunSnapshot:
        """Block until the scheduled work finishes and return the final snapshot."""

        future = self._future
        if future is not None:
            future.result(timeout=timeout)
        return self.current_run()

    def close(self) -> None:
        self.stop()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def _begin(self, config: JobConfig, run: JobRun, state: JobState) -> None:
        with self._cond:
            if self._state.is_active or not self._worker_idle:
                raise AlreadyRunningError(self._state)
            run.started_at = _utcnow()
            run.max_items = config.max_items
            self._config = config
            self._run = run
            self._stop_requested = False
            self._state = state
            self._worker_idle = False

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _run_job(self, config: JobConfig) -> None:
        try:
            engine = DiscoveryEngine(
                self.revealer,
                config,
                sleep=self._wait_for_stop,
                should_stop=self._stopping,
                on_round=self._on_discovery_round,
                logger=self.logger,
            )
            try:
                discovery = engine.run()
            finally:
                self._close_revealer()
            with self._cond:
                self._run.discovery_rounds = discovery.rounds
                self._run.discovery_converged = discovery.converged
            if self._stopping():
                return

            partition = DeduplicationStage(self.resolver, self.store, self.logger).partition(
                discovery.candidates
            )
            with self._cond:
                if self._stop_requested:
                    return
                self._run.discovered_count = partition.discovered
                self._run.skipped_count = partition.skipped
                self._run.unresolved_count = partition.unresolved
                self._run.total_to_process = len(partition.new_items)
                if partition.new_items:
                    self._state = JobState.PROCESSING
            if not partition.new_items:
                self.logger.info("job_nothing_to_do", discovered=partition.discovered)
                return
            self._emit(from_worker=True)

            items = partition.new_items
            if config.max_items is not None:
                items = items[: config.max_items]
            self._process(items, config.inter_item_delay)
        except Exception as exc:  # noqa: BLE001
            self._crashed(exc)
        finally:
            self._finish()

    def _run_items(self, refs: list[CandidateRef], config: JobConfig) -> None:
        try:
            self._process(refs, config.inter_item_delay)
        except Exception as exc:  # noqa: BLE001
            self._crashed(exc)
        finally:
            self._finish()

    def _crashed(self, exc: Exception) -> None:
        self.logger.exception("job_crashed", error=str(exc))
        with self._cond:
            self._stop_requested = True
            self._state = JobState.STOPPED
            self._cond.notify_all()

    def _process(self, items: list[CandidateRef], delay: float) -> None:
        last_index = len(items) - 1
        for index, ref in enumerate(items):
            if not self._checkpoint():
                self.logger.info("processing_interrupted", remaining=len(items) - index)
                break
            with self._cond:
                self._run.current_ref = ref

            record = self._process_item(ref)

            with self._cond:
                if record is not None:
                    self._run.record_success(ref, record)
                else:
                    self._run.record_failure(ref)
                stopping = self._stop_requested
            self._emit(from_worker=True)

            if index < last_index and not stopping:
                if self._wait_for_stop(delay):
                    break

    def _process_item(self, ref: CandidateRef) -> Record | None:
        try:
            record = self.extractor.extract_item(ref)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("item_failed", url=ref, stage="extract", error=str(exc))
            return None
        try:
            self.store.upsert(record)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("item_failed", url=ref, stage="store", error=str(exc))
            return None
        self.logger.info("item_succeeded", url=ref, identity=str(record.identity))
        return record

    def _finish(self) -> None:
        with self._cond:
            self._run.finished_at = _utcnow()
            self._run.current_ref = None
            if self._state.is_active:
                self._state = JobState.COMPLETED
            self._worker_idle = True
            snapshot = self._run.freeze(self.source_name, self._state)
        self.logger.info("job_finished", state=snapshot.state.value, **snapshot.summary())
        self._emit(from_worker=True)

    # ------------------------------------------------------------------
    # Suspension points
    # ------------------------------------------------------------------
    def _checkpoint(self) -> bool:
        """Block while paused; return False once a stop was requested."""

        with self._cond:
            while self._state is JobState.PAUSED and not self._stop_requested:
                self._cond.wait()
            return not self._stop_requested

    def _wait_for_stop(self, seconds: float) -> bool:
        with self._cond:
            if seconds > 0 and not self._stop_requested:
                self._cond.wait_for(lambda: self._stop_requested, timeout=seconds)
            return self._stop_requested

    def _stopping(self) -> bool:
        with self._cond:
            return self._stop_requested

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------
    def _on_discovery_round(self, round_no: int, total: int, new: int) -> None:
        with self._cond:
            self._run.discovery_rounds = round_no
            self._run.discovered_count = total
        self._emit(from_worker=True)

    def _emit(self, from_worker: bool = False) -> None:
        # Worker snapshots stop once the job is stopped: the stop itself emitted the last one.
        with self._emit_lock:
            with self._cond:
                if from_worker and self._stop_requested:
                    return
                snapshot = self._run.freeze(self.source_name, self._state)
            try:
                self.progress.on_snapshot(snapshot)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("progress_sink_failed", error=str(exc))

    def _close_revealer(self) -> None:
        close = getattr(self.revealer, "close", None)
        if callable(close):
            try:
                close()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("revealer_close_failed", error=str(exc))


__all__ = ["JobOrchestrator"]
