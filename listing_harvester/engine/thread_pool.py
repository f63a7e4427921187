"""Thread pool abstraction giving every catalog source its own job worker."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Dict


class ThreadPoolManager:
    """Manage per-source job executors.

    Executors default to a single worker so that one source is never crawled
    by two jobs at the same time.
    """

    def __init__(self, default_workers: int = 1) -> None:
        self.default_workers = default_workers
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, source_name: str, max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            if source_name not in self._executors:
                workers = max_workers or self.default_workers
                self._executors[source_name] = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix=f"harvester-{source_name}"
                )
            return self._executors[source_name]

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            for executor in self._executors.values():
                executor.shutdown(wait=wait)
            self._executors.clear()


__all__ = ["ThreadPoolManager"]
