"""Drive a revealer until its candidate set stops growing."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

import structlog

from ..config import JobConfig
from ..domain import CandidateRef, Revealer

# Waits up to the given seconds; returns True when the job was stopped meanwhile.
Sleeper = Callable[[float], bool]
RoundCallback = Callable[[int, int, int], None]


def _plain_sleep(seconds: float) -> bool:
    if seconds > 0:
        time.sleep(seconds)
    return False


@dataclass(slots=True)
class DiscoveryResult:
    """Outcome of one discovery phase."""

    candidates: list[CandidateRef] = field(default_factory=list)
    rounds: int = 0
    converged: bool = False
    stopped: bool = False

    @property
    def empty(self) -> bool:
        return not self.candidates


class DiscoveryEngine:
    """Accumulate revealer snapshots until stable or until the round cap.

    Each round takes a snapshot and merges it into ``seen``. A round that adds
    nothing increments the stability counter, a round that adds anything resets
    it. Discovery ends when the counter reaches
    ``discovery_stability_threshold`` (converged) or when ``max_discovery_rounds``
    reveals were requested (bounded exit). Neither exit is an error.
    """

    def __init__(
        self,
        revealer: Revealer,
        config: JobConfig,
        *,
        sleep: Sleeper | None = None,
        should_stop: Callable[[], bool] | None = None,
        on_round: RoundCallback | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.revealer = revealer
        self.config = config
        self._sleep = sleep or _plain_sleep
        self._should_stop = should_stop or (lambda: False)
        self._on_round = on_round
        self.logger = logger or structlog.get_logger("listing_harvester.discovery")

    def run(self) -> DiscoveryResult:
        seen: dict[CandidateRef, None] = {}
        stable_rounds = 0
        round_no = 0
        result = DiscoveryResult()

        while True:
            if self._should_stop():
                result.stopped = True
                break

            newly = [ref for ref in self._snapshot() if ref not in seen]
            for ref in newly:
                seen[ref] = None
            if newly:
                stable_rounds = 0
            else:
                stable_rounds += 1
            self.logger.debug(
                "discovery_round",
                round=round_no,
                new=len(newly),
                total=len(seen),
                stable_rounds=stable_rounds,
            )
            if self._on_round is not None:
                self._on_round(round_no, len(seen), len(newly))

            if stable_rounds >= self.config.discovery_stability_threshold:
                result.converged = True
                break
            if round_no >= self.config.max_discovery_rounds:
                self.logger.info("discovery_round_cap", rounds=round_no, total=len(seen))
                break

            self._advance()
            if self._sleep(self.config.settle_delay):
                result.stopped = True
                break
            round_no += 1

        result.candidates = list(seen)
        result.rounds = round_no
        self.logger.info(
            "discovery_finished",
            candidates=len(result.candidates),
            rounds=result.rounds,
            converged=result.converged,
            stopped=result.stopped,
        )
        return result

    def _snapshot(self) -> list[CandidateRef]:
        try:
            refs = list(self.revealer.snapshot())
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("reveal_snapshot_failed", error=str(exc))
            return []
        # de-duplicate inside one snapshot while keeping page order
        return list(dict.fromkeys(ref for ref in refs if ref))

    def _advance(self) -> None:
        try:
            self.revealer.advance()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("reveal_advance_failed", error=str(exc))


__all__ = ["DiscoveryEngine", "DiscoveryResult", "Sleeper"]
