from __future__ import annotations

from listing_harvester.config import JobConfig
from listing_harvester.engine import DiscoveryEngine


def _config(**overrides) -> JobConfig:
    base = {"discovery_stability_threshold": 2, "max_discovery_rounds": 50, "settle_delay": 0.0}
    base.update(overrides)
    return JobConfig(**base)


def test_discovery_converges_once_snapshots_stop_growing(fakes) -> None:
    revealer = fakes.Revealer([["a"], ["a", "b"], ["a", "b"], ["a", "b"]])
    result = DiscoveryEngine(revealer, _config()).run()

    assert set(result.candidates) == {"a", "b"}
    assert result.converged is True
    assert result.stopped is False
    # two stable rounds after "b" appeared in round 1
    assert revealer.snapshot_calls == 4
    assert revealer.advance_calls == 3


def test_discovery_preserves_first_seen_order(fakes) -> None:
    revealer = fakes.Revealer([["c", "a"], ["b", "c", "a", "d"]])
    result = DiscoveryEngine(revealer, _config(discovery_stability_threshold=1)).run()
    assert result.candidates == ["c", "a", "b", "d"]


def test_discovery_round_cap_is_a_normal_exit(fakes) -> None:
    snapshots = [[f"ref-{i}" for i in range(n + 1)] for n in range(100)]
    revealer = fakes.Revealer(snapshots)
    result = DiscoveryEngine(revealer, _config(max_discovery_rounds=3)).run()

    assert result.converged is False
    assert result.rounds == 3
    assert revealer.advance_calls == 3
    assert len(result.candidates) == 4


def test_zero_round_cap_takes_a_single_snapshot(fakes) -> None:
    revealer = fakes.Revealer([["a", "b"], ["a", "b", "c"]])
    result = DiscoveryEngine(revealer, _config(max_discovery_rounds=0)).run()
    assert result.candidates == ["a", "b"]
    assert revealer.advance_calls == 0


def test_empty_catalog_converges_to_nothing(fakes) -> None:
    revealer = fakes.Revealer([[]])
    result = DiscoveryEngine(revealer, _config()).run()
    assert result.empty
    assert result.converged is True


def test_revealer_errors_count_as_empty_snapshots(fakes) -> None:
    class FlakyRevealer:
        def __init__(self) -> None:
            self.calls = 0

        def snapshot(self):
            self.calls += 1
            if self.calls == 2:
                raise RuntimeError("page crashed")
            return ["a"]

        def advance(self) -> None:
            raise RuntimeError("scroll failed")

    result = DiscoveryEngine(FlakyRevealer(), _config(discovery_stability_threshold=3)).run()
    assert result.candidates == ["a"]
    assert result.converged is True


def test_stop_during_settle_delay_ends_discovery(fakes) -> None:
    revealer = fakes.Revealer([["a"], ["a", "b"]])
    sleeps: list[float] = []

    def sleeper(seconds: float) -> bool:
        sleeps.append(seconds)
        return True

    result = DiscoveryEngine(revealer, _config(settle_delay=1.5), sleep=sleeper).run()
    assert result.stopped is True
    assert result.candidates == ["a"]
    assert sleeps == [1.5]


def test_should_stop_is_checked_before_each_snapshot(fakes) -> None:
    revealer = fakes.Revealer([["a"]])
    result = DiscoveryEngine(revealer, _config(), should_stop=lambda: True).run()
    assert result.stopped is True
    assert revealer.snapshot_calls == 0


def test_round_callback_reports_totals(fakes) -> None:
    revealer = fakes.Revealer([["a"], ["a", "b"], ["a", "b"]])
    rounds: list[tuple[int, int, int]] = []
    DiscoveryEngine(
        revealer,
        _config(discovery_stability_threshold=1),
        on_round=lambda *args: rounds.append(args),
    ).run()
    assert rounds == [(0, 1, 1), (1, 2, 1), (2, 2, 0)]
