"""Exception hierarchy shared by the harvesting engine and job orchestrator."""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for errors raised by listing-harvester."""


class InvalidStateError(HarvesterError):
    """Control operation invoked while the job is in a state that forbids it."""

    def __init__(self, operation: str, state: object) -> None:
        self.operation = operation
        self.state = state
        label = getattr(state, "value", state)
        super().__init__(f"Cannot {operation} while job is {label}")


class AlreadyRunningError(InvalidStateError):
    """``start`` called on an orchestrator whose job is still active."""

    def __init__(self, state: object) -> None:
        super().__init__("start", state)


class ExtractionError(HarvesterError):
    """Item page could not be fetched or mapped to a record."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class StoreError(HarvesterError):
    """Record store rejected a lookup or a write."""


__all__ = [
    "AlreadyRunningError",
    "ExtractionError",
    "HarvesterError",
    "InvalidStateError",
    "StoreError",
]
