"""Split discovered candidates into new items and already stored ones."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

import structlog

from ..domain import CandidateRef, Identity, Store
from .identity import IdentityResolver


@dataclass
class Partition:
    new_items: list[CandidateRef] = field(default_factory=list)
    skipped: int = 0
    unresolved: int = 0

    @property
    def discovered(self) -> int:
        return self.skipped + len(self.new_items)


class DeduplicationStage:
    """Resolve identities and drop candidates the store already knows.

    Candidates sharing an identity collapse to one entry that keeps the
    position of the first occurrence and the URL of the last one. A failing
    store lookup counts the candidate as new.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        store: Store,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.logger = logger or structlog.get_logger("listing_harvester.dedup")

    def partition(self, candidates: Iterable[CandidateRef]) -> Partition:
        result = Partition()
        by_identity: dict[Identity, CandidateRef] = {}
        for ref in candidates:
            identity = self.resolver.resolve(ref)
            if identity is None:
                result.unresolved += 1
                self.logger.info("identity_unresolved", url=ref)
                continue
            by_identity[identity] = ref

        for identity, ref in by_identity.items():
            if self._exists(identity, ref):
                result.skipped += 1
                self.logger.debug("already_known", url=ref, identity=str(identity))
            else:
                result.new_items.append(ref)

        self.logger.info(
            "dedup_finished",
            new=len(result.new_items),
            skipped=result.skipped,
            unresolved=result.unresolved,
        )
        return result

    def _exists(self, identity: Identity, ref: CandidateRef) -> bool:
        try:
            return bool(self.store.exists(identity))
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(
                "store_lookup_failed_treating_as_new",
                url=ref,
                identity=str(identity),
                error=str(exc),
            )
            return False


__all__ = ["DeduplicationStage", "Partition"]
