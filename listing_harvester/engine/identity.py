"""Derive store identities from candidate URLs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlparse

from ..config import IdentityRule
from ..domain import CandidateRef, Identity


@dataclass(frozen=True, slots=True)
class _CompiledRule:
    source: str
    hosts: tuple[str, ...]
    patterns: tuple[re.Pattern[str], ...]

    def matches_host(self, host: str) -> bool:
        if not self.hosts:
            return True
        return any(host == suffix or host.endswith("." + suffix) for suffix in self.hosts)


class IdentityResolver:
    """Resolve ``(source, external_id)`` from a URL using ordered rules.

    The first rule whose host list accepts the URL and whose pattern matches
    wins. Resolution is pure: no I/O and no state is kept between calls.
    """

    def __init__(self, rules: Iterable[IdentityRule]) -> None:
        self._rules = tuple(
            _CompiledRule(
                source=rule.source,
                hosts=tuple(rule.hosts),
                patterns=tuple(re.compile(pattern) for pattern in rule.patterns),
            )
            for rule in rules
        )

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(rule.source for rule in self._rules)

    def source_for(self, url: str) -> str | None:
        """Return the store source of the first rule accepting ``url``'s host."""

        host = (urlparse(url or "").hostname or "").lower()
        for rule in self._rules:
            if rule.hosts and rule.matches_host(host):
                return rule.source
        return None

    def resolve(self, ref: CandidateRef) -> Identity | None:
        text = (ref or "").strip()
        if not text:
            return None
        host = (urlparse(text).hostname or "").lower()
        for rule in self._rules:
            if not rule.matches_host(host):
                continue
            for pattern in rule.patterns:
                match = pattern.search(text)
                if match and match.group(1):
                    return Identity(source=rule.source, external_id=str(match.group(1)))
        return None


__all__ = ["IdentityResolver"]
