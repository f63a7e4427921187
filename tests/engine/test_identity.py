from __future__ import annotations

import pytest

from listing_harvester.config import DEFAULT_IDENTITY_RULES, IdentityRule
from listing_harvester.domain import Identity
from listing_harvester.engine import IdentityResolver


@pytest.fixture
def default_resolver() -> IdentityResolver:
    return IdentityResolver(DEFAULT_IDENTITY_RULES)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        (
            "https://www.avito.ru/moskva/kvartiry/2-k._kvartira_54m_512et._3748291033",
            Identity("avito", "3748291033"),
        ),
        (
            "https://www.avito.ru/moskva/kvartiry/1-k._kvartira_38m_45et._2212345678?context=abc",
            Identity("avito", "2212345678"),
        ),
        ("https://m.avito.ru/items/12345678", Identity("avito", "12345678")),
        ("https://www.cian.ru/sale/flat/301234567/", Identity("cian", "301234567")),
        ("https://spb.cian.ru/rent/flat/287654321/#photos", Identity("cian", "287654321")),
    ],
)
def test_resolves_known_sites(default_resolver: IdentityResolver, url: str, expected: Identity) -> None:
    assert default_resolver.resolve(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "",
        "not a url",
        "https://www.avito.ru/moskva/kvartiry",
        "https://www.cian.ru/sale/suburban/123/",
        "https://example.org/flat/123/",
    ],
)
def test_unresolvable_urls_return_none(default_resolver: IdentityResolver, url: str) -> None:
    assert default_resolver.resolve(url) is None


def test_resolution_is_deterministic(default_resolver: IdentityResolver) -> None:
    url = "https://www.cian.ru/sale/flat/301234567/"
    assert default_resolver.resolve(url) == default_resolver.resolve(url)


def test_host_filter_prevents_cross_site_matches() -> None:
    resolver = IdentityResolver(DEFAULT_IDENTITY_RULES)
    # "_123" would match the avito fallback pattern if hosts were ignored
    assert resolver.resolve("https://notavito.com/listing_123") is None


def test_first_matching_rule_wins() -> None:
    resolver = IdentityResolver(
        [
            IdentityRule(source="narrow", hosts=["example.com"], patterns=[r"/special/(\d+)"]),
            IdentityRule(source="wide", hosts=["example.com"], patterns=[r"/(\d+)$"]),
        ]
    )
    assert resolver.resolve("https://example.com/special/7") == Identity("narrow", "7")
    assert resolver.resolve("https://example.com/other/7") == Identity("wide", "7")


def test_rule_without_hosts_accepts_any_host() -> None:
    resolver = IdentityResolver([IdentityRule(source="any", patterns=[r"id=(\w+)"])])
    assert resolver.resolve("https://a.test/x?id=abc") == Identity("any", "abc")


def test_source_for_uses_host_rules(default_resolver: IdentityResolver) -> None:
    assert default_resolver.source_for("https://www.avito.ru/moskva/kvartiry") == "avito"
    assert default_resolver.source_for("https://spb.cian.ru/") == "cian"
    assert default_resolver.source_for("https://example.com/") is None
    assert default_resolver.sources == ("avito", "cian")
