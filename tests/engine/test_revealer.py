from __future__ import annotations

import httpx

from listing_harvester.config import FetchConfig
from listing_harvester.engine import BrowserRevealer, Fetcher, PagedRevealer, Parser


def _page(*ids: int) -> str:
    links = "".join(f'<a class="item" href="/item/{i}">#{i}</a>' for i in ids)
    return f"<html><body>{links}</body></html>"


def _paged_revealer(source, pages: dict[str | None, str | int]) -> tuple[PagedRevealer, list[str]]:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = request.url.params.get("p")
        requested.append(str(request.url))
        body = pages.get(page)
        if body is None:
            return httpx.Response(404, text="")
        if isinstance(body, int):
            return httpx.Response(body)
        return httpx.Response(200, text=body)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    fetcher = Fetcher(FetchConfig(retry_attempts=1), client=client)
    return PagedRevealer(source, fetcher, Parser()), requested


def test_paged_revealer_accumulates_pages(sample_source_config) -> None:
    source = sample_source_config()
    revealer, requested = _paged_revealer(source, {None: _page(1, 2), "2": _page(2, 3), "3": _page(4)})

    assert revealer.snapshot() == ["https://example.com/item/1", "https://example.com/item/2"]
    revealer.advance()
    revealer.advance()
    assert revealer.snapshot() == [
        "https://example.com/item/1",
        "https://example.com/item/2",
        "https://example.com/item/3",
        "https://example.com/item/4",
    ]
    assert requested == [
        "https://example.com/catalog",
        "https://example.com/catalog?p=2",
        "https://example.com/catalog?p=3",
    ]


def test_paged_revealer_stops_on_page_without_new_links(sample_source_config) -> None:
    source = sample_source_config()
    revealer, requested = _paged_revealer(source, {None: _page(1), "2": _page(1)})

    revealer.snapshot()
    revealer.advance()
    assert revealer.exhausted
    revealer.advance()
    assert len(requested) == 2
    assert revealer.snapshot() == ["https://example.com/item/1"]


def test_paged_revealer_treats_failed_page_as_exhausted(sample_source_config) -> None:
    source = sample_source_config()
    revealer, _ = _paged_revealer(source, {None: _page(1), "2": 503})

    revealer.snapshot()
    revealer.advance()
    assert revealer.exhausted
    assert revealer.snapshot() == ["https://example.com/item/1"]


def test_paged_revealer_close_resets_state(sample_source_config) -> None:
    source = sample_source_config()
    revealer, requested = _paged_revealer(source, {None: _page(1)})
    revealer.snapshot()
    revealer.close()
    revealer.snapshot()
    assert len(requested) == 2


class FakePage:
    def __init__(self, html_pages: list[str]) -> None:
        self.html_pages = html_pages
        self.url = "https://example.com/catalog"
        self.scrolls = 0
        self.waits: list[int] = []
        self.closed = False

    def content(self) -> str:
        return self.html_pages[min(self.scrolls, len(self.html_pages) - 1)]

    def evaluate(self, script: str) -> None:
        assert "scrollTo" in script
        self.scrolls += 1

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def close(self) -> None:
        self.closed = True


def test_browser_revealer_scrolls_and_parses(sample_source_config) -> None:
    source = sample_source_config(reveal={"mode": "browser", "scroll_pause_ms": 250})
    revealer = BrowserRevealer(source, Parser())
    page = FakePage([_page(1), _page(1, 2)])
    revealer._page = page

    assert revealer.snapshot() == ["https://example.com/item/1"]
    revealer.advance()
    assert revealer.snapshot() == ["https://example.com/item/1", "https://example.com/item/2"]
    assert page.waits == [250]

    revealer.close()
    assert page.closed
    # advancing a closed revealer is a no-op
    revealer.advance()
    assert page.scrolls == 1
