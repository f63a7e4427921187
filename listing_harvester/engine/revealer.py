"""Catalog revealers: expose more item links round after round."""

from __future__ import annotations

from threading import Lock

import structlog

from ..config import SourceConfig
from .fetcher import DEFAULT_USER_AGENT, Fetcher
from .parser import Parser


class PagedRevealer:
    """Reveal catalog items by walking numbered result pages.

    ``snapshot`` returns every link seen on the pages loaded so far; ``advance``
    loads the next page. A page that fails or adds no new links marks the
    catalog as exhausted, after which ``advance`` does nothing.
    """

    def __init__(
        self,
        source: SourceConfig,
        fetcher: Fetcher,
        parser: Parser,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.source = source
        self.fetcher = fetcher
        self.parser = parser
        self.logger = logger or structlog.get_logger("listing_harvester.revealer")
        self._links: dict[str, None] = {}
        self._page: int | None = None
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def snapshot(self) -> list[str]:
        if self._page is None:
            self._load(self.source.reveal.first_page)
        return list(self._links)

    def advance(self) -> None:
        if self._exhausted:
            return
        next_page = self.source.reveal.first_page if self._page is None else self._page + 1
        self._load(next_page)

    def close(self) -> None:
        self._links = {}
        self._page = None
        self._exhausted = False

    def _load(self, page: int) -> None:
        self._page = page
        params = None
        if page != self.source.reveal.first_page:
            params = {self.source.reveal.page_param: page}
        try:
            response = self.fetcher.fetch(self.source.catalog_url, params=params)
        except RuntimeError as exc:
            self.logger.warning("catalog_page_failed", page=page, error=str(exc))
            self._exhausted = True
            return
        entries = self.parser.parse_entries(self.source, response.text, response.url)
        added = 0
        for url in entries:
            if url not in self._links:
                self._links[url] = None
                added += 1
        self.logger.info("catalog_page_loaded", page=page, links=len(entries), added=added)
        if added == 0:
            self._exhausted = True


class BrowserRevealer:
    """Reveal items of an infinite-scroll catalog in a headless browser.

    The browser is started lazily on the first ``snapshot`` and torn down by
    ``close``; Playwright's sync API requires both to run on the same thread.
    """

    def __init__(
        self,
        source: SourceConfig,
        parser: Parser,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.source = source
        self.parser = parser
        self.logger = logger or structlog.get_logger("listing_harvester.revealer")
        self._lock = Lock()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def _ensure_started(self) -> None:
        if self._page is not None:
            return
        try:
            from playwright.sync_api import sync_playwright
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "Browser reveal mode requires installing the 'playwright' package."
            ) from exc
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

        reveal = self.source.reveal
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=reveal.headless)
        self._context = self._browser.new_context(
            user_agent=self.source.fetch.user_agent or DEFAULT_USER_AGENT,
            locale="ru-RU",
            viewport={"width": 1920, "height": 1080},
        )
        if self.source.fetch.extra_headers:
            self._context.set_extra_http_headers(self.source.fetch.extra_headers)
        self._page = self._context.new_page()
        try:
            self._page.goto(
                self.source.catalog_url,
                wait_until="domcontentloaded",
                timeout=reveal.navigation_timeout,
            )
            if reveal.wait_selector:
                self._page.wait_for_selector(reveal.wait_selector, timeout=reveal.navigation_timeout)
        except PlaywrightTimeoutError as exc:
            raise RuntimeError(f"Playwright timeout: {exc}") from exc
        self.logger.info("catalog_opened", url=self._page.url)

    def snapshot(self) -> list[str]:
        with self._lock:
            self._ensure_started()
            return self.parser.parse_entries(self.source, self._page.content(), self._page.url)

    def advance(self) -> None:
        with self._lock:
            if self._page is None:
                return
            self._page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            self._page.wait_for_timeout(self.source.reveal.scroll_pause_ms)

    def close(self) -> None:
        with self._lock:
            if self._page is not None:
                self._page.close()
                self._page = None
            if self._context is not None:
                self._context.close()
                self._context = None
            if self._browser is not None:
                self._browser.close()
                self._browser = None
            if self._playwright is not None:
                self._playwright.stop()
                self._playwright = None


__all__ = ["BrowserRevealer", "PagedRevealer"]
