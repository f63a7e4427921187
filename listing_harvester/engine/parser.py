"""DOM parsing helpers for catalog and item pages."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable
from urllib.parse import urldefrag, urljoin

from selectolax.parser import HTMLParser

from ..config import SourceConfig

_META_FALLBACKS: dict[str, tuple[str, ...]] = {
    "title": ('meta[property="og:title"]', 'meta[name="title"]', "title"),
    "description": ('meta[property="og:description"]', 'meta[name="description"]'),
}


@dataclass
class ParsedRecord:
    """Structured representation of parsed content."""

    url: str
    data: dict[str, Any]


class Parser:
    """Parse catalog and item responses according to source templates."""

    def parse_entries(self, source: SourceConfig, html: str, base_url: str) -> list[str]:
        """Return item links matching ``entry_pattern`` in document order."""

        parser = HTMLParser(html)
        link_filter = re.compile(source.link_pattern) if source.link_pattern else None
        entries: list[str] = []
        seen: set[str] = set()
        for node in parser.css(source.entry_pattern):
            href = node.attributes.get("href")
            if not href:
                continue
            href = href.strip()
            if not href or href.startswith(("javascript:", "#")):
                continue
            full_url, _ = urldefrag(urljoin(base_url, href))
            if link_filter is not None and not link_filter.search(full_url):
                continue
            if full_url not in seen:
                seen.add(full_url)
                entries.append(full_url)
        return entries

    def parse_detail(self, source: SourceConfig, html: str, url: str) -> ParsedRecord:
        """
        Map an item page to fields using ``detail_pattern``.

        Each field takes a selector or a list of fallback selectors. A selector
        may end with ``::html``, ``::attr:<name>`` or ``::text`` (default).
        ``title`` and ``description`` fall back to meta tags when no selector hits.
        """
        data: dict[str, Any] = {}
        parser = HTMLParser(html)
        for field_name, selector_config in source.detail_pattern.items():
            selectors = selector_config if isinstance(selector_config, list) else [selector_config]
            field_value = None
            for selector in selectors:
                css_selector, mode = self._split_selector(selector)
                if not css_selector:
                    continue
                node = parser.css_first(css_selector)
                if node is None:
                    continue
                if mode == "html":
                    field_value = node.html
                elif mode.startswith("attr:"):
                    field_value = node.attributes.get(mode.split(":", 1)[1])
                else:
                    field_value = node.text(separator=" ", strip=True)
                if field_value and field_value.strip():
                    break

            if not field_value or not field_value.strip():
                field_value = self._meta_fallback(parser, field_name)

            data[field_name] = field_value.strip() if field_value and field_value.strip() else None
        return ParsedRecord(url=url, data=data)

    @staticmethod
    def missing_fields(record: ParsedRecord, required: Iterable[str]) -> list[str]:
        return [name for name in required if not record.data.get(name)]

    @staticmethod
    def _meta_fallback(parser: HTMLParser, field_name: str) -> str | None:
        for meta_selector in _META_FALLBACKS.get(field_name, ()):
            node = parser.css_first(meta_selector)
            if node is None:
                continue
            if meta_selector == "title":
                value = node.text(separator=" ", strip=True)
            else:
                value = node.attributes.get("content")
            if value and value.strip():
                return value
        return None

    @staticmethod
    def _split_selector(selector: str) -> tuple[str, str]:
        if "::" in selector:
            css, mode = selector.split("::", 1)
            return css.strip(), mode.strip().lower()
        return selector.strip(), "text"


__all__ = ["Parser", "ParsedRecord"]
