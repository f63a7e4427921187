"""Turn one item URL into a stored record."""

from __future__ import annotations

import structlog

from ..config import SourceConfig
from ..domain import CandidateRef, Record
from ..errors import ExtractionError
from .fetcher import Fetcher
from .identity import IdentityResolver
from .parser import Parser


class HttpExtractor:
    """Fetch an item page over HTTP and map it through the detail template."""

    def __init__(
        self,
        source: SourceConfig,
        fetcher: Fetcher,
        parser: Parser,
        resolver: IdentityResolver,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.source = source
        self.fetcher = fetcher
        self.parser = parser
        self.resolver = resolver
        self.logger = logger or structlog.get_logger("listing_harvester.extractor")

    def extract_item(self, ref: CandidateRef) -> Record:
        identity = self.resolver.resolve(ref)
        if identity is None:
            raise ExtractionError(ref, "unresolvable_identity")
        try:
            response = self.fetcher.fetch(ref)
        except RuntimeError as exc:
            raise ExtractionError(ref, f"fetch_failed ({exc.__cause__ or exc})") from exc
        if response.status_code >= 400:
            raise ExtractionError(ref, f"http_{response.status_code}")

        parsed = self.parser.parse_detail(self.source, response.text, response.url)
        missing = self.parser.missing_fields(parsed, self.source.required_fields)
        if missing:
            raise ExtractionError(ref, "missing_" + "_".join(missing))

        data = dict(parsed.data)
        data.setdefault("source_name", self.source.source_name)
        if response.url != ref:
            data.setdefault("final_url", response.url)
        self.logger.debug("item_extracted", url=ref, identity=str(identity))
        return Record(identity=identity, url=ref, data=data)


__all__ = ["HttpExtractor"]
