"""Engine components: reveal → discover → dedup → extract."""

from .dedup import DeduplicationStage, Partition
from .discovery import DiscoveryEngine, DiscoveryResult
from .extractor import HttpExtractor
from .fetcher import FetchResponse, Fetcher
from .identity import IdentityResolver
from .parser import ParsedRecord, Parser
from .revealer import BrowserRevealer, PagedRevealer
from .thread_pool import ThreadPoolManager

__all__ = [
    "BrowserRevealer",
    "DeduplicationStage",
    "DiscoveryEngine",
    "DiscoveryResult",
    "FetchResponse",
    "Fetcher",
    "HttpExtractor",
    "IdentityResolver",
    "PagedRevealer",
    "ParsedRecord",
    "Parser",
    "Partition",
    "ThreadPoolManager",
]
