"""HTTP fetching with bounded retries."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

import httpx
import structlog

from ..config import FetchConfig

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str]
    raw: httpx.Response | None = field(repr=False, default=None)


class Fetcher:
    """Issue GET requests, retrying transport errors and blocked statuses."""

    def __init__(
        self,
        config: FetchConfig,
        logger: structlog.BoundLogger | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("listing_harvester.fetcher")
        headers = {"User-Agent": config.user_agent or DEFAULT_USER_AGENT}
        headers.update(config.extra_headers)
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=config.timeout)
        self._client.headers.update(headers)
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(self, url: str, params: dict[str, Any] | None = None) -> FetchResponse:
        last_error: Exception | None = None
        attempts = self.config.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.get(url, params=params, timeout=self.config.timeout)
            except httpx.HTTPError as exc:
                self.logger.warning("fetch_error", url=url, attempt=attempt, error=str(exc))
                last_error = exc
            else:
                if not self._is_failure(response):
                    return FetchResponse(
                        url=str(response.url),
                        status_code=response.status_code,
                        text=response.text,
                        headers=dict(response.headers),
                        raw=response,
                    )
                self.logger.warning(
                    "fetch_bad_status", url=url, attempt=attempt, status=response.status_code
                )
                last_error = RuntimeError(f"Unexpected status {response.status_code}")
            if attempt < attempts and self.config.retry_interval > 0:
                self._sleep(self.config.retry_interval)

        raise RuntimeError(f"Fetch failed after {attempts} attempts: {url}") from last_error

    @staticmethod
    def _is_failure(response: Any) -> bool:
        status_code = getattr(response, "status_code", 0)
        if status_code >= 500:
            return True
        if status_code in {401, 403, 429}:
            return True
        return False


__all__ = ["DEFAULT_USER_AGENT", "FetchResponse", "Fetcher"]
