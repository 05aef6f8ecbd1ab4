"""
HTTP page fetching for scrapers.

A thin wrapper around requests.Session: browser-like headers with a
rotating user agent, the source's rate limit before every request, and
a bounded number of retries with linear backoff.
"""

import random
import time
from typing import Callable, Optional

import requests
import structlog

from exceptions import ScraperError
from scrapers.base import ANTI_BOT_PHRASES
from scrapers.rate_limiter import SourceRateLimiter

logger = structlog.get_logger(__name__)


USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:126.0) Gecko/20100101 Firefox/126.0",
)

# Worth another attempt; anything else 4xx is final
RETRYABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}

BACKOFF_SECONDS = 1.0


class PageClient:
    """
    Fetches HTML for one source.

    Block pages are returned, not raised: the scraper inspects them and
    reports a clean empty result.
    """

    def __init__(
        self,
        source_name: str,
        rate_limiter: SourceRateLimiter,
        timeout_ms: int = 30000,
        max_retries: int = 3,
        accept_language: str = "en-US,en;q=0.9",
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.source_name = source_name
        self.rate_limiter = rate_limiter
        self.timeout = timeout_ms / 1000
        self.max_retries = max(1, max_retries)
        self.accept_language = accept_language
        self.session = session or requests.Session()
        self._sleep = sleep

    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": random.choice(USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": self.accept_language,
            "Cache-Control": "no-cache",
            "Upgrade-Insecure-Requests": "1",
        }

    def fetch(self, url: str) -> str:
        """
        GET a page.

        Args:
            url: Absolute URL

        Returns:
            Response body (including block pages served with 403/503)

        Raises:
            ScraperError: All attempts failed or a final HTTP error
        """
        last_error = ""

        for attempt in range(1, self.max_retries + 1):
            self.rate_limiter.wait()
            try:
                response = self.session.get(url, headers=self.headers(), timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "page_fetch_retry",
                    source=self.source_name,
                    attempt=attempt,
                    error=last_error
                )
                if attempt < self.max_retries:
                    self._sleep(BACKOFF_SECONDS * attempt)
                continue

            if response.status_code < 400:
                return response.text

            body = response.text or ""
            if response.status_code in (403, 503) and _looks_blocked(body):
                logger.debug("page_fetch_blocked", source=self.source_name, status=response.status_code)
                return body

            last_error = f"HTTP {response.status_code}"
            if response.status_code not in RETRYABLE_STATUSES:
                break

            logger.warning(
                "page_fetch_retry",
                source=self.source_name,
                attempt=attempt,
                status=response.status_code
            )
            if attempt < self.max_retries:
                self._sleep(BACKOFF_SECONDS * attempt)

        logger.error(
            "page_fetch_failed",
            source=self.source_name,
            url=url,
            error=last_error
        )
        raise ScraperError(self.source_name, f"Failed to fetch page: {last_error}", url=url)

    def close(self) -> None:
        self.session.close()


def _looks_blocked(body: str) -> bool:
    lowered = body.lower()
    return any(phrase in lowered for phrase in ANTI_BOT_PHRASES)
