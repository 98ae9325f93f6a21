"""Base scraper class with common functionality."""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from datetime import date
from typing import Awaitable, Callable, Optional
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup

from racesight.config import MAX_FETCH_TIMEOUT
from racesight.errors import ScraperError, TransportTimeout
from racesight.models import CompetitorEntry, RaceCard
from racesight.venues import LiveVenue

logger = logging.getLogger(__name__)


class RequestThrottle:
    """Enforces a minimum spacing between requests to the same host.

    One lock per host, so a wait on one site never delays another.
    """

    def __init__(
        self,
        min_interval: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def wait(self, host: str) -> None:
        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            last = self._last_request.get(host)
            if last is not None:
                elapsed = self._clock() - last
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    logger.info(f"Throttling {host}: waiting {delay:.2f}s")
                    await self._sleep(delay)
            self._last_request[host] = self._clock()


class BaseScraper(ABC):
    """Base class for live race-card page scrapers."""

    # Human-readable provenance recorded on every card this scraper returns
    SOURCE = ""

    # Default headers to mimic a browser
    DEFAULT_HEADERS = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-GB,en;q=0.9",
    }

    def __init__(self, timeout: float = MAX_FETCH_TIMEOUT, throttle: Optional[RequestThrottle] = None):
        """Initialize scraper with HTTP client settings."""
        self.timeout = min(timeout, MAX_FETCH_TIMEOUT)
        self.throttle = throttle or RequestThrottle()
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.DEFAULT_HEADERS,
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    @client.setter
    def client(self, value: httpx.AsyncClient) -> None:
        self._client = value

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> str:
        """Fetch URL and return HTML content.

        Raises:
            TransportTimeout: request exceeded the fetch timeout
            ScraperError: any other HTTP or transport failure
        """
        await self.throttle.wait(urlsplit(url).netloc)
        try:
            logger.info(f"Fetching: {url}")
            response = await self.client.get(url)
            response.raise_for_status()
            return response.text
        except httpx.TimeoutException as e:
            logger.error(f"Timeout fetching {url}: {e}")
            raise TransportTimeout(f"Timed out after {self.timeout:.0f}s: {url}")
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching {url}: {e}")
            raise ScraperError(f"HTTP {e.response.status_code}: {url}")
        except httpx.RequestError as e:
            logger.error(f"Request error fetching {url}: {e}")
            raise ScraperError(f"Request failed: {url}")

    def parse_html(self, html: str) -> BeautifulSoup:
        """Parse HTML into BeautifulSoup object."""
        return BeautifulSoup(html, "lxml")

    def supports(self, venue: LiveVenue) -> bool:
        """Whether this source can serve the venue at all."""
        return True

    @abstractmethod
    async def scrape_race(self, venue: LiveVenue, race_date: date, race_time: str, race_number: int) -> RaceCard:
        """Fetch and parse one race card.

        Raises ScraperError/TransportTimeout on failure; an empty parse is a
        ScraperError so the provider chain moves on.
        """

    @staticmethod
    def clean_text(text: Optional[str]) -> Optional[str]:
        """Clean and normalize text."""
        if text is None:
            return None
        cleaned = " ".join(text.strip().split())
        return cleaned or None

    @staticmethod
    def parse_int(text: Optional[str]) -> Optional[int]:
        if not text:
            return None
        m = re.search(r"\d+", text)
        return int(m.group()) if m else None

    @staticmethod
    def parse_weight(weight_str: Optional[str]) -> Optional[float]:
        """Parse weight string (e.g. "126", "9-4" st-lb) to pounds."""
        if not weight_str:
            return None
        cleaned = weight_str.lower().replace("lbs", "").replace("lb", "").strip()
        try:
            if "-" in cleaned:
                stones, pounds = cleaned.split("-", 1)
                return float(int(stones) * 14 + int(pounds))
            return float(cleaned)
        except ValueError:
            return None

    def build_entries(self, rows: list[dict]) -> tuple[CompetitorEntry, ...]:
        """Turn parsed row dicts into entries, numbering missing draws by order."""
        entries = []
        for index, row in enumerate(rows, start=1):
            entries.append(CompetitorEntry(
                position=row.get("position") or index,
                name=row["name"],
                jockey=row.get("jockey") or "Unknown",
                trainer=row.get("trainer") or "Unknown",
                weight=row.get("weight"),
                morning_line=row.get("morning_line"),
            ))
        return tuple(entries)
