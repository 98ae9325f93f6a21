"""Data provider: per-date export cache and live provider fallback chain."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Optional

from racesight.config import MAX_FETCH_TIMEOUT, DataSource, racing_today
from racesight.errors import (
    DataUnavailable,
    RaceNotFound,
    ScraperError,
    TransportTimeout,
    VenueNotFound,
)
from racesight.models import RaceCard, RaceSlot
from racesight.scrapers.base import BaseScraper
from racesight.scrapers.racecard_file import RacecardFileSource
from racesight.scrapers.synthetic import synthetic_race_card
from racesight.venues import LiveVenue, resolve_live_venue

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 5 * 60  # seconds


class AttemptStatus(str, Enum):
    """Outcome of asking one live provider for a card."""

    SUCCESS = "success"
    FAILED = "failed"  # recoverable failure (timeout, HTTP error, empty parse)
    SKIPPED = "skipped"  # provider cannot serve this venue; try the next one


@dataclass(frozen=True)
class ProviderAttempt:
    provider: str
    status: AttemptStatus
    card: Optional[RaceCard] = None
    error: Optional[str] = None

    def describe(self) -> str:
        return f"{self.provider}: {self.error or self.status.value}"


@dataclass
class _CacheEntry:
    doc: dict
    loaded_at: float


class RaceDataProvider:
    """Supplies race cards from the structured export or live sources.

    Export documents are cached per date for ``cache_ttl`` seconds. A refresh
    for one date holds only that date's lock.
    """

    def __init__(
        self,
        file_source: RacecardFileSource,
        scrapers: Optional[list[BaseScraper]] = None,
        data_source: DataSource = "export",
        cache_ttl: float = DEFAULT_CACHE_TTL,
        provider_timeout: float = MAX_FETCH_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = racing_today,
    ):
        self.file_source = file_source
        self.scrapers = scrapers or []
        self.data_source = data_source
        self.cache_ttl = cache_ttl
        # Bounds a whole attempt, throttle wait and parsing included
        self.provider_timeout = min(provider_timeout, MAX_FETCH_TIMEOUT)
        self._clock = clock
        self._today = today
        self._cache: dict[date, _CacheEntry] = {}
        self._locks: dict[date, asyncio.Lock] = {}

    async def close(self) -> None:
        for scraper in self.scrapers:
            await scraper.close()

    # ------------------------------------------------------------------
    # Export path
    # ------------------------------------------------------------------

    def _fresh(self, race_date: date) -> Optional[dict]:
        entry = self._cache.get(race_date)
        if entry and (self._clock() - entry.loaded_at) < self.cache_ttl:
            return entry.doc
        return None

    async def _get_export(self, race_date: date) -> dict:
        doc = self._fresh(race_date)
        if doc is not None:
            logger.debug(f"Using cached race-card export for {race_date}")
            return doc
        lock = self._locks.setdefault(race_date, asyncio.Lock())
        async with lock:
            # Another request may have refreshed while we waited
            doc = self._fresh(race_date)
            if doc is not None:
                return doc
            doc = await self.file_source.load(race_date)
            self._cache[race_date] = _CacheEntry(doc=doc, loaded_at=self._clock())
            return doc

    def invalidate(self, race_date: Optional[date] = None) -> None:
        if race_date is None:
            self._cache.clear()
        else:
            self._cache.pop(race_date, None)

    async def get_courses(self, race_date: date, region: str = "GB") -> list[str]:
        """Course names in the export for a date/region, alphabetical."""
        doc = await self._get_export(race_date)
        courses = self.file_source.courses(doc, region)
        logger.info(f"Found {len(courses)} courses for {region} on {race_date}")
        return courses

    async def get_race_slots(self, course: str, race_date: date, region: str = "GB") -> list[RaceSlot]:
        doc = await self._get_export(race_date)
        return self.file_source.slots(doc, course, race_date, region)

    async def get_race_details(self, course: str, race_time: str, race_date: date, region: str = "GB") -> RaceCard:
        doc = await self._get_export(race_date)
        return self.file_source.race_card(doc, course, race_time, race_date, region)

    # ------------------------------------------------------------------
    # Live path
    # ------------------------------------------------------------------

    async def _attempt(
        self, scraper: BaseScraper, venue: LiveVenue, race_date: date, race_time: str, race_number: int
    ) -> ProviderAttempt:
        name = scraper.SOURCE or type(scraper).__name__
        if not scraper.supports(venue):
            return ProviderAttempt(provider=name, status=AttemptStatus.SKIPPED)
        try:
            card = await asyncio.wait_for(
                scraper.scrape_race(venue, race_date, race_time, race_number),
                timeout=self.provider_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{name} timed out for {venue.name} {race_time}")
            return ProviderAttempt(provider=name, status=AttemptStatus.FAILED, error="timed out")
        except (TransportTimeout, ScraperError) as e:
            logger.warning(f"{name} failed for {venue.name} {race_time}: {e}")
            return ProviderAttempt(provider=name, status=AttemptStatus.FAILED, error=str(e))
        return ProviderAttempt(provider=name, status=AttemptStatus.SUCCESS, card=card)

    async def fetch_live(self, course: str, race_date: date, race_time: str, race_number: int = 1) -> RaceCard:
        """Try live providers in priority order, then the synthetic field.

        Raises:
            VenueNotFound: the venue is unknown to every live provider
        """
        venue = resolve_live_venue(course)
        attempts: list[ProviderAttempt] = []
        for scraper in self.scrapers:
            attempt = await self._attempt(scraper, venue, race_date, race_time, race_number)
            attempts.append(attempt)
            if attempt.status is AttemptStatus.SUCCESS:
                return attempt.card
        errors = tuple(a.describe() for a in attempts)
        return synthetic_race_card(venue.name, race_date, race_time, race_number, provider_errors=errors)

    # ------------------------------------------------------------------
    # Pipeline entry point
    # ------------------------------------------------------------------

    async def get_race_card(
        self, course: str, race_time: str, race_date: date, region: str = "GB", race_number: int = 1
    ) -> RaceCard:
        """Race card for analysis, honouring the configured data source."""
        if self.data_source == "export":
            return await self.get_race_details(course, race_time, race_date, region)
        if self.data_source == "live":
            return await self.fetch_live(course, race_date, race_time, race_number)
        try:
            return await self.get_race_details(course, race_time, race_date, region)
        except (DataUnavailable, VenueNotFound, RaceNotFound) as e:
            logger.warning(f"Export unavailable for {course} {race_time} ({e}); trying live sources")
            return await self.fetch_live(course, race_date, race_time, race_number)
