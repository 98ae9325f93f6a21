"""Race-card source adapters and the data provider."""

from racesight.scrapers.base import BaseScraper, RequestThrottle
from racesight.scrapers.equibase import EquibaseScraper
from racesight.scrapers.provider import RaceDataProvider
from racesight.scrapers.racecard_file import RacecardFileSource
from racesight.scrapers.racing_post import RacingPostScraper

__all__ = [
    "BaseScraper",
    "RequestThrottle",
    "EquibaseScraper",
    "RaceDataProvider",
    "RacecardFileSource",
    "RacingPostScraper",
]
