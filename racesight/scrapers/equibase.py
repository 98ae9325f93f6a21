"""equibase.com scraper for US entries."""

import logging
import re
from datetime import date
from typing import Optional

from racesight.errors import ScraperError
from racesight.models import RaceCard, RaceCourse, RaceSlot
from racesight.scrapers.base import BaseScraper
from racesight.venues import LiveVenue

logger = logging.getLogger(__name__)


def _post_time(text: Optional[str]) -> Optional[str]:
    """'1:10 PM' or '13:10' as 24h HH:MM; None when it doesn't parse."""
    m = re.search(r"(\d{1,2}):(\d{2})\s*([AaPp][Mm])?", text or "")
    if not m:
        return None
    hour, minute, meridiem = int(m.group(1)), m.group(2), (m.group(3) or "").upper()
    if meridiem == "PM" and hour < 12:
        hour += 12
    elif meridiem == "AM" and hour == 12:
        hour = 0
    return f"{hour:02d}:{minute}"


class EquibaseScraper(BaseScraper):
    """Scraper for equibase.com static entry pages (one page per card)."""

    BASE_URL = "https://www.equibase.com"
    SOURCE = "Equibase"

    def build_url(self, track_code: str, race_date: date) -> str:
        # e.g. /static/entry/CDUSA20240505.html
        return f"{self.BASE_URL}/static/entry/{track_code}USA{race_date.strftime('%Y%m%d')}.html"

    def supports(self, venue: LiveVenue) -> bool:
        return venue.equibase_code is not None

    async def scrape_race(self, venue: LiveVenue, race_date: date, race_time: str, race_number: int) -> RaceCard:
        if not venue.equibase_code:
            raise ScraperError(f"No Equibase track code for {venue.name}")
        url = self.build_url(venue.equibase_code, race_date)
        logger.info(f"Scraping Equibase entries: {venue.name} R{race_number} ({url})")
        html = await self.fetch(url)
        return self.parse_card(html, venue, race_date, race_time, race_number)

    def parse_card(self, html: str, venue: LiveVenue, race_date: date, race_time: str, race_number: int) -> RaceCard:
        soup = self.parse_html(html)

        # Multi-race pages tag each race section; single-race pages don't
        if soup.select_one("[data-race]") is None:
            scope = soup
        else:
            scope = soup.select_one(f'[data-race="{race_number}"]')
            if scope is None:
                raise ScraperError(f"Race {race_number} not on Equibase entries page for {venue.name}")

        post_tag = scope.select_one(".post-time")
        posted = _post_time(post_tag.get_text()) if post_tag else None
        wanted = _post_time(race_time)
        if posted and wanted and posted != wanted:
            raise ScraperError(
                f"Equibase R{race_number} at {venue.name} posts at {posted}, not {race_time}"
            )

        rows = []
        for row in scope.select(".entry-row"):
            parsed = self._parse_row(row)
            if parsed:
                rows.append(parsed)

        if not rows:
            raise ScraperError(f"No runners parsed from Equibase page for {venue.name} R{race_number}")

        entries = self.build_entries(rows)
        distance_tag = scope.select_one(".race-distance, .distance")
        surface_tag = scope.select_one(".race-surface, .surface")
        name_tag = scope.select_one(".race-name, .race-title, h2, h3")

        slot = RaceSlot(
            course=RaceCourse(name=venue.name, code=venue.equibase_code, location="USA"),
            date=race_date,
            time=race_time,
            ordinal=race_number,
            name=self.clean_text(name_tag.get_text()) if name_tag else f"Race {race_number}",
            distance=self.clean_text(distance_tag.get_text()) if distance_tag else None,
            surface=self.clean_text(surface_tag.get_text()) if surface_tag else None,
            field_size=len(entries),
        )
        logger.info(f"Equibase: parsed {len(entries)} runners for {venue.name} R{race_number}")
        return RaceCard(slot=slot, competitors=entries, source=self.SOURCE, raw_markup=html)

    def _parse_row(self, row) -> Optional[dict]:
        name_tag = row.select_one(".horse-name")
        name = self.clean_text(name_tag.get_text()) if name_tag else None
        if not name:
            return None
        pp_tag = row.select_one(".post-position")
        jockey_tag = row.select_one(".jockey-name")
        trainer_tag = row.select_one(".trainer-name")
        odds_tag = row.select_one(".morning-line")
        weight_tag = row.select_one(".weight")
        return {
            "name": name,
            "position": self.parse_int(pp_tag.get_text()) if pp_tag else None,
            "jockey": self.clean_text(jockey_tag.get_text()) if jockey_tag else None,
            "trainer": self.clean_text(trainer_tag.get_text()) if trainer_tag else None,
            "morning_line": self.clean_text(odds_tag.get_text()) if odds_tag else None,
            "weight": self.parse_weight(weight_tag.get_text()) if weight_tag else None,
        }
