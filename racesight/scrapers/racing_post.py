"""racingpost.com scraper for UK and Irish race cards."""

import logging
from datetime import date
from typing import Optional

from racesight.errors import ScraperError
from racesight.models import RaceCard, RaceCourse, RaceSlot
from racesight.scrapers.base import BaseScraper
from racesight.venues import LiveVenue

logger = logging.getLogger(__name__)

_SEL = '[data-test-selector="{}"]'.format


class RacingPostScraper(BaseScraper):
    """Scraper for racingpost.com race cards (one page per race)."""

    BASE_URL = "https://www.racingpost.com"
    SOURCE = "Racing Post"

    def build_url(self, slug: str, race_date: date, race_time: str) -> str:
        # Card URLs key the race by its off time without separators, e.g. 1400
        off_time = race_time.replace(":", "").replace(".", "")
        return f"{self.BASE_URL}/racecards/{slug}/{race_date.isoformat()}/{off_time}"

    def supports(self, venue: LiveVenue) -> bool:
        return venue.racing_post_slug is not None

    async def scrape_race(self, venue: LiveVenue, race_date: date, race_time: str, race_number: int) -> RaceCard:
        if not venue.racing_post_slug:
            raise ScraperError(f"No Racing Post course slug for {venue.name}")
        url = self.build_url(venue.racing_post_slug, race_date, race_time)
        logger.info(f"Scraping Racing Post card: {venue.name} {race_time} ({url})")
        html = await self.fetch(url)
        return self.parse_card(html, venue, race_date, race_time, race_number)

    def parse_card(self, html: str, venue: LiveVenue, race_date: date, race_time: str, race_number: int) -> RaceCard:
        soup = self.parse_html(html)

        rows = []
        for card in soup.select(_SEL("RC-cardPage-runnerCard")):
            parsed = self._parse_runner(card)
            if parsed:
                rows.append(parsed)

        if not rows:
            raise ScraperError(f"No runners parsed from Racing Post card for {venue.name} {race_time}")

        entries = self.build_entries(rows)
        title_tag = soup.select_one(_SEL("RC-header__raceInstanceTitle"))
        distance_tag = soup.select_one(_SEL("RC-header__raceDistanceRound"))
        going_tag = soup.select_one(_SEL("RC-headerBox__going"))

        slot = RaceSlot(
            course=RaceCourse(name=venue.name, code=venue.racing_post_slug, location="GB/IRE"),
            date=race_date,
            time=race_time,
            ordinal=race_number,
            name=self.clean_text(title_tag.get_text()) if title_tag else f"{race_time} {venue.name}",
            distance=self.clean_text(distance_tag.get_text()) if distance_tag else None,
            surface=self.clean_text(going_tag.get_text()) if going_tag else None,
            field_size=len(entries),
        )
        logger.info(f"Racing Post: parsed {len(entries)} runners for {venue.name} {race_time}")
        return RaceCard(slot=slot, competitors=entries, source=self.SOURCE, raw_markup=html)

    def _parse_runner(self, card) -> Optional[dict]:
        name_tag = card.select_one(_SEL("RC-cardPage-runnerName"))
        name = self.clean_text(name_tag.get_text()) if name_tag else None
        if not name:
            return None
        draw_tag = card.select_one(".rp-horseTable__draw")
        jockey_tag = card.select_one(_SEL("RC-cardPage-runnerJockey-name"))
        trainer_tag = card.select_one(_SEL("RC-cardPage-runnerTrainer-name"))
        odds_tag = card.select_one(_SEL("RC-cardPage-runnerPrice"))
        weight_tag = card.select_one(_SEL("RC-cardPage-runnerWgt-carried"))
        return {
            "name": name,
            "position": self.parse_int(draw_tag.get_text()) if draw_tag else None,
            "jockey": self.clean_text(jockey_tag.get_text()) if jockey_tag else None,
            "trainer": self.clean_text(trainer_tag.get_text()) if trainer_tag else None,
            "morning_line": self.clean_text(odds_tag.get_text()) if odds_tag else None,
            "weight": self.parse_weight(weight_tag.get_text()) if weight_tag else None,
        }
