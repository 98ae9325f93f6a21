"""Structured race-card export adapter.

The export is one JSON document per date (``<racecards_dir>/<YYYY-MM-DD>.json``)
nested region -> venue -> post time -> race record::

    {"GB": {"Doncaster": {"13:30": {"race_name": ..., "distance": "1m",
                                    "prize": "...", "runners": [...]}}}}
"""

import asyncio
import json
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from racesight.errors import DataUnavailable, RaceNotFound, VenueNotFound
from racesight.models import (
    RECENT_RUNS,
    CompetitorEntry,
    ExportRatings,
    ExtractedStats,
    RaceCard,
    RaceCourse,
    RaceSlot,
)
from racesight.venues import match_venue

logger = logging.getLogger(__name__)

EXPORT_SOURCE = "Race-card export"
EXPORT_RATINGS_SOURCE = "Export ratings"

# Figure drop applied per finishing place behind the winner when recent
# figures are reconstructed from the form string
FIGURE_DROP_PER_PLACE = 5
LENGTHS_PER_PLACE = 2.5


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        m = re.search(r"\d+", str(value))
        return int(m.group()) if m else None


class RacecardFileSource:
    """Reads per-date export documents from a directory."""

    def __init__(self, racecards_dir: Path):
        self.racecards_dir = Path(racecards_dir)

    def path_for(self, race_date: date) -> Path:
        return self.racecards_dir / f"{race_date.isoformat()}.json"

    async def load(self, race_date: date) -> dict:
        """Load the export for a date.

        Raises:
            DataUnavailable: file absent, unreadable or not a JSON object
        """
        path = self.path_for(race_date)
        logger.info(f"Loading race-card export from: {path}")
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise DataUnavailable(
                f"No race-card export available for {race_date.isoformat()}",
                source=str(path),
                action=f"Generate the export for {race_date.isoformat()} into {self.racecards_dir}",
            )
        except OSError as e:
            raise DataUnavailable(f"Failed to read race-card export: {e}", source=str(path))
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise DataUnavailable(
                f"Race-card export is not valid JSON: {e}",
                source=str(path),
                action="Regenerate the export",
            )
        if not isinstance(data, dict):
            raise DataUnavailable("Race-card export must be an object keyed by region", source=str(path))
        logger.info(f"Loaded race-card export for {race_date}: regions {', '.join(data.keys())}")
        return data

    # ------------------------------------------------------------------
    # Document navigation
    # ------------------------------------------------------------------

    @staticmethod
    def courses(doc: dict, region: str) -> list[str]:
        region_data = doc.get(region)
        if not region_data:
            logger.warning(f"No data for region: {region}")
            return []
        return sorted(region_data.keys())

    @staticmethod
    def _course_data(doc: dict, course: str, region: str) -> tuple[str, dict]:
        region_data = doc.get(region) or {}
        matched = match_venue(course, region_data.keys())
        if matched is None:
            raise VenueNotFound(f"No course named {course!r} in {region} export")
        return matched, region_data[matched]

    def slots(self, doc: dict, course: str, race_date: date, region: str) -> list[RaceSlot]:
        """Race slots for a course sorted by post time, numbered in that order."""
        name, course_data = self._course_data(doc, course, region)
        slots = []
        for ordinal, race_time in enumerate(sorted(course_data.keys()), start=1):
            slots.append(self._build_slot(name, race_date, race_time, ordinal, course_data[race_time], region))
        logger.info(f"Found {len(slots)} races at {name}")
        return slots

    def race_card(self, doc: dict, course: str, race_time: str, race_date: date, region: str) -> RaceCard:
        name, course_data = self._course_data(doc, course, region)
        times = sorted(course_data.keys())
        wanted = race_time.strip()
        if wanted not in course_data:
            raise RaceNotFound(f"Race not found: {name} at {race_time} on {race_date.isoformat()}")
        race = course_data[wanted]
        competitors = tuple(
            self._build_entry(runner, index)
            for index, runner in enumerate(race.get("runners") or race.get("competitors") or [], start=1)
        )
        slot = self._build_slot(name, race_date, wanted, times.index(wanted) + 1, race, region)
        logger.info(f"Loaded {len(competitors)} runners for {name} {wanted}")
        return RaceCard(
            slot=slot,
            competitors=competitors,
            source=EXPORT_SOURCE,
            raw_markup=json.dumps(race, ensure_ascii=False),
        )

    @staticmethod
    def _build_slot(course: str, race_date: date, race_time: str, ordinal: int, race: dict, region: str) -> RaceSlot:
        runners = race.get("runners") or race.get("competitors") or []
        return RaceSlot(
            course=RaceCourse(name=course, location=region),
            date=race_date,
            time=race_time,
            ordinal=ordinal,
            name=race.get("race_name") or race.get("name") or "",
            distance=race.get("distance"),
            surface=race.get("surface") or race.get("going"),
            field_size=len(runners),
            prize=race.get("prize"),
        )

    @staticmethod
    def _build_entry(runner: dict, index: int) -> CompetitorEntry:
        return CompetitorEntry(
            position=_to_int(runner.get("number")) or index,
            name=runner.get("name", "").strip(),
            jockey=runner.get("jockey") or "Unknown",
            trainer=runner.get("trainer") or "Unknown",
            weight=float(_to_int(runner.get("lbs"))) if _to_int(runner.get("lbs")) else None,
            morning_line=runner.get("odds") or None,
            age=_to_int(runner.get("age")),
            form=runner.get("form") or "",
            last_run=str(runner.get("last_run") or ""),
            ratings=ExportRatings(
                rpr=_to_int(runner.get("rpr")),
                topspeed=_to_int(runner.get("ts")),
                official=_to_int(runner.get("ofr")),
                trainer_rtf=_to_int(runner.get("trainer_rtf")),
            ),
        )


# ----------------------------------------------------------------------
# Statistics derived from export ratings (no inference call)
# ----------------------------------------------------------------------


def _form_positions(form: str) -> list[int]:
    """Finishing places from a form string, most recent first.

    Exports write form oldest-to-newest, one character per run ("1-32-4");
    season separators and non-finish letters are skipped.
    """
    places = [int(ch) for ch in form if ch.isdigit()]
    # 0 means unplaced beyond 9th
    places = [p if p > 0 else 10 for p in places]
    return list(reversed(places))


def days_since(last_run: str, today: date) -> Optional[int]:
    """Days between a last-run value and today, or None when it is unknown."""
    value = (last_run or "").strip()
    if not value:
        return None
    if value.isdigit():
        # Some exports already carry the day count
        return int(value)
    try:
        run_date = datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        logger.debug(f"Unparsable last run value: {value!r}")
        return None
    return abs((today - run_date).days)


def stats_from_export(entry: CompetitorEntry, today: date) -> ExtractedStats:
    """Derive ExtractedStats from ratings carried in the export."""
    ratings = entry.ratings or ExportRatings()
    places = _form_positions(entry.form)[:RECENT_RUNS]
    figures = []
    if ratings.rpr:
        figures = [max(0, ratings.rpr - (p - 1) * FIGURE_DROP_PER_PLACE) for p in places]
    races = [
        {
            "date": (entry.last_run or None) if i == 0 else None,
            "position": p,
            "margin": 0.0 if p == 1 else (p - 1) * LENGTHS_PER_PLACE,
        }
        for i, p in enumerate(places)
    ]
    return ExtractedStats.model_validate({
        "name": entry.name,
        "speed": {
            "best_figure": ratings.rpr,
            "best_at_distance": ratings.topspeed,
            "last_three_figures": figures,
        },
        "form": {
            "last_three_races": races,
            "days_since_last_run": days_since(entry.last_run, today),
            "workouts": [],
        },
        "jockey": {"name": entry.jockey, "meet_win_percent": None},
        "trainer": {"name": entry.trainer, "meet_win_percent": ratings.trainer_rtf},
    })
