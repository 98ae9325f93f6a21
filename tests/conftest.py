"""Shared test fixtures for RaceSight."""

import json
from datetime import date
from typing import Optional

import pytest

from racesight.models import ExtractedStats

RACE_DATE = date(2025, 1, 1)


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` advances it instead of blocking."""

    def __init__(self, start: float = 1000.0, today: date = RACE_DATE):
        self.now = start
        self.day = today
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def today(self) -> date:
        return self.day

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_stats():
    """Factory for ExtractedStats with only the fields a test cares about."""

    def _make(
        name: str = "TEST HORSE",
        best: Optional[float] = None,
        recent: tuple = (),
        positions: tuple = (),
        days: Optional[int] = None,
        jockey: Optional[float] = None,
        trainer: Optional[float] = None,
    ) -> ExtractedStats:
        return ExtractedStats.model_validate({
            "name": name,
            "speed": {"best_figure": best, "best_at_distance": None, "last_three_figures": list(recent)},
            "form": {
                "last_three_races": [{"date": None, "position": p, "margin": None} for p in positions],
                "days_since_last_run": days,
                "workouts": [],
            },
            "jockey": {"name": None, "meet_win_percent": jockey},
            "trainer": {"name": None, "meet_win_percent": trainer},
        })

    return _make


@pytest.fixture
def sample_export() -> dict:
    """A one-date export: two GB courses, one IRE course."""
    return {
        "GB": {
            "Example Downs": {
                "14:00": {
                    "race_name": "Example Handicap",
                    "distance": "1m2f",
                    "going": "Good",
                    "prize": "£10,000",
                    "runners": [
                        {"number": 1, "name": "Alpha Star", "jockey": "A Rider", "trainer": "A Trainer",
                         "lbs": 130, "odds": "2/1", "age": 4, "form": "211", "last_run": "10",
                         "rpr": 115, "ts": 110, "ofr": 100, "trainer_rtf": 30},
                        {"number": 2, "name": "Bravo Boy", "jockey": "B Rider", "trainer": "B Trainer",
                         "lbs": 126, "odds": "5/1", "age": 5, "form": "4-53", "last_run": "40",
                         "rpr": 95, "ts": 90, "ofr": 88, "trainer_rtf": 15},
                        {"number": 3, "name": "Charlie Gold", "jockey": "C Rider", "trainer": "C Trainer",
                         "lbs": 122, "odds": "10/1", "age": 6, "form": "978", "last_run": "90",
                         "rpr": 70, "ts": 65, "ofr": 60, "trainer_rtf": 5},
                    ],
                },
                "13:30": {
                    "race_name": "Example Maiden",
                    "distance": "6f",
                    "runners": [
                        {"number": 1, "name": "Delta Dawn", "jockey": "D Rider", "trainer": "D Trainer"},
                    ],
                },
                "15:10": {"race_name": "Empty Race", "distance": "5f", "runners": []},
            },
            "Ascot": {
                "16:00": {"race_name": "Ascot Stakes", "runners": [{"number": 1, "name": "Echo"}]},
            },
        },
        "IRE": {
            "Leopardstown": {"15:00": {"race_name": "Irish Race", "runners": []}},
        },
    }


@pytest.fixture
def racecards_dir(tmp_path, sample_export):
    """Directory holding the sample export for RACE_DATE."""
    (tmp_path / f"{RACE_DATE.isoformat()}.json").write_text(json.dumps(sample_export), encoding="utf-8")
    return tmp_path
