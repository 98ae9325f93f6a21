"""Data model for race cards, extracted statistics and analysis results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Only the most recent three runs/figures feed the scoring engine
RECENT_RUNS = 3


# ---------------------------------------------------------------------------
# Race card
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RaceCourse:
    """A venue hosting races on a given day. Identity is the name."""

    name: str
    code: Optional[str] = field(default=None, compare=False)
    location: Optional[str] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {"name": self.name, "code": self.code, "location": self.location}


@dataclass(frozen=True)
class RaceSlot:
    """One scheduled race within a course-day."""

    course: RaceCourse
    date: date
    time: str
    ordinal: int
    name: str = ""
    distance: Optional[str] = None
    surface: Optional[str] = None
    field_size: int = 0
    prize: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "course": self.course.name,
            "date": self.date.isoformat(),
            "time": self.time,
            "race_number": self.ordinal,
            "name": self.name,
            "distance": self.distance,
            "surface": self.surface,
            "field_size": self.field_size,
            "prize": self.prize,
        }


@dataclass(frozen=True)
class ExportRatings:
    """Ratings carried by the structured export (absent on scraped cards)."""

    rpr: Optional[int] = None
    topspeed: Optional[int] = None
    official: Optional[int] = None
    trainer_rtf: Optional[int] = None


@dataclass(frozen=True)
class CompetitorEntry:
    """A runner in one race, identified by its draw/post position."""

    position: int
    name: str
    jockey: str = "Unknown"
    trainer: str = "Unknown"
    weight: Optional[float] = None
    morning_line: Optional[str] = None
    age: Optional[int] = None
    form: str = ""
    last_run: str = ""
    ratings: Optional[ExportRatings] = None

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "name": self.name,
            "jockey": self.jockey,
            "trainer": self.trainer,
            "weight": self.weight,
            "morning_line": self.morning_line,
            "age": self.age,
            "form": self.form,
        }


@dataclass(frozen=True)
class RaceCard:
    """A race slot with its field plus provenance of the data."""

    slot: RaceSlot
    competitors: tuple[CompetitorEntry, ...]
    source: str
    raw_markup: str = ""
    is_synthetic: bool = False
    provider_errors: tuple[str, ...] = ()

    @property
    def course(self) -> RaceCourse:
        return self.slot.course

    @property
    def competitor_names(self) -> list[str]:
        return [c.name for c in self.competitors]

    def to_dict(self) -> dict:
        return {
            "race": self.slot.to_dict(),
            "competitors": [c.to_dict() for c in self.competitors],
            "source": self.source,
            "is_synthetic": self.is_synthetic,
        }


# ---------------------------------------------------------------------------
# Extracted statistics (validated inference output)
# ---------------------------------------------------------------------------


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", allow_inf_nan=False)


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


class RaceOutcome(_Frozen):
    date: Optional[str] = None
    position: Optional[int] = None
    margin: Optional[float] = None
    venue: Optional[str] = None
    distance: Optional[str] = None

    @field_validator("position", mode="before")
    @classmethod
    def _lenient_position(cls, value: Any) -> Any:
        # Non-finishes (PU, F, UR) come through as text
        if value is None or isinstance(value, (int, float)):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            return None


class Workout(_Frozen):
    date: Optional[str] = None
    distance: Optional[str] = None
    time_seconds: Optional[float] = None


class SpeedStats(_Frozen):
    best_figure: Optional[float] = None
    best_at_distance: Optional[float] = None
    last_three_figures: list[float] = Field(default_factory=list)  # most recent first

    @field_validator("last_three_figures", mode="before")
    @classmethod
    def _figures(cls, value: Any) -> Any:
        value = _none_to_list(value)
        if isinstance(value, list):
            value = [v for v in value if v is not None][:RECENT_RUNS]
        return value


class FormStats(_Frozen):
    last_three_races: list[RaceOutcome] = Field(default_factory=list)  # most recent first
    days_since_last_run: Optional[int] = None
    workouts: list[Workout] = Field(default_factory=list)

    @field_validator("last_three_races", mode="before")
    @classmethod
    def _races(cls, value: Any) -> Any:
        value = _none_to_list(value)
        return value[:RECENT_RUNS] if isinstance(value, list) else value

    @field_validator("workouts", mode="before")
    @classmethod
    def _workouts(cls, value: Any) -> Any:
        return _none_to_list(value)


class ConnectionStats(_Frozen):
    """Jockey or trainer with their win percentage at the current meet."""

    name: Optional[str] = None
    meet_win_percent: Optional[float] = None


class ExtractedStats(_Frozen):
    """Per-competitor statistics. Sub-objects are mandatory; leaves may be null."""

    name: str
    speed: SpeedStats
    form: FormStats
    jockey: ConnectionStats
    trainer: ConnectionStats


# ---------------------------------------------------------------------------
# Scores and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreSet:
    speed: float
    form: float
    class_: float
    pace: float
    jockey: float
    trainer: float
    composite: float

    def to_dict(self) -> dict:
        return {
            "speed": self.speed,
            "form": self.form,
            "class": self.class_,
            "pace": self.pace,
            "jockey": self.jockey,
            "trainer": self.trainer,
            "composite": self.composite,
        }


@dataclass(frozen=True)
class CompetitorAnalysis:
    entry: CompetitorEntry
    stats: ExtractedStats
    scores: ScoreSet
    data_confidence: float

    def to_dict(self) -> dict:
        return {
            "entry": self.entry.to_dict(),
            "scores": self.scores.to_dict(),
            "data": self.stats.model_dump(),
            "data_confidence": self.data_confidence,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Terminal artifact of a successful analysis run."""

    course: RaceCourse
    slot: RaceSlot
    ranked_competitors: tuple[CompetitorAnalysis, ...]
    narrative: str
    timestamp: datetime
    source: str
    is_synthetic: bool = False
    narrative_degraded: bool = False
    dropped_competitors: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "course": self.course.to_dict(),
            "race": self.slot.to_dict(),
            "ranked_competitors": [c.to_dict() for c in self.ranked_competitors],
            "insights": self.narrative,
            "narrative_degraded": self.narrative_degraded,
            "dropped_competitors": list(self.dropped_competitors),
            "source": self.source,
            "is_synthetic": self.is_synthetic,
            "analysis_timestamp": self.timestamp.isoformat(),
        }


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class Stage(str, Enum):
    """Fixed set of pipeline stages reported in progress events."""

    IDLE = "idle"
    CONNECTING = "Connecting"
    FETCHING = "Fetching race data"
    EXTRACTING = "Extracting statistics"
    SCORING = "Calculating scores"
    INSIGHTS = "Generating insights"
    COMPLETE = "Complete"


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    stage: Stage
    percent: int
    detail: str
    status: str = "running"  # running | done | warning | complete | error
    result: Optional[AnalysisResult] = None
    error: Optional[dict] = None

    def to_dict(self) -> dict:
        payload = {
            "stage": self.stage.value,
            "percent": self.percent,
            "detail": self.detail,
            "status": self.status,
        }
        if self.result is not None:
            payload["result"] = self.result.to_dict()
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class AnalysisRun:
    """Mutable per-request bookkeeping; never shared between runs."""

    course: str
    time: str
    race_date: date
    region: str = "GB"
    state: PipelineState = PipelineState.IDLE
    last_event: Optional[ProgressEvent] = None
    error: Optional[str] = None
