"""Scoring engine: ExtractedStats -> sub-scores, composite and ranking.

Everything here is pure and deterministic. Missing statistics degrade to
neutral values instead of zero, so a thin record ranks mid-field rather
than last.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from racesight.models import CompetitorAnalysis, ExtractedStats, ScoreSet

# Speed figures map linearly: FIGURE_FLOOR -> 0, FIGURE_FLOOR + FIGURE_RANGE -> 100
FIGURE_FLOOR = 20.0
FIGURE_RANGE = 100.0
NEUTRAL_FIGURE = 70.0
BEST_FIGURE_WEIGHT = 0.4
RECENT_FIGURE_WEIGHT = 0.6

NEUTRAL_SCORE = 50.0

FINISH_POINTS = {1: 35.0, 2: 25.0, 3: 15.0, 4: 8.0, 5: 8.0}
UNPLACED_POINTS = 3.0
RECENCY_WEIGHTS = (1.0, 0.8, 0.6)  # most recent first
LONG_LAYOFF_DAYS, LONG_LAYOFF_PENALTY = 60, 15.0
SHORT_LAYOFF_DAYS, SHORT_LAYOFF_PENALTY = 30, 8.0


@dataclass(frozen=True)
class ScoreWeights:
    """Composite weights. Construction fails unless they sum to 1.00."""

    speed: float = 0.30
    form: float = 0.30
    class_: float = 0.20
    pace: float = 0.10
    jockey: float = 0.05
    trainer: float = 0.05

    def __post_init__(self):
        total = self.speed + self.form + self.class_ + self.pace + self.jockey + self.trainer
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Composite weights must sum to 1.00, got {total:.4f}")


DEFAULT_WEIGHTS = ScoreWeights()


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def speed_score(stats: ExtractedStats) -> float:
    best = stats.speed.best_figure
    if best is None:
        best = NEUTRAL_FIGURE
    figures = stats.speed.last_three_figures
    recent = sum(figures) / len(figures) if figures else NEUTRAL_FIGURE
    blended = BEST_FIGURE_WEIGHT * best + RECENT_FIGURE_WEIGHT * recent
    return clamp((blended - FIGURE_FLOOR) / FIGURE_RANGE * 100)


def _finish_points(position: Optional[int]) -> float:
    if position is None:
        return UNPLACED_POINTS
    return FINISH_POINTS.get(position, UNPLACED_POINTS)


def form_score(stats: ExtractedStats) -> float:
    races = stats.form.last_three_races
    if not races:
        return NEUTRAL_SCORE
    total = sum(
        _finish_points(race.position) * weight
        for race, weight in zip(races, RECENCY_WEIGHTS)
    )
    days = stats.form.days_since_last_run
    if days is not None:
        if days > LONG_LAYOFF_DAYS:
            total -= LONG_LAYOFF_PENALTY
        elif days > SHORT_LAYOFF_DAYS:
            total -= SHORT_LAYOFF_PENALTY
    return clamp(total)


def _percent_score(percent: Optional[float]) -> float:
    return NEUTRAL_SCORE if percent is None else clamp(percent)


def score(stats: ExtractedStats, weights: ScoreWeights = DEFAULT_WEIGHTS) -> ScoreSet:
    """Six sub-scores in [0, 100] plus their weighted composite (one decimal)."""
    speed = speed_score(stats)
    form = form_score(stats)
    # Class and pace have no modelled inputs yet
    class_ = NEUTRAL_SCORE
    pace = NEUTRAL_SCORE
    jockey = _percent_score(stats.jockey.meet_win_percent)
    trainer = _percent_score(stats.trainer.meet_win_percent)
    composite = (
        speed * weights.speed
        + form * weights.form
        + class_ * weights.class_
        + pace * weights.pace
        + jockey * weights.jockey
        + trainer * weights.trainer
    )
    return ScoreSet(
        speed=speed,
        form=form,
        class_=class_,
        pace=pace,
        jockey=jockey,
        trainer=trainer,
        composite=round(clamp(composite), 1),
    )


def data_confidence(stats: ExtractedStats) -> float:
    """Share of the scored signals actually present, in [0, 1]."""
    signals = (
        stats.speed.best_figure is not None,
        bool(stats.speed.last_three_figures),
        bool(stats.form.last_three_races),
        stats.form.days_since_last_run is not None,
        stats.jockey.meet_win_percent is not None,
        stats.trainer.meet_win_percent is not None,
    )
    return round(sum(signals) / len(signals), 2)


def rank(analyses: Iterable[CompetitorAnalysis]) -> list[CompetitorAnalysis]:
    """Descending composite; equal composites by ascending position number."""
    return sorted(analyses, key=lambda a: (-a.scores.composite, a.entry.position))
