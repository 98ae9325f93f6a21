"""Race analysis orchestrator.

Runs fetch -> extract -> score -> rank -> insights for a single race and
reports progress after every step. A run either completes with a full
AnalysisResult or fails with one user-facing message; partial rankings are
never returned.
"""

import logging
from datetime import date, datetime, timezone
from typing import AsyncIterator, Callable, Optional

from racesight.ai.extractor import StatsExtractor
from racesight.ai.insights import TOP_N, InsightGenerator
from racesight.config import racing_today
from racesight.errors import AnalysisFailed, InferenceError, NoCompetitors, QuotaExceeded, RaceSightError
from racesight.models import (
    AnalysisResult,
    AnalysisRun,
    CompetitorAnalysis,
    ExtractedStats,
    PipelineState,
    ProgressEvent,
    RaceCard,
    Stage,
)
from racesight.scoring import DEFAULT_WEIGHTS, ScoreWeights, data_confidence, rank, score
from racesight.scrapers.provider import RaceDataProvider
from racesight.scrapers.racecard_file import EXPORT_RATINGS_SOURCE, EXPORT_SOURCE, stats_from_export

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Analysis failed due to an unexpected error. Please try again."


class RaceAnalysisPipeline:
    """Orchestrates one analysis per call. Holds no per-run state itself."""

    def __init__(
        self,
        provider: RaceDataProvider,
        ai_client,
        extractor: Optional[StatsExtractor] = None,
        insights: Optional[InsightGenerator] = None,
        weights: ScoreWeights = DEFAULT_WEIGHTS,
        prefer_export_ratings: bool = False,
        today: Callable[[], date] = racing_today,
    ):
        self.provider = provider
        self.ai_client = ai_client
        self.extractor = extractor or StatsExtractor(ai_client, today=today)
        self.insights = insights or InsightGenerator(ai_client)
        self.weights = weights
        self.prefer_export_ratings = prefer_export_ratings
        self._today = today

    def _health_check(self) -> None:
        if not self.ai_client.is_configured:
            raise InferenceError("Inference service is not configured (set OPENAI_API_KEY)", retryable=False)
        usage = self.ai_client.usage()
        if usage.remaining <= 0:
            raise QuotaExceeded(f"Daily API limit reached ({usage.cap} requests). Resets at midnight.")

    async def _extract(self, card: RaceCard) -> tuple[dict[str, ExtractedStats], str]:
        if self.prefer_export_ratings and card.source == EXPORT_SOURCE:
            today = self._today()
            stats = {entry.name: stats_from_export(entry, today) for entry in card.competitors}
            return stats, EXPORT_RATINGS_SOURCE
        stats = await self.extractor.extract_all(card.raw_markup, card.competitor_names)
        return stats, card.source

    def _score(self, card: RaceCard, stats: dict[str, ExtractedStats]) -> list[CompetitorAnalysis]:
        analyses = []
        for entry in card.competitors:
            extracted = stats.get(entry.name)
            if extracted is None:
                continue
            analyses.append(
                CompetitorAnalysis(
                    entry=entry,
                    stats=extracted,
                    scores=score(extracted, self.weights),
                    data_confidence=data_confidence(extracted),
                )
            )
        return rank(analyses)

    async def analyze_stream(
        self,
        course: str,
        race_time: str,
        race_date: date,
        region: str = "GB",
        race_number: int = 1,
        run: Optional[AnalysisRun] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Analyse one race, yielding a ProgressEvent per step.

        The last event is either ``Stage.COMPLETE`` carrying the result, or
        an error event at the idle baseline (percent 0) carrying
        ``{error, type, retryable}``.
        """
        run = run or AnalysisRun(course=course, time=race_time, race_date=race_date, region=region)
        run.state = PipelineState.RUNNING
        run.error = None

        def evt(stage: Stage, percent: int, detail: str, status: str = "running", **extra) -> ProgressEvent:
            event = ProgressEvent(stage=stage, percent=percent, detail=detail, status=status, **extra)
            run.last_event = event
            return event

        label = f"{course} {race_time} on {race_date.isoformat()}"
        try:
            yield evt(Stage.CONNECTING, 5, "Checking inference service...")
            self._health_check()
            yield evt(Stage.CONNECTING, 10, "Inference service ready", "done")

            yield evt(Stage.FETCHING, 15, f"Fetching race card for {label}...")
            card = await self.provider.get_race_card(course, race_time, race_date, region, race_number)
            if card.is_synthetic:
                logger.warning(f"Using synthetic field for {label}: {'; '.join(card.provider_errors)}")
                yield evt(Stage.FETCHING, 25, "Live sources unavailable - using synthetic fallback data", "warning")
            if not card.competitors:
                raise NoCompetitors(f"No competitors found for {label}")
            yield evt(Stage.FETCHING, 30, f"Found {len(card.competitors)} competitors ({card.source})", "done")

            yield evt(Stage.EXTRACTING, 35, f"Extracting statistics for {len(card.competitors)} competitors...")
            stats, source = await self._extract(card)
            dropped = tuple(name for name in card.competitor_names if name not in stats)
            if dropped:
                yield evt(Stage.EXTRACTING, 65, f"No usable data for {len(dropped)} competitors: {', '.join(dropped)}", "warning")
            yield evt(Stage.EXTRACTING, 70, f"Statistics extracted for {len(stats)} competitors", "done")

            yield evt(Stage.SCORING, 75, "Calculating scores...")
            ranked = self._score(card, stats)
            if not ranked:
                raise NoCompetitors(f"No competitor in {label} had extractable statistics")
            yield evt(Stage.SCORING, 85, f"Top pick: {ranked[0].entry.name} ({ranked[0].scores.composite})", "done")

            yield evt(Stage.INSIGHTS, 90, f"Generating insights for top {min(TOP_N, len(ranked))}...")
            narrative = await self.insights.generate(card.slot, ranked)
            if narrative.degraded:
                yield evt(Stage.INSIGHTS, 95, "Insights unavailable - rankings unaffected", "warning")
            else:
                yield evt(Stage.INSIGHTS, 95, "Insights generated", "done")

            result = AnalysisResult(
                course=card.course,
                slot=card.slot,
                ranked_competitors=tuple(ranked),
                narrative=narrative.text,
                timestamp=datetime.now(timezone.utc),
                source=source,
                is_synthetic=card.is_synthetic,
                narrative_degraded=narrative.degraded,
                dropped_competitors=dropped,
            )
            run.state = PipelineState.SUCCEEDED
            logger.info(f"Analysis complete for {label}: {len(ranked)} ranked, {len(dropped)} dropped")
            yield evt(Stage.COMPLETE, 100, f"Analysis complete for {label}", "complete", result=result)

        except RaceSightError as e:
            logger.error(f"Analysis failed for {label}: {e.kind}: {e.message}")
            run.state = PipelineState.FAILED
            run.error = e.message
            yield evt(Stage.IDLE, 0, e.message, "error", error=e.to_dict())
        except Exception as e:
            logger.exception(f"Unexpected error analysing {label}: {e}")
            run.state = PipelineState.FAILED
            run.error = GENERIC_FAILURE
            error = {"error": GENERIC_FAILURE, "type": "AnalysisFailed", "retryable": True}
            yield evt(Stage.IDLE, 0, GENERIC_FAILURE, "error", error=error)

    async def analyze(
        self,
        course: str,
        race_time: str,
        race_date: date,
        region: str = "GB",
        race_number: int = 1,
    ) -> AnalysisResult:
        """Run an analysis to completion.

        Raises:
            AnalysisFailed: the run failed; carries the message, error type and retry hint
        """
        last: Optional[ProgressEvent] = None
        async for event in self.analyze_stream(course, race_time, race_date, region, race_number):
            last = event
        if last is None or last.result is None:
            error = (last.error if last else None) or {"error": GENERIC_FAILURE, "type": "AnalysisFailed", "retryable": True}
            raise AnalysisFailed(error["error"], kind=error["type"], retryable=error["retryable"])
        return last.result
