"""Insight stage: short narrative grounded on the top-ranked competitors."""

import logging
from dataclasses import dataclass

from racesight.ai.prompts import SYSTEM_INSTRUCTION, insight_prompt
from racesight.errors import QuotaExceeded, RaceSightError
from racesight.models import CompetitorAnalysis, RaceSlot

logger = logging.getLogger(__name__)

TOP_N = 3

NO_INSIGHTS = "Could not generate insights for this race."
QUOTA_INSIGHTS = "Insights unavailable: the daily analysis limit has been reached. Rankings above are unaffected."
ERROR_INSIGHTS = "Insights are temporarily unavailable for this race. Rankings above are unaffected."


@dataclass(frozen=True)
class Narrative:
    text: str
    degraded: bool = False


def format_top_lines(ranked: list[CompetitorAnalysis], top_n: int = TOP_N) -> str:
    lines = []
    for i, item in enumerate(ranked[:top_n], 1):
        s = item.scores
        lines.append(
            f"{i}. {item.entry.name} (#{item.entry.position}) - Composite Score: {s.composite} "
            f"(Speed: {s.speed:.0f}, Form: {s.form:.0f}, Class: {s.class_:.0f})"
        )
    return "\n".join(lines)


class InsightGenerator:
    """Asks the inference service for a 2-3 paragraph race summary.

    A failure here never fails the analysis: the ranking stands and the
    narrative is replaced with a fixed message flagged as degraded.
    """

    def __init__(self, ai_client):
        self.ai_client = ai_client

    async def generate(self, slot: RaceSlot, ranked: list[CompetitorAnalysis]) -> Narrative:
        if not ranked:
            return Narrative(NO_INSIGHTS, degraded=True)
        prompt = insight_prompt(
            course=slot.course.name,
            race_number=slot.ordinal,
            distance=slot.distance or "Unknown",
            surface=slot.surface or "Unknown",
            race_date=slot.date,
            top_lines=format_top_lines(ranked),
        )
        try:
            text = await self.ai_client.generate(
                system_prompt=SYSTEM_INSTRUCTION,
                user_prompt=prompt,
                temperature=0.7,
                max_tokens=800,
            )
        except QuotaExceeded as e:
            logger.warning(f"Insights skipped for {slot.course.name} {slot.time}: {e}")
            return Narrative(QUOTA_INSIGHTS, degraded=True)
        except RaceSightError as e:
            logger.error(f"Insight generation failed for {slot.course.name} {slot.time}: {e}")
            return Narrative(ERROR_INSIGHTS, degraded=True)

        text = (text or "").strip()
        if not text:
            return Narrative(NO_INSIGHTS, degraded=True)
        return Narrative(text)
