"""Mock AI client for offline runs.

Returns deterministic statistics and a canned narrative without making any
real API calls. Used when RACESIGHT_MOCK_EXTERNAL=true. Calls still go
through the quota limiter so usage accounting behaves as in production.
"""

import json
import logging
import re
import zlib
from typing import Any, Optional

from racesight.ai.client import TokenUsage
from racesight.ai.prompts import COMPETITORS_MARKER
from racesight.ai.quota import QuotaLimiter, QuotaUsage

logger = logging.getLogger(__name__)

CANNED_NARRATIVE = """{top} sets the standard here on the combined figures, with the best recent speed ratings in the field and a jockey/trainer combination in form at the meeting. Expect a forward, positive ride.

The main dangers look to be the next two in the ranking. Both have shown enough in their last three runs to be competitive if the favourite does not run to its best, and the pace setup should suit horses that can sit handy.

For value, look slightly further down the list at anything whose recent form is better than its price suggests. This is mock content generated offline for testing."""

_MARKER_RE = re.compile(re.escape(COMPETITORS_MARKER) + r"\s*(\[.*?\])\s*$", re.MULTILINE)
_TOP_RE = re.compile(r"^1\.\s+(.+?)\s+\(#", re.MULTILINE)


def _requested_names(prompt: str) -> list[str]:
    match = _MARKER_RE.search(prompt)
    if not match:
        return []
    try:
        names = json.loads(match.group(1))
    except json.JSONDecodeError:
        return []
    return [n for n in names if isinstance(n, str)]


def mock_stats(name: str) -> dict[str, Any]:
    """Stable per-name statistics in the extraction schema shape."""
    seed = zlib.crc32(name.upper().encode())
    best = 70 + seed % 30
    figures = [best - (seed >> shift) % 12 for shift in (3, 7, 11)]
    positions = [1 + (seed >> shift) % 6 for shift in (2, 5, 9)]
    return {
        "name": name,
        "speed": {
            "best_figure": best,
            "best_at_distance": best - seed % 5,
            "last_three_figures": figures,
        },
        "form": {
            "last_three_races": [
                {"date": None, "position": p, "margin": round((p - 1) * 1.5, 1), "venue": None, "distance": None}
                for p in positions
            ],
            "days_since_last_run": 10 + seed % 50,
            "workouts": [],
        },
        "jockey": {"name": None, "meet_win_percent": 5 + seed % 25},
        "trainer": {"name": None, "meet_win_percent": 5 + (seed >> 4) % 25},
    }


class MockAIClient:
    """Mock AI client that returns canned content without API calls.

    Matches the interface of AIClient so it can be swapped in transparently.
    """

    def __init__(self, quota: QuotaLimiter, **kwargs):
        self.quota = quota
        self.model = "mock"
        self.last_usage: Optional[TokenUsage] = TokenUsage(model="mock")

    @property
    def is_configured(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    def usage(self) -> QuotaUsage:
        return self.quota.usage()

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        json_schema: Optional[dict[str, Any]] = None,
    ) -> str:
        """Return canned content shaped by the requested schema."""
        await self.quota.acquire()
        self.last_usage = TokenUsage(model="mock")

        if json_schema is None:
            top = _TOP_RE.search(user_prompt)
            logger.info("[MOCK] generate() called - returning canned narrative")
            return CANNED_NARRATIVE.format(top=top.group(1) if top else "The top-rated runner")

        names = _requested_names(user_prompt)
        logger.info(f"[MOCK] generate() called for {len(names)} competitors ({json_schema.get('name')})")
        if json_schema.get("name") == "race_field_stats":
            return json.dumps({"competitors": [mock_stats(n) for n in names]})
        return json.dumps(mock_stats(names[0] if names else "UNKNOWN"))
