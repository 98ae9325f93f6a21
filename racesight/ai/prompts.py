"""Prompt templates and structured-output schemas for the inference service."""

import json
from datetime import date

SYSTEM_INSTRUCTION = """You are an expert horse racing handicapping analyst specialising in statistical extraction.

CORE BEHAVIORS:
1. Always return data in valid JSON format when requested
2. Never invent statistics - if a value is not in the source, use null (numbers) or [] (lists)
3. Use numerical values (not strings) for all figures, positions and percentages
4. Lists of recent runs and figures are ordered most recent first

OUTPUT REQUIREMENTS:
- Dates use ISO 8601 (YYYY-MM-DD)
- Percentages are on a 0-100 scale"""

_NUM = {"type": ["number", "null"]}
_STR = {"type": ["string", "null"]}

COMPETITOR_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "speed": {
            "type": "object",
            "properties": {
                "best_figure": _NUM,
                "best_at_distance": _NUM,
                "last_three_figures": {"type": "array", "items": {"type": "number"}},
            },
            "required": ["best_figure", "best_at_distance", "last_three_figures"],
        },
        "form": {
            "type": "object",
            "properties": {
                "last_three_races": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "date": _STR,
                            "position": _NUM,
                            "margin": _NUM,
                            "venue": _STR,
                            "distance": _STR,
                        },
                        "required": ["date", "position", "margin"],
                    },
                },
                "days_since_last_run": _NUM,
                "workouts": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"date": _STR, "distance": _STR, "time_seconds": _NUM},
                        "required": ["date"],
                    },
                },
            },
            "required": ["last_three_races", "days_since_last_run", "workouts"],
        },
        "jockey": {
            "type": "object",
            "properties": {"name": _STR, "meet_win_percent": _NUM},
            "required": ["name", "meet_win_percent"],
        },
        "trainer": {
            "type": "object",
            "properties": {"name": _STR, "meet_win_percent": _NUM},
            "required": ["name", "meet_win_percent"],
        },
    },
    "required": ["name", "speed", "form", "jockey", "trainer"],
}

SINGLE_SCHEMA = {"name": "competitor_stats", "schema": COMPETITOR_SCHEMA}

BATCH_SCHEMA = {
    "name": "race_field_stats",
    "schema": {
        "type": "object",
        "properties": {"competitors": {"type": "array", "items": COMPETITOR_SCHEMA}},
        "required": ["competitors"],
    },
}

_FIELDS = """1. Best speed figure (number or null)
2. Best speed figure at today's distance (number or null)
3. Last 3 speed figures, most recent first (empty array if none)
4. Last 3 race results: date (YYYY-MM-DD), finishing position, margin in lengths, venue, distance
5. Days since last run (from the most recent race date to {today})
6. Recent workouts: date, distance, time in seconds
7. Jockey name and current meet win percentage (0-100)
8. Trainer name and current meet win percentage (0-100)"""

# Marker line listing the requested names as JSON; the offline client reads it
COMPETITORS_MARKER = "COMPETITORS_JSON:"


def single_extraction_prompt(markup: str, name: str, today: date) -> str:
    return f"""Analyze this race-card data and extract the following information for competitor "{name}".
If a piece of information is not present, use null for numbers and empty arrays for lists.

REQUIRED FIELDS:
{_FIELDS.format(today=today.isoformat())}

{COMPETITORS_MARKER} {json.dumps([name])}

Return ONLY valid JSON matching the schema, with "name" set to "{name}". No markdown, no explanations.

Race-card data:
{markup}"""


def batch_extraction_prompt(markup: str, names: list[str], today: date) -> str:
    return f"""Analyze this race-card data and extract information for ALL of these competitors: {", ".join(names)}

For EACH competitor, extract:
{_FIELDS.format(today=today.isoformat())}

{COMPETITORS_MARKER} {json.dumps(names)}

Return a JSON object {{"competitors": [...]}} with one entry per competitor, "name" set exactly as listed.
If a piece of information is not present, use null for numbers and empty arrays for lists.

Race-card data:
{markup}"""


def insight_prompt(course: str, race_number: int, distance: str, surface: str, race_date: date, top_lines: str) -> str:
    return f"""TASK: Provide expert race analysis for Race {race_number} at {course}.

RACE DETAILS:
- Track: {course}
- Distance: {distance}
- Surface: {surface}
- Date: {race_date.isoformat()}

TOP RANKED COMPETITORS (model ranking):
{top_lines}

INSTRUCTIONS:
1. Briefly introduce the top contender (#1) and their key strengths (1 paragraph)
2. Mention 1-2 other competitive runners from the list and what makes them dangerous (1 paragraph)
3. Identify a potential value play to watch (1 paragraph)
4. Keep the total summary to 2-3 concise paragraphs in a professional but accessible tone
5. Only use the figures given above; do not invent news or statistics

OUTPUT FORMAT: Plain text, 2-3 paragraphs, no bullet points or headers."""
