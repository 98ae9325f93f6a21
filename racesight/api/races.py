"""API endpoints for courses, races and race analysis."""

import json
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from racesight.config import racing_today
from racesight.errors import RaceSightError

logger = logging.getLogger(__name__)

router = APIRouter()


class BadRequest(RaceSightError):
    """Malformed query or body parameter."""


class AnalyzeRequest(BaseModel):
    course: str
    time: str
    date: Optional[str] = None
    region: Optional[str] = None
    race_number: int = 1


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return racing_today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise BadRequest(f"Invalid date '{value}', expected YYYY-MM-DD")


def _region(request: Request, region: Optional[str]) -> str:
    return (region or request.app.state.settings.default_region).upper()


@router.get("/usage")
async def get_usage(request: Request):
    """Daily inference usage against the cap."""
    return {"success": True, "usage": request.app.state.ai_client.usage().to_dict()}


@router.get("/racecourses")
async def list_racecourses(request: Request, date: Optional[str] = None, region: Optional[str] = None):
    """Courses racing on a date."""
    race_date = _parse_date(date)
    region = _region(request, region)
    courses = await request.app.state.provider.get_courses(race_date, region)
    return {"success": True, "date": race_date.isoformat(), "region": region, "courses": courses}


@router.get("/races")
async def list_races(request: Request, course: str, date: Optional[str] = None, region: Optional[str] = None):
    """Race slots at a course, in post-time order."""
    race_date = _parse_date(date)
    region = _region(request, region)
    slots = await request.app.state.provider.get_race_slots(course, race_date, region)
    return {
        "success": True,
        "course": slots[0].course.name if slots else course,
        "date": race_date.isoformat(),
        "region": region,
        "races": [s.to_dict() for s in slots],
    }


@router.get("/race")
async def get_race(
    request: Request, course: str, time: str, date: Optional[str] = None, region: Optional[str] = None
):
    """Full race card for one slot."""
    race_date = _parse_date(date)
    card = await request.app.state.provider.get_race_details(course, time, race_date, _region(request, region))
    return {
        "success": True,
        "race": card.slot.to_dict(),
        "competitors": [c.to_dict() for c in card.competitors],
        "source": card.source,
    }


@router.post("/analyze-race")
async def analyze_race(request: Request, body: AnalyzeRequest):
    """Run the full analysis and return the ranked result."""
    race_date = _parse_date(body.date)
    region = _region(request, body.region)
    logger.info(f"Analysis requested for {body.course} {body.time} on {race_date} ({region})")
    result = await request.app.state.pipeline.analyze(body.course, body.time, race_date, region, body.race_number)
    return {"success": True, "result": result.to_dict()}


@router.get("/analyze-race/stream")
async def analyze_race_stream(
    request: Request,
    course: str,
    time: str,
    date: Optional[str] = None,
    region: Optional[str] = None,
    race_number: int = 1,
):
    """SSE stream of analysis progress; the final event carries the result or the error."""
    race_date = _parse_date(date)
    region = _region(request, region)
    pipeline = request.app.state.pipeline

    async def event_generator():
        async for event in pipeline.analyze_stream(course, time, race_date, region, race_number):
            yield f"data: {json.dumps(event.to_dict())}\n\n"

    return StreamingResponse(event_generator(), media_type="text/event-stream")
