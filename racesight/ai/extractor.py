"""Extraction stage: raw race-card markup -> structured per-competitor statistics."""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Generic, Hashable, Optional, TypeVar

from pydantic import ValidationError

from racesight.ai.prompts import (
    BATCH_SCHEMA,
    SINGLE_SCHEMA,
    SYSTEM_INSTRUCTION,
    batch_extraction_prompt,
    single_extraction_prompt,
)
from racesight.config import racing_today
from racesight.errors import ExtractionSchemaViolation, InferenceError, TransportTimeout
from racesight.models import ExtractedStats

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

# Markup beyond this is cut before it is sent for inference
MAX_MARKUP_CHARS = 120_000

RECOVERABLE_ERRORS = (ExtractionSchemaViolation, InferenceError, TransportTimeout)


@dataclass
class FetchOutcome(Generic[K, V]):
    results: dict[K, V] = field(default_factory=dict)
    failed: list[K] = field(default_factory=list)
    used_fallback: bool = False


class ResilientBatchFetch(Generic[K, V]):
    """Fetch many items with one batched call, falling back to one call per item.

    If the batch call raises a recoverable error, every item is fetched
    singly and in order. If the batch succeeds but leaves items out, only
    those are fetched singly. Items whose single call also fails are
    reported in ``failed`` and left out of ``results``. Errors outside
    ``recoverable`` propagate untouched.
    """

    def __init__(
        self,
        batch: Callable[[list[K]], Awaitable[dict[K, V]]],
        single: Callable[[K], Awaitable[V]],
        recoverable: tuple[type[BaseException], ...] = RECOVERABLE_ERRORS,
        label: str = "items",
    ):
        self.batch = batch
        self.single = single
        self.recoverable = recoverable
        self.label = label

    async def run(self, items: list[K]) -> FetchOutcome[K, V]:
        outcome: FetchOutcome[K, V] = FetchOutcome()
        if not items:
            return outcome

        try:
            batch_results = await self.batch(items)
        except self.recoverable as e:
            logger.warning(f"Batch extraction failed, falling back to individual calls for {len(items)} {self.label}: {e}")
            batch_results = {}
            outcome.used_fallback = True

        outcome.results.update({k: v for k, v in batch_results.items() if k in items})
        missing = [item for item in items if item not in outcome.results]
        if missing and not outcome.used_fallback:
            logger.warning(f"Batch response omitted {len(missing)} {self.label}: {missing}")
            outcome.used_fallback = True
        elif not missing:
            logger.info(f"Extracted {len(outcome.results)} {self.label} in 1 call (saved {len(items) - 1} calls)")

        for item in missing:
            try:
                outcome.results[item] = await self.single(item)
            except self.recoverable as e:
                logger.error(f"Failed to extract {item}: {e}")
                outcome.failed.append(item)
        return outcome


def _name_key(name: str) -> str:
    return " ".join(name.casefold().split())


def _reject_constant(token: str) -> float:
    raise ExtractionSchemaViolation(f"Non-finite number {token} in JSON response")


def parse_json_response(text: str) -> object:
    """Parse a model response as strict JSON, tolerating a markdown code fence.

    NaN and Infinity are not JSON and are rejected.
    """
    cleaned = text.strip()
    fence = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL)
    if fence:
        cleaned = fence.group(1)
    try:
        return json.loads(cleaned, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise ExtractionSchemaViolation(f"Failed to parse JSON response: {e}")


def validate_stats(payload: object, name: str) -> ExtractedStats:
    """Validate one competitor payload; the returned name is the requested one."""
    if not isinstance(payload, dict):
        raise ExtractionSchemaViolation(f"Stats for {name} are not an object")
    data = dict(payload)
    data.setdefault("name", name)
    try:
        stats = ExtractedStats.model_validate(data)
    except ValidationError as e:
        raise ExtractionSchemaViolation(f"Incomplete data structure returned for {name}: {e.error_count()} errors")
    return stats if stats.name == name else stats.model_copy(update={"name": name})


class StatsExtractor:
    """Turns race-card markup into ExtractedStats through the inference client."""

    def __init__(self, ai_client, today: Callable[[], date] = racing_today):
        self.ai_client = ai_client
        self._today = today

    async def extract_all(self, markup: str, names: list[str]) -> dict[str, ExtractedStats]:
        """Stats per competitor name. Competitors that cannot be extracted are absent."""
        outcome = await self.extract_with_report(markup, names)
        return outcome.results

    async def extract_with_report(self, markup: str, names: list[str]) -> FetchOutcome[str, ExtractedStats]:
        if len(markup) > MAX_MARKUP_CHARS:
            logger.warning(f"Race-card markup truncated from {len(markup):,} to {MAX_MARKUP_CHARS:,} chars")
            markup = markup[:MAX_MARKUP_CHARS]
        names = list(dict.fromkeys(names))
        logger.info(f"Extracting statistics for {len(names)} competitors")

        fetcher: ResilientBatchFetch[str, ExtractedStats] = ResilientBatchFetch(
            batch=lambda items: self._extract_batch(markup, items),
            single=lambda name: self._extract_single(markup, name),
            label="competitors",
        )
        outcome = await fetcher.run(names)
        if outcome.failed:
            logger.warning(f"No extractable data for: {', '.join(outcome.failed)}")
        return outcome

    async def _extract_batch(self, markup: str, names: list[str]) -> dict[str, ExtractedStats]:
        text = await self.ai_client.generate(
            system_prompt=SYSTEM_INSTRUCTION,
            user_prompt=batch_extraction_prompt(markup, names, self._today()),
            temperature=0.2,
            max_tokens=8192,
            json_schema=BATCH_SCHEMA,
        )
        data = parse_json_response(text)

        # Accept {"competitors": [...]} or an object keyed by competitor name
        if isinstance(data, dict) and isinstance(data.get("competitors"), list):
            entries = data["competitors"]
        elif isinstance(data, dict):
            entries = [dict(v, name=k) if isinstance(v, dict) else v for k, v in data.items()]
        else:
            raise ExtractionSchemaViolation("Batch response is not a JSON object")
        if not entries:
            raise ExtractionSchemaViolation("Batch response contained no competitors")

        by_key = {_name_key(n): n for n in names}
        results: dict[str, ExtractedStats] = {}
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                raise ExtractionSchemaViolation("Batch entry without a competitor name")
            requested: Optional[str] = by_key.get(_name_key(entry["name"]))
            if requested is None:
                logger.debug(f"Ignoring unrequested competitor in batch: {entry['name']}")
                continue
            results[requested] = validate_stats(entry, requested)
        return results

    async def _extract_single(self, markup: str, name: str) -> ExtractedStats:
        text = await self.ai_client.generate(
            system_prompt=SYSTEM_INSTRUCTION,
            user_prompt=single_extraction_prompt(markup, name, self._today()),
            temperature=0.2,
            max_tokens=4096,
            json_schema=SINGLE_SCHEMA,
        )
        return validate_stats(parse_json_response(text), name)
