"""Tests for the extraction stage and the batch/singular fetch strategy."""

import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from racesight.ai.extractor import ResilientBatchFetch, StatsExtractor, parse_json_response, validate_stats
from racesight.ai.mock_client import mock_stats
from racesight.errors import ExtractionSchemaViolation, InferenceError, QuotaExceeded

NAMES = ["ALPHA", "BRAVO", "CHARLIE"]


def _extractor(*responses) -> tuple[StatsExtractor, AsyncMock]:
    client = MagicMock()
    client.generate = AsyncMock(side_effect=list(responses))
    return StatsExtractor(client, today=lambda: date(2025, 1, 1)), client.generate


def _batch(names) -> str:
    return json.dumps({"competitors": [mock_stats(n) for n in names]})


def _single(name) -> str:
    return json.dumps(mock_stats(name))


class TestParsing:
    """Response parsing and per-competitor validation."""

    def test_plain_json(self):
        """Bare JSON parses as-is."""
        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        """A markdown code fence around the JSON is stripped."""
        assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}

    def test_invalid_json_is_schema_violation(self):
        """Prose instead of JSON is a schema violation."""
        with pytest.raises(ExtractionSchemaViolation):
            parse_json_response("Sorry, I cannot help with that")

    @pytest.mark.parametrize("text", [
        '{"best_figure": NaN}',
        '{"best_figure": Infinity}',
        '{"best_figure": -Infinity}',
    ])
    def test_non_finite_numbers_are_schema_violation(self, text):
        """NaN and Infinity are not strict JSON."""
        with pytest.raises(ExtractionSchemaViolation, match="Non-finite"):
            parse_json_response(text)

    def test_non_finite_value_fails_validation(self):
        """Infinite floats that reach validation are rejected too."""
        payload = mock_stats("ALPHA")
        payload["jockey"]["meet_win_percent"] = float("inf")
        with pytest.raises(ExtractionSchemaViolation, match="ALPHA"):
            validate_stats(payload, "ALPHA")

    def test_missing_sub_object_is_schema_violation(self):
        """Every stats sub-object is mandatory."""
        payload = mock_stats("ALPHA")
        del payload["form"]
        with pytest.raises(ExtractionSchemaViolation, match="ALPHA"):
            validate_stats(payload, "ALPHA")

    def test_requested_name_wins(self):
        """Returned stats carry the requested spelling of the name."""
        stats = validate_stats(mock_stats("alpha"), "ALPHA")
        assert stats.name == "ALPHA"


class TestStatsExtractor:
    """Extraction through the inference client."""

    @pytest.mark.asyncio
    async def test_single_batch_call_for_whole_field(self):
        """A good batch response needs exactly one call."""
        extractor, generate = _extractor(_batch(NAMES))
        stats = await extractor.extract_all("<html/>", NAMES)
        assert sorted(stats) == sorted(NAMES)
        assert generate.await_count == 1
        assert generate.await_args.kwargs["json_schema"]["name"] == "race_field_stats"

    @pytest.mark.asyncio
    async def test_malformed_batch_falls_back_to_n_single_calls(self):
        """Unparsable batch output triggers one single call per competitor."""
        extractor, generate = _extractor("not json", *(_single(n) for n in NAMES))
        stats = await extractor.extract_all("<html/>", NAMES)
        assert list(stats) == NAMES
        # 1 batch + exactly one single call per competitor
        assert generate.await_count == 1 + len(NAMES)
        assert all(c.kwargs["json_schema"]["name"] == "competitor_stats" for c in generate.await_args_list[1:])

    @pytest.mark.asyncio
    async def test_non_finite_batch_falls_back(self):
        """A batch with NaN figures is discarded and every competitor is fetched singly."""
        data = {"competitors": [mock_stats(n) for n in NAMES]}
        data["competitors"][0]["speed"]["best_figure"] = float("nan")
        data["competitors"][1]["jockey"]["meet_win_percent"] = float("inf")
        # json.dumps writes these as the bare NaN / Infinity tokens
        bad = json.dumps(data)
        extractor, generate = _extractor(bad, *(_single(n) for n in NAMES))
        outcome = await extractor.extract_with_report("<html/>", NAMES)
        assert sorted(outcome.results) == sorted(NAMES)
        assert outcome.used_fallback
        assert generate.await_count == 1 + len(NAMES)

    @pytest.mark.asyncio
    async def test_batch_transport_error_falls_back(self):
        """Inference errors on the batch call also fall back."""
        extractor, generate = _extractor(InferenceError("boom"), *(_single(n) for n in NAMES))
        stats = await extractor.extract_all("<html/>", NAMES)
        assert len(stats) == 3
        assert generate.await_count == 4

    @pytest.mark.asyncio
    async def test_single_failure_drops_only_that_competitor(self):
        """A failed single call drops only its own competitor."""
        extractor, _ = _extractor("{}", _single("ALPHA"), "garbage", _single("CHARLIE"))
        outcome = await extractor.extract_with_report("<html/>", NAMES)
        assert sorted(outcome.results) == ["ALPHA", "CHARLIE"]
        assert outcome.failed == ["BRAVO"]
        assert outcome.used_fallback

    @pytest.mark.asyncio
    async def test_names_missing_from_batch_fetched_singly(self):
        """Only competitors the batch left out are fetched singly."""
        extractor, generate = _extractor(_batch(["ALPHA", "charlie"]), _single("BRAVO"))
        stats = await extractor.extract_all("<html/>", NAMES)
        assert sorted(stats) == sorted(NAMES)
        assert stats["CHARLIE"].name == "CHARLIE"
        assert generate.await_count == 2

    @pytest.mark.asyncio
    async def test_unrequested_names_ignored(self):
        """Competitors nobody asked for are dropped from the batch."""
        extractor, _ = _extractor(_batch(NAMES + ["INTRUDER"]))
        stats = await extractor.extract_all("<html/>", NAMES)
        assert "INTRUDER" not in stats

    @pytest.mark.asyncio
    async def test_object_keyed_by_name_accepted(self):
        """A batch keyed by competitor name is accepted."""
        payload = {n: {k: v for k, v in mock_stats(n).items() if k != "name"} for n in NAMES}
        extractor, generate = _extractor(json.dumps(payload))
        stats = await extractor.extract_all("<html/>", NAMES)
        assert sorted(stats) == sorted(NAMES)
        assert generate.await_count == 1

    @pytest.mark.asyncio
    async def test_quota_exceeded_propagates(self):
        """Quota exhaustion is not recoverable and stops extraction."""
        extractor, generate = _extractor(QuotaExceeded("Daily API limit reached"))
        with pytest.raises(QuotaExceeded):
            await extractor.extract_all("<html/>", NAMES)
        assert generate.await_count == 1

    @pytest.mark.asyncio
    async def test_quota_exceeded_during_fallback_propagates(self):
        """Quota exhaustion mid-fallback also stops extraction."""
        extractor, _ = _extractor("bad", _single("ALPHA"), QuotaExceeded("Daily API limit reached"))
        with pytest.raises(QuotaExceeded):
            await extractor.extract_all("<html/>", NAMES)

    @pytest.mark.asyncio
    async def test_empty_field_makes_no_calls(self):
        """No competitors, no inference calls."""
        extractor, generate = _extractor()
        assert await extractor.extract_all("<html/>", []) == {}
        generate.assert_not_awaited()


class TestResilientBatchFetch:
    """Generic batch-then-single strategy."""

    @pytest.mark.asyncio
    async def test_generic_items(self):
        """Works for any item type; failed singles are reported."""
        async def batch(items):
            raise ExtractionSchemaViolation("bad batch")

        async def single(item):
            if item == 2:
                raise InferenceError("no")
            return item * 10

        outcome = await ResilientBatchFetch(batch, single).run([1, 2, 3])
        assert outcome.results == {1: 10, 3: 30}
        assert outcome.failed == [2]

    @pytest.mark.asyncio
    async def test_non_recoverable_error_propagates(self):
        """Errors outside the recoverable set are not swallowed."""
        async def batch(items):
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await ResilientBatchFetch(batch, AsyncMock()).run([1])
