"""Tests for the OpenAI client wrapper."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError, RateLimitError

from racesight.ai.client import AIClient
from racesight.ai.quota import QuotaLimiter
from racesight.errors import InferenceError, QuotaExceeded


def _response(content, prompt_tokens=1200, completion_tokens=300):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _rate_limit(message: str) -> RateLimitError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return RateLimitError(message, response=httpx.Response(429, request=request), body=None)


def _client(clock, *effects) -> tuple[AIClient, AsyncMock]:
    quota = QuotaLimiter(per_minute=100, per_day=100, clock=clock.monotonic, today=clock.today, sleep=clock.sleep)
    ai = AIClient(quota=quota, model="gpt-4o-mini", api_key="sk-test")
    create = AsyncMock(side_effect=list(effects))
    openai_client = MagicMock()
    openai_client.chat.completions.create = create
    ai._client = openai_client
    return ai, create


class TestAIClient:
    """OpenAI wrapper behaviour with a mocked SDK client."""

    @pytest.mark.asyncio
    async def test_generate_records_quota_and_usage(self, clock):
        """A call is counted against quota and its token cost recorded."""
        ai, create = _client(clock, _response('{"ok": true}'))
        schema = {"name": "competitor_stats", "schema": {"type": "object"}}
        text = await ai.generate("system", "user", json_schema=schema)
        assert text == '{"ok": true}'
        assert ai.usage().daily_count == 1
        assert ai.last_usage.total_tokens == 1500
        assert ai.last_usage.estimated_cost == pytest.approx(1200 / 1e6 * 0.15 + 300 / 1e6 * 0.60)
        kwargs = create.await_args.kwargs
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["response_format"]["json_schema"]["name"] == "competitor_stats"

    @pytest.mark.asyncio
    async def test_plain_text_has_no_response_format(self, clock):
        """Calls without a schema request plain text."""
        ai, create = _client(clock, _response("Narrative"))
        await ai.generate("system", "user")
        assert "response_format" not in create.await_args.kwargs

    @pytest.mark.asyncio
    async def test_rate_limit_retried_and_every_attempt_counted(self, clock):
        """Rate limits are retried and each attempt uses quota."""
        ai, create = _client(clock, _rate_limit("Please try again in 1.5s"), _response("ok"))
        with patch("racesight.ai.client.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await ai.generate("system", "user") == "ok"
        sleep.assert_awaited_once_with(2.5)
        assert create.await_count == 2
        assert ai.usage().daily_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, clock):
        """Repeated rate limits give up with InferenceError."""
        ai, _ = _client(clock, *(_rate_limit("slow down") for _ in range(3)))
        with patch("racesight.ai.client.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(InferenceError, match="retries exhausted"):
                await ai.generate("system", "user")

    @pytest.mark.asyncio
    async def test_insufficient_quota_is_terminal(self, clock):
        """Account quota errors are not retried."""
        ai, create = _client(clock, _rate_limit("You exceeded your current quota: insufficient_quota"))
        with pytest.raises(QuotaExceeded):
            await ai.generate("system", "user")
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_connection_error(self, clock):
        """Connection failures map to InferenceError."""
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        ai, _ = _client(clock, APIConnectionError(request=request))
        with pytest.raises(InferenceError, match="unreachable"):
            await ai.generate("system", "user")

    @pytest.mark.asyncio
    async def test_empty_content(self, clock):
        """An empty completion is an error."""
        ai, _ = _client(clock, _response(""))
        with pytest.raises(InferenceError, match="empty"):
            await ai.generate("system", "user")

    @pytest.mark.asyncio
    async def test_local_daily_cap_blocks_before_request(self, clock):
        """The local daily cap stops a call before it is sent."""
        ai, create = _client(clock)
        ai.quota._daily_count = ai.quota.per_day
        with pytest.raises(QuotaExceeded):
            await ai.generate("system", "user")
        create.assert_not_awaited()

    def test_missing_key(self, clock):
        """No API key means the client is unconfigured."""
        ai = AIClient(quota=QuotaLimiter(today=clock.today), api_key="")
        assert not ai.is_configured
        with pytest.raises(InferenceError) as exc:
            ai.client
        assert exc.value.retryable is False
