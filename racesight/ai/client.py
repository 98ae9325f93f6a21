"""OpenAI API client wrapper gated by the shared quota limiter."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI, RateLimitError

from racesight.ai.quota import QuotaLimiter, QuotaUsage
from racesight.errors import InferenceError, QuotaExceeded

logger = logging.getLogger(__name__)

# Retry settings for provider-side rate limits
MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 20  # seconds if we can't parse the wait time
REQUEST_TIMEOUT = 120.0

# Cost per million tokens (update as pricing changes)
TOKEN_COSTS = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
}
DEFAULT_COST = {"input": 5.00, "output": 15.00}


@dataclass
class TokenUsage:
    """Token usage from a single API call."""

    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AIClient:
    """Inference client. Every request, retries included, passes through the quota limiter."""

    def __init__(
        self,
        quota: QuotaLimiter,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
    ):
        self.quota = quota
        self.model = model
        self._api_key = api_key
        self._client: Optional[AsyncOpenAI] = None
        self.last_usage: Optional[TokenUsage] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise InferenceError("OPENAI_API_KEY not configured", retryable=False)
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=REQUEST_TIMEOUT)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client to free connections."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def usage(self) -> QuotaUsage:
        return self.quota.usage()

    def _parse_retry_after(self, error_message: str) -> float:
        """Extract retry delay from rate limit error message."""
        # Look for "Please try again in X.XXs" or "Please try again in Xs"
        match = re.search(r"try again in (\d+\.?\d*)s", str(error_message))
        if match:
            return float(match.group(1)) + 1  # Add 1s buffer
        return DEFAULT_RETRY_DELAY

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        json_schema: Optional[dict[str, Any]] = None,
    ) -> str:
        """Generate a completion.

        Args:
            system_prompt: System message for the model
            user_prompt: The specific request
            temperature: Creativity level (0-1)
            max_tokens: Maximum response length
            json_schema: ``{"name": ..., "schema": {...}}`` to request structured JSON output

        Returns:
            Response text (a JSON document when ``json_schema`` is given)

        Raises:
            QuotaExceeded: daily quota used up (locally or at the provider)
            InferenceError: transport failure, provider error or empty response
        """
        kwargs: dict[str, Any] = {}
        if json_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": json_schema["name"], "schema": json_schema["schema"], "strict": False},
            }

        for attempt in range(MAX_RETRIES + 1):
            await self.quota.acquire()
            try:
                logger.info(f"Using {self.model} (Chat Completions)")
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs,
                )
            except RateLimitError as e:
                if "insufficient_quota" in str(e):
                    logger.error(f"Provider quota exhausted: {e}")
                    raise QuotaExceeded("Inference provider quota exhausted. Try again tomorrow.")
                if attempt < MAX_RETRIES:
                    retry_after = self._parse_retry_after(str(e))
                    logger.warning(
                        f"Rate limit hit (attempt {attempt + 1}/{MAX_RETRIES + 1}). "
                        f"Waiting {retry_after:.1f}s before retry..."
                    )
                    await asyncio.sleep(retry_after)
                    continue
                logger.error(f"Rate limit: All {MAX_RETRIES + 1} attempts exhausted.")
                raise InferenceError("Inference provider rate limit: retries exhausted")
            except (APITimeoutError, APIConnectionError) as e:
                logger.error(f"Inference transport error: {e}")
                raise InferenceError(f"Inference service unreachable: {e}")
            except APIError as e:
                logger.error(f"OpenAI API error: {e}")
                raise InferenceError(f"Inference service error: {e}")

            try:
                content = response.choices[0].message.content
            except (AttributeError, TypeError, IndexError, KeyError) as e:
                logger.error(f"Malformed API response from {self.model}: {e}")
                raise InferenceError(f"Malformed API response: {e}")
            if not content:
                raise InferenceError("Inference response was empty")

            self._record_usage(response)
            usage = self.last_usage
            usage_str = ""
            if usage:
                usage_str = (
                    f" | tokens: {usage.input_tokens:,}in + {usage.output_tokens:,}out"
                    f" = {usage.total_tokens:,} | ${usage.estimated_cost:.4f}"
                )
            logger.info(f"Generated {len(content)} chars with {self.model}{usage_str}")
            return content

        raise InferenceError("Inference failed after retries")

    def _record_usage(self, response) -> None:
        """Extract and store token usage from API response."""
        raw = getattr(response, "usage", None)
        if raw is None:
            self.last_usage = None
            return
        usage = TokenUsage(model=self.model)
        usage.input_tokens = getattr(raw, "prompt_tokens", 0) or 0
        usage.output_tokens = getattr(raw, "completion_tokens", 0) or 0
        usage.total_tokens = usage.input_tokens + usage.output_tokens
        costs = TOKEN_COSTS.get(self.model, DEFAULT_COST)
        usage.estimated_cost = (
            (usage.input_tokens / 1_000_000) * costs["input"]
            + (usage.output_tokens / 1_000_000) * costs["output"]
        )
        self.last_usage = usage
