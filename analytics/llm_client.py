"""
LLM client for sales forecasts using Anthropic Claude.

Returns the model's raw text. Every provider failure is translated into a
classified ForecastError so callers can choose user guidance by kind.
"""
import asyncio
from typing import Optional

import anthropic
from anthropic import AsyncAnthropic

from analytics.config import config
from analytics.exceptions import (
    ForecastError,
    ForecastUnavailable,
    ForecastUnknownError,
    QuotaExceeded,
    RateLimited,
)
from analytics.observability import get_logger

logger = get_logger(__name__)

OVERLOADED_STATUS = 529

QUOTA_MARKERS = ("quota", "credit balance", "billing")
RATE_MARKERS = ("rate limit", "overloaded", "too many requests")


def _retry_after(exc: anthropic.APIStatusError) -> Optional[int]:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    try:
        return int(float(value)) if value else None
    except ValueError:
        return None


def classify_api_error(exc: Exception) -> ForecastError:
    """
    Map an Anthropic SDK exception to a ForecastError subclass.

    Status-typed errors are classified by type; anything else falls back to
    matching the message text.
    """
    details = str(exc)
    text = details.lower()

    if isinstance(exc, (anthropic.APITimeoutError, asyncio.TimeoutError)):
        return ForecastUnavailable("Forecast model did not respond in time", details)
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimited("Forecast service is rate-limited", details, _retry_after(exc))
    if isinstance(exc, anthropic.NotFoundError):
        return ForecastUnavailable("Forecast model is not available", details)
    if isinstance(exc, anthropic.AuthenticationError):
        return ForecastUnavailable("Forecast service rejected the API key", details)
    if isinstance(exc, (anthropic.PermissionDeniedError, anthropic.BadRequestError)):
        if any(marker in text for marker in QUOTA_MARKERS):
            return QuotaExceeded("Forecast quota exceeded", details)
        return ForecastUnknownError("Forecast request was rejected", details)
    if isinstance(exc, anthropic.APIStatusError) and exc.status_code == OVERLOADED_STATUS:
        return RateLimited("Forecast service is overloaded", details, _retry_after(exc))
    if isinstance(exc, anthropic.InternalServerError):
        return RateLimited("Forecast service is temporarily busy", details)

    if any(marker in text for marker in QUOTA_MARKERS):
        return QuotaExceeded("Forecast quota exceeded", details)
    if any(marker in text for marker in RATE_MARKERS):
        return RateLimited("Forecast service is busy", details)
    if "not found" in text and "model" in text:
        return ForecastUnavailable("Forecast model is not available", details)
    return ForecastUnknownError("Forecast request failed", details)


class LLMClient:
    """Async client for Claude forecasts."""

    SYSTEM_PROMPT = """You are a sales forecasting analyst for a B2B wholesale business.
You receive monthly historical figures and predict the following months.

Important guidelines:
- Respond with a single JSON object and nothing else
- Use plain numbers without currency symbols or thousand separators
- Base predictions on trend and seasonality visible in the history
- Keep insights and recommendations short and actionable"""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514", timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client: Optional[AsyncAnthropic] = None

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy-initialize Anthropic client."""
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    @property
    def is_available(self) -> bool:
        """Check if LLM is configured."""
        return bool(self.api_key)

    async def complete(self, prompt: str, max_tokens: int = 2000, timeout: float = None) -> str:
        """
        Send a single-turn prompt and return the text of the reply.

        Args:
            prompt: User prompt
            max_tokens: Max response tokens
            timeout: Seconds to wait for the reply (defaults to client timeout)

        Raises:
            ForecastError: Classified provider failure
        """
        if not self.is_available:
            raise ForecastUnavailable(
                "Forecast model is not configured",
                "Set ANTHROPIC_API_KEY to enable forecasts"
            )

        timeout = timeout or self.timeout
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=max_tokens,
                    system=self.SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=timeout
            )
        except (anthropic.APIError, asyncio.TimeoutError) as e:
            error = classify_api_error(e)
            logger.error(f"Anthropic API error: {e}", extra={"kind": error.kind})
            raise error from e

        logger.info(
            "Forecast completion received",
            extra={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
                "stop_reason": response.stop_reason,
            }
        )
        return "".join(block.text for block in response.content if block.type == "text")


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get singleton LLM client instance."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient(
            api_key=config.forecast.anthropic_api_key,
            model=config.forecast.model,
            timeout=config.forecast.request_timeout,
        )
    return _llm_client
