"""
Forecast orchestration: history -> LLM prediction -> validated ForecastResult.

Lifecycle of one request:

    IDLE -> REQUESTING -> SUCCEEDED | FAILED

A cooldown check runs before REQUESTING and raises CooldownActive without
contacting the model. Only SUCCEEDED updates the cooldown timestamp, so a
failed attempt never blocks a retry.

Failures are classified (model_unavailable, rate_limited, quota_exceeded,
invalid_response, unknown) only to pick user guidance; control flow is the
same for every kind.
"""
import json
import math
import re
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from analytics.config import config
from analytics.exceptions import (
    CooldownActive,
    ForecastError,
    ForecastUnknownError,
    InvalidForecastResponse,
)
from analytics.models import ForecastMetric, ForecastResult, HistoricalMonth, MonthlyPrediction
from analytics.observability import get_logger, Timer, metrics
from analytics.periods import shift_month
from analytics.validators import validate_forecast_period

logger = get_logger(__name__)

# Model-supplied totalGrowth is kept only when this close to the computed value
GROWTH_TOLERANCE_PP = 0.5


class ForecastState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


SUGGESTIONS: Dict[str, List[str]] = {
    "model_unavailable": [
        "The AI model is currently unavailable",
        "Contact support to update model configuration",
        "Try again later when the model is available",
    ],
    "rate_limited": [
        "The AI service is experiencing high demand",
        "Wait a few moments and try again",
        "Consider using a different time",
    ],
    "quota_exceeded": [
        "AI service quota has been exceeded",
        "Wait for quota to reset",
        "Contact support for quota increase",
    ],
    "unknown": [
        "Check Anthropic API key configuration",
        "Verify backend connectivity",
        "Ensure historical data is available",
    ],
}


def suggestions_for(kind: str) -> List[str]:
    """Suggested actions for a failure kind; generic list for anything unmapped."""
    return list(SUGGESTIONS.get(kind, SUGGESTIONS["unknown"]))


# ═══════════════════════════════════════════════════════════════════════════════
# COOLDOWN
# ═══════════════════════════════════════════════════════════════════════════════

class CooldownTracker:
    """
    Per-client forecast cooldown.

    Remembers the time of each client's last successful forecast; a new
    request inside the window raises CooldownActive.
    """

    def __init__(self, cooldown_seconds: float = None, clock: Callable[[], float] = time.monotonic):
        self.cooldown_seconds = (
            config.forecast.cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        )
        self._clock = clock
        self._last_success: Dict[str, float] = {}

    def remaining(self, client_key: str) -> float:
        last = self._last_success.get(client_key)
        if last is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - last))

    def check(self, client_key: str) -> None:
        """
        Raises:
            CooldownActive: If the client succeeded within the cooldown window
        """
        remaining = self.remaining(client_key)
        if remaining > 0:
            raise CooldownActive(remaining)

    def mark_success(self, client_key: str) -> None:
        self._last_success[client_key] = self._clock()

    def reset(self) -> None:
        self._last_success.clear()


# ═══════════════════════════════════════════════════════════════════════════════
# RESPONSE PAYLOAD
# ═══════════════════════════════════════════════════════════════════════════════

class PredictionPayload(BaseModel):
    """One month as returned by the model; extra numeric fields are kept."""
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    month: str
    predicted: float
    topProducts: List[Any] = Field(default_factory=list)


class ForecastPayload(BaseModel):
    """Top-level JSON object the model is asked to return."""
    model_config = ConfigDict(allow_inf_nan=False)

    monthlyBreakdown: List[PredictionPayload] = Field(min_length=1)
    totalGrowth: Optional[float] = None
    insights: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json(text: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Accepts a bare object, a fenced ```json block, or an object surrounded
    by prose.

    Raises:
        InvalidForecastResponse: If no JSON object can be decoded
    """
    if not text or not text.strip():
        raise InvalidForecastResponse("Empty forecast response", got="")

    fenced = _FENCE_RE.search(text)
    candidate = fenced.group(1) if fenced else text
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end <= start:
        raise InvalidForecastResponse("Forecast response is not JSON", got=text[:200])

    try:
        data = json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as e:
        raise InvalidForecastResponse("Forecast response is not valid JSON", str(e), got=text[:200])

    if not isinstance(data, dict):
        raise InvalidForecastResponse("Forecast response is not a JSON object", got=text[:200])
    return data


def parse_payload(text: str) -> ForecastPayload:
    data = extract_json(text)
    try:
        return ForecastPayload.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidForecastResponse(
            "Forecast response has no usable monthly predictions",
            f"{e.error_count()} validation error(s)",
            got=json.dumps(data)[:200],
        )


# ═══════════════════════════════════════════════════════════════════════════════
# DERIVED FIGURES
# ═══════════════════════════════════════════════════════════════════════════════

def compute_mom_changes(values: Sequence[float]) -> List[float]:
    """
    Month-over-month percentage change, rounded to 2 places.

    The first month is 0; a month following a zero month is also 0.
    """
    changes: List[float] = []
    for index, value in enumerate(values):
        previous = values[index - 1] if index else None
        if not previous:
            changes.append(0.0)
        else:
            changes.append(round((value - previous) / previous * 100, 2))
    return changes


def compute_total_growth(values: Sequence[float]) -> float:
    """Percentage change from the first to the last value, rounded to 2 places."""
    if len(values) < 2 or not values[0]:
        return 0.0
    return round((values[-1] - values[0]) / values[0] * 100, 2)


def reconcile_total_growth(supplied: Optional[float], computed: float) -> float:
    if supplied is not None and abs(supplied - computed) <= GROWTH_TOLERANCE_PP:
        return round(supplied, 2)
    return computed


def build_result(
    payload: ForecastPayload,
    period_count: int,
    metric: ForecastMetric,
) -> ForecastResult:
    """Turn a validated payload into a ForecastResult with derived growth figures."""
    entries = payload.monthlyBreakdown[:period_count]
    values = [entry.predicted for entry in entries]
    changes = compute_mom_changes(values)

    breakdown = []
    for entry, change in zip(entries, changes):
        extras = {
            key: float(value)
            for key, value in (entry.model_extra or {}).items()
            if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
        }
        breakdown.append(MonthlyPrediction(
            month=entry.month,
            predicted=entry.predicted,
            mom_change=change,
            values=extras,
            top_products=list(entry.topProducts),
        ))

    return ForecastResult(
        metric=metric,
        period_count=period_count,
        monthly_breakdown=breakdown,
        total_growth=reconcile_total_growth(payload.totalGrowth, compute_total_growth(values)),
        insights=payload.insights,
        recommendations=payload.recommendations,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# PROMPT
# ═══════════════════════════════════════════════════════════════════════════════

def target_months(history: Sequence[HistoricalMonth], period_count: int) -> List[str]:
    """Labels of the months following the last history month."""
    last = history[-1].month_start if history else date.today().replace(day=1)
    return [shift_month(last, offset).strftime("%Y-%m") for offset in range(1, period_count + 1)]


def build_prompt(
    history: Sequence[HistoricalMonth],
    period_count: int,
    metric: ForecastMetric,
) -> str:
    lines = [
        f"{m.label}: sales={m.total_revenue:.2f}, orders={m.total_orders}, units={m.total_units}, "
        f"bulkOrders={m.bulk_orders_count}, bulkAmount={m.bulk_orders_amount:.2f}"
        for m in history
    ]
    months = ", ".join(target_months(history, period_count))

    return f"""Forecast monthly {metric.display_name} for the next {period_count} month(s): {months}.

Historical data ({len(history)} months, oldest first):
{chr(10).join(lines)}

Return JSON with exactly this structure:
{{
  "monthlyBreakdown": [
    {{"month": "YYYY-MM", "predicted": <number>, "topProducts": ["<model number>", ...]}}
  ],
  "totalGrowth": <percent change from first to last predicted month>,
  "insights": ["<short insight>", ...],
  "recommendations": ["<short recommendation>", ...]
}}

"predicted" is the {metric.display_name} for that month. Include one entry per forecast month, in order."""


# ═══════════════════════════════════════════════════════════════════════════════
# ORCHESTRATOR
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ForecastAttempt:
    """Outcome of one forecast request."""
    state: ForecastState
    result: Optional[ForecastResult] = None
    error: Optional[str] = None
    details: Optional[str] = None
    kind: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == ForecastState.SUCCEEDED

    @classmethod
    def failed(cls, error: ForecastError) -> "ForecastAttempt":
        return cls(
            state=ForecastState.FAILED,
            error=error.message,
            details=error.details,
            kind=error.kind,
            suggestions=suggestions_for(error.kind),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.succeeded:
            return {"success": True, "forecast": self.result.to_dict()}
        return {
            "success": False,
            "error": self.error,
            "details": self.details,
            "kind": self.kind,
            "suggestions": self.suggestions,
        }


class ForecastOrchestrator:
    """
    Runs forecast requests against an LLM client with a shared cooldown.

    The LLM client only needs an async ``complete(prompt, max_tokens, timeout)``
    returning text and raising ForecastError subclasses.
    """

    def __init__(
        self,
        llm_client,
        cooldown: CooldownTracker = None,
        max_tokens: int = None,
        timeout: float = None,
    ):
        self.llm_client = llm_client
        self.cooldown = cooldown or CooldownTracker()
        self.max_tokens = max_tokens or config.forecast.max_tokens
        self.timeout = timeout or config.forecast.request_timeout

    async def run(
        self,
        period_count: int,
        history: Sequence[HistoricalMonth],
        metric: ForecastMetric = ForecastMetric.REVENUE,
        client_key: str = "default",
    ) -> ForecastAttempt:
        """
        Execute one forecast request.

        Args:
            period_count: Months to forecast (1, 3 or 6)
            history: Monthly history, oldest first
            metric: Metric the predictions describe
            client_key: Identity the cooldown is tracked under

        Returns:
            SUCCEEDED attempt with a ForecastResult, or FAILED attempt with
            error, details, kind and suggestions

        Raises:
            CooldownActive: Before any model call, if the client is cooling down
            ValidationError: If period_count is not an allowed value
        """
        period_count = validate_forecast_period(period_count, config.forecast.allowed_periods)
        self.cooldown.check(client_key)

        if not history:
            return ForecastAttempt.failed(ForecastUnknownError(
                "No historical data available for forecasting",
                "At least one month of invoices is required"
            ))

        logger.info(
            f"Forecast {ForecastState.REQUESTING.value}",
            extra={"metric": metric.value, "period": period_count, "history_months": len(history)}
        )

        try:
            with Timer(f"forecast_{metric.value}", logger, warn_threshold_ms=self.timeout * 1000):
                text = await self.llm_client.complete(
                    build_prompt(history, period_count, metric),
                    max_tokens=self.max_tokens,
                    timeout=self.timeout,
                )
            result = build_result(parse_payload(text), period_count, metric)
        except ForecastError as e:
            metrics.record_error(f"forecast_{e.kind}")
            logger.warning(f"Forecast {ForecastState.FAILED.value}: {e}", extra={"kind": e.kind})
            return ForecastAttempt.failed(e)
        except Exception as e:
            error = ForecastUnknownError("Forecast request failed", str(e))
            metrics.record_error(f"forecast_{error.kind}")
            logger.error(f"Forecast {ForecastState.FAILED.value}: {e}", exc_info=True)
            return ForecastAttempt.failed(error)

        self.cooldown.mark_success(client_key)
        logger.info(
            f"Forecast {ForecastState.SUCCEEDED.value}",
            extra={"metric": metric.value, "total_growth": result.total_growth}
        )
        return ForecastAttempt(state=ForecastState.SUCCEEDED, result=result)
