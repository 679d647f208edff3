"""
Custom exception hierarchy for sales analytics operations.

Exception Hierarchy:
    ValidationError            - Input validation failed
    └── InvalidPeriod          - Period selector is malformed (missing/bad year)
        ├── InvalidMonth       - Month is not a canonical month name
        └── InvalidWeek        - Week is not an integer in 1..5

    QueryTimeoutError          - Store query exceeded its timeout

    ForecastError (base)       - External forecast call failed
    ├── ForecastUnavailable    - Model missing, unconfigured or timed out
    ├── RateLimited            - Service rate-limited or temporarily busy
    ├── QuotaExceeded          - Account quota or credits exhausted
    ├── InvalidForecastResponse - Empty or malformed prediction payload
    └── ForecastUnknownError   - Anything else

    CooldownActive             - A forecast succeeded too recently
"""
import math


class ValidationError(Exception):
    """
    Input validation failed.

    Used for validating user input before processing.
    """

    kind = "validation_error"

    def __init__(self, field: str, message: str, value: any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value!r})"
        return f"{self.field}: {self.message}"


class InvalidPeriod(ValidationError):
    """Period selector could not be resolved to a date range."""

    kind = "invalid_period"


class InvalidMonth(InvalidPeriod):
    """Month is not one of the twelve canonical month names."""

    kind = "invalid_month"


class InvalidWeek(InvalidPeriod):
    """Week number is not an integer between 1 and 5."""

    kind = "invalid_week"


class QueryTimeoutError(Exception):
    """
    Database query exceeded timeout.

    Indicates a long-running query that should be investigated:
    - Missing index
    - Too much data being scanned
    - Complex join/aggregation
    """

    def __init__(self, query: str, timeout: float, details: str = None):
        self.query = query[:200] + "..." if len(query) > 200 else query
        self.timeout = timeout
        self.details = details
        message = f"Query timed out after {timeout}s"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)

    def __str__(self) -> str:
        return f"QueryTimeoutError: Query timed out after {self.timeout}s - {self.query}"


class ForecastError(Exception):
    """Base exception for all forecast failures."""

    kind = "unknown"

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ForecastUnavailable(ForecastError):
    """
    The forecasting model is not available.

    Raised when the model is unknown to the provider, the API key is not
    configured, or the call timed out.
    """

    kind = "model_unavailable"


class RateLimited(ForecastError):
    """
    The forecasting service is rate-limited or temporarily busy.

    retry_after carries the provider hint in seconds, when one was sent.
    """

    kind = "rate_limited"

    def __init__(self, message: str, details: str = None, retry_after: int = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class QuotaExceeded(ForecastError):
    """The account quota or credit balance is exhausted."""

    kind = "quota_exceeded"


class InvalidForecastResponse(ForecastError):
    """
    The model answered, but not with a usable prediction sequence.

    This indicates a contract violation - the model returned
    data in a format we don't understand.
    """

    kind = "invalid_response"

    def __init__(self, message: str, details: str = None, got: str = None):
        super().__init__(message, details)
        self.got = got


class ForecastUnknownError(ForecastError):
    """Unclassified forecast failure."""

    kind = "unknown"


class CooldownActive(Exception):
    """
    A forecast succeeded less than the cooldown period ago.

    This is a precondition check, not a computation failure; the
    external model is never contacted when it is raised.
    """

    kind = "cooldown_active"

    def __init__(self, remaining_seconds: float):
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"Please wait {self.remaining_whole_seconds} more seconds "
            f"before making another forecast request"
        )

    @property
    def remaining_whole_seconds(self) -> int:
        """Remaining cooldown rounded up to whole seconds."""
        return max(1, math.ceil(self.remaining_seconds))
