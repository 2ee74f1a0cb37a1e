"""Retry policy for throttled (HTTP 429) responses.

The policy is a pure function of a ``RetryState`` and one response; the
pagination loop performs the actual sleeping. A fresh state is used for every
page request, so throttling on one page never shortens the budget of the next.
"""

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable

from pydantic import BaseModel

from openapi_tables.errors import RateLimitExhaustedError

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429
MAX_RETRIES = 3


class RetryState(BaseModel):
    attempt: int = 0
    last_delay: float = 0.0


class RetryDecision(BaseModel):
    retry: bool
    delay: float = 0.0
    state: RetryState


def parse_retry_after(value: str | None, now: Callable[[], datetime] | None = None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds or as an HTTP-date."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return None
        if when is None:
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        current = now() if now else datetime.now(timezone.utc)
        return max(0.0, (when - current).total_seconds())
    return max(0.0, seconds)


class RateLimiter:
    """Decides whether a response is retried and after what delay."""

    def __init__(self, max_retries: int = MAX_RETRIES, max_delay: float = 60.0, now: Callable[[], datetime] | None = None):
        self.max_retries = max_retries
        self.max_delay = max_delay
        self.now = now

    def backoff(self, attempt: int) -> float:
        """Delay used when the server gives no usable ``Retry-After``: 1, 2, 4 s."""
        return float(2**attempt)

    def decide(self, state: RetryState, status: int, headers: dict[str, str], url: str = "") -> RetryDecision:
        """Return the decision for one response.

        Raises ``RateLimitExhaustedError`` once ``max_retries`` retries of the
        same request have all been throttled.
        """
        if status != TOO_MANY_REQUESTS:
            return RetryDecision(retry=False, state=state)
        if state.attempt >= self.max_retries:
            raise RateLimitExhaustedError(state.attempt, url)

        retry_after = next((v for k, v in headers.items() if k.lower() == "retry-after"), None)
        delay = parse_retry_after(retry_after, self.now)
        if delay is None:
            delay = self.backoff(state.attempt)
        delay = min(delay, self.max_delay)
        logger.info("Rate limited (attempt %d/%d), retrying in %.1fs: %s", state.attempt + 1, self.max_retries, delay, url)
        return RetryDecision(retry=True, delay=delay, state=RetryState(attempt=state.attempt + 1, last_delay=delay))
