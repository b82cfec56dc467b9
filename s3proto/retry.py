"""Retry classification and backoff for transient failures.

Transient (Retryable):
- Transport-level failures (connect errors, timeouts, broken connections)
- Request timeout (408), locked (423), rate limiting (429)
- Server errors 500, 502, 503, 504

Permanent (Not Retryable):
- Every other 4xx/5xx status, including signature mismatches (403) and
  authentication failures (401)

404 never reaches the policy as a retry question: existence checks turn it
into a negative answer before classification.

Backoff uses decorrelated jitter: the delay before retry ``n`` is the
difference of a smooth exponential curve sampled at two jittered points,
multiplied by ``median_first_delay / 1.4``. The first delay is
``median_first_delay * curve(u) / 1.4`` for a uniform ``u``, so it never
exceeds 1.4x ``median_first_delay`` and its median is about 0.9x of it.
"""

import math
import random
from dataclasses import dataclass
from typing import Optional

import httpx

# HTTP status codes that indicate transient server issues
RETRYABLE_STATUS_CODES = {408, 423, 429, 500, 502, 503, 504}

DEFAULT_MAX_RETRIES = 5
DEFAULT_MEDIAN_FIRST_DELAY = 0.25

# Shape constants of the jitter curve
_P_FACTOR = 4.0
_RP_SCALING_FACTOR = 1 / 1.4


@dataclass(frozen=True)
class Outcome:
    """Result of one attempt: either a status code or a transport error."""

    status_code: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def is_success(self) -> bool:
        return self.error is None and self.status_code is not None and 200 <= self.status_code < 300


@dataclass(frozen=True)
class RetryDecision:
    should_retry: bool
    delay: float = 0.0


NO_RETRY = RetryDecision(should_retry=False)


def is_retryable_status(status_code: int) -> bool:
    """Return True if a response status is worth retrying."""
    return status_code in RETRYABLE_STATUS_CODES


def is_retryable_error(error: Exception) -> bool:
    """Determine if an exception is transient and worth retrying.

    Args:
        error: The exception that was raised.

    Returns:
        True for transport-level failures, False otherwise.
    """
    return isinstance(error, httpx.TransportError)


def _curve(t: float) -> float:
    return math.pow(2, t) * math.tanh(math.sqrt(_P_FACTOR * t))


class RetryPolicy:
    """Decides whether and when to retry a failed attempt.

    The policy holds no per-call state; ``classify`` depends only on the
    attempt number, the outcome and the random source, so one instance can
    serve any number of concurrent requests.

    Args:
        max_retries: Retries allowed after the first attempt.
        median_first_delay: Scale of the delays in seconds; the first delay
            has a median of about 0.9x this value.
        rng: Random source for jitter; pass a seeded ``random.Random`` for
             reproducible delays.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        median_first_delay: float = DEFAULT_MEDIAN_FIRST_DELAY,
        rng: Optional[random.Random] = None,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.median_first_delay = median_first_delay
        self.rng = rng or random.Random()

    def is_retryable(self, outcome: Outcome) -> bool:
        if outcome.error is not None:
            return is_retryable_error(outcome.error)
        if outcome.status_code is None:
            return False
        return is_retryable_status(outcome.status_code)

    def backoff(self, attempt: int) -> float:
        """Delay in seconds before the retry following ``attempt`` (1-based).

        The curve is sampled at ``attempt - 1 + u`` and at the previous
        interval's jittered point; since the curve is increasing and the two
        points fall in adjacent unit intervals, the delay is always positive.
        """
        current = _curve(attempt - 1 + self.rng.random())
        previous = _curve(attempt - 2 + self.rng.random()) if attempt > 1 else 0.0
        return (current - previous) * _RP_SCALING_FACTOR * self.median_first_delay

    def classify(self, attempt: int, outcome: Outcome) -> RetryDecision:
        """Classify the outcome of attempt number ``attempt`` (1-based).

        Returns:
            A decision to retry after ``delay`` seconds, or ``NO_RETRY`` when
            the outcome succeeded, is permanent, or the retry budget is spent.
        """
        if outcome.is_success or not self.is_retryable(outcome):
            return NO_RETRY
        if attempt > self.max_retries:
            return NO_RETRY
        return RetryDecision(should_retry=True, delay=self.backoff(attempt))
