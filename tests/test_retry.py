"""Tests for retry module."""

import random

import httpx
import pytest

from conftest import Recorder, make_pipeline
from s3proto.errors import HttpError, TransportError
from s3proto.pipeline import S3Request
from s3proto.retry import (
    NO_RETRY,
    RETRYABLE_STATUS_CODES,
    Outcome,
    RetryPolicy,
    is_retryable_error,
    is_retryable_status,
)

TERMINAL_STATUS_CODES = [
    400, 401, 402, 403, 405, 406, 407, 409, 410, 411, 412, 413, 414, 415, 416, 417,
    421, 422, 424, 426, 428, 431, 451, 501, 505, 506, 507, 508, 510, 511,
]


class TestIsRetryableError:
    """Tests for error classification."""

    def test_connection_timeout_is_retryable(self):
        """Connection timeout should trigger retry."""
        assert is_retryable_error(httpx.ConnectTimeout("Connection timed out")) is True

    def test_connect_error_is_retryable(self):
        """Connection error should trigger retry."""
        assert is_retryable_error(httpx.ConnectError("Connection refused")) is True

    def test_read_timeout_is_retryable(self):
        """Read timeout should trigger retry."""
        assert is_retryable_error(httpx.ReadTimeout("Read timed out")) is True

    def test_remote_protocol_error_is_retryable(self):
        """Server closing the connection mid-response should trigger retry."""
        assert is_retryable_error(httpx.RemoteProtocolError("Server disconnected")) is True

    def test_generic_exception_is_not_retryable(self):
        """Generic exceptions should NOT trigger retry."""
        assert is_retryable_error(ValueError("Some error")) is False


class TestIsRetryableStatus:
    """Tests for status code classification."""

    @pytest.mark.parametrize("status", [408, 423, 429, 500, 502, 503, 504])
    def test_transient_statuses(self, status):
        """Throttling, timeouts and server errors are retryable."""
        assert is_retryable_status(status) is True

    @pytest.mark.parametrize("status", [200, 301, 404] + TERMINAL_STATUS_CODES)
    def test_permanent_statuses(self, status):
        """Client errors and unsupported operations are not retryable."""
        assert is_retryable_status(status) is False


class TestRetryPolicy:
    """Tests for classification and backoff."""

    def test_negative_max_retries_rejected(self):
        """A negative retry budget is a configuration error."""
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)

    def test_success_is_never_retried(self):
        """2xx outcomes end the loop."""
        assert RetryPolicy().classify(1, Outcome(status_code=204)) is NO_RETRY

    def test_permanent_status_not_retried(self):
        """403 is not retried even with budget left."""
        assert RetryPolicy().classify(1, Outcome(status_code=403)) is NO_RETRY

    def test_retryable_status_retried_with_delay(self):
        """503 is retried after a positive delay."""
        decision = RetryPolicy(rng=random.Random(1)).classify(1, Outcome(status_code=503))
        assert decision.should_retry is True
        assert decision.delay > 0

    def test_transport_error_retried(self):
        """Transport failures are retried."""
        decision = RetryPolicy().classify(1, Outcome(error=httpx.ConnectError("refused")))
        assert decision.should_retry is True

    def test_budget_exhausted(self):
        """With five retries, attempt 6 is the last one."""
        policy = RetryPolicy(max_retries=5)
        assert policy.classify(5, Outcome(status_code=503)).should_retry is True
        assert policy.classify(6, Outcome(status_code=503)) is NO_RETRY

    def test_zero_retries(self):
        """max_retries=0 means a single attempt."""
        assert RetryPolicy(max_retries=0).classify(1, Outcome(status_code=500)) is NO_RETRY

    def test_backoff_always_positive(self):
        """Every delay is strictly positive."""
        policy = RetryPolicy(rng=random.Random(3))
        for _ in range(200):
            for attempt in range(1, 8):
                assert policy.backoff(attempt) > 0

    def test_first_delay_bounded(self):
        """The first delay stays below 1.4x the median first delay."""
        policy = RetryPolicy(median_first_delay=0.25, rng=random.Random(5))
        delays = [policy.backoff(1) for _ in range(500)]
        assert max(delays) < 0.25 * 1.4
        assert min(delays) > 0

    def test_first_delay_median(self):
        """The median first delay is about 0.9x the configured scale."""
        policy = RetryPolicy(median_first_delay=0.25, rng=random.Random(21))
        delays = sorted(policy.backoff(1) for _ in range(2001))
        median = delays[1000]
        assert 0.85 * 0.25 < median < 0.95 * 0.25

    def test_backoff_grows(self):
        """Later retries wait longer on average."""
        policy = RetryPolicy(rng=random.Random(9))
        early = sum(policy.backoff(1) for _ in range(300)) / 300
        late = sum(policy.backoff(5) for _ in range(300)) / 300
        assert late > early

    def test_seeded_rng_is_reproducible(self):
        """Two policies with the same seed give the same delays."""
        first = RetryPolicy(rng=random.Random(11))
        second = RetryPolicy(rng=random.Random(11))
        assert [first.backoff(n) for n in range(1, 6)] == [second.backoff(n) for n in range(1, 6)]


class TestRetriesThroughPipeline:
    """End-to-end retry behaviour of the request pipeline."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", sorted(RETRYABLE_STATUS_CODES))
    async def test_retryable_status_then_success(self, status):
        """A transient status is retried once and the success returned."""
        recorder = Recorder(httpx.Response(status), httpx.Response(200, content=b"ok"))
        pipeline = make_pipeline(recorder)

        response = await pipeline.execute(S3Request("GET", "bucket", "key"))

        assert response.status_code == 200
        assert response.content == b"ok"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404] + TERMINAL_STATUS_CODES)
    async def test_terminal_status_single_attempt(self, status):
        """A permanent status fails after exactly one request."""
        recorder = Recorder(httpx.Response(status), httpx.Response(200))
        pipeline = make_pipeline(recorder)

        with pytest.raises(HttpError) as exc_info:
            await pipeline.execute(S3Request("GET", "bucket", "key"))

        assert exc_info.value.status_code == status
        assert exc_info.value.attempts == 1
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_last_status(self):
        """Once the budget is spent the last HttpError is raised."""
        recorder = Recorder(httpx.Response(503))
        pipeline = make_pipeline(recorder, max_retries=2)

        with pytest.raises(HttpError) as exc_info:
            await pipeline.execute(S3Request("GET", "bucket"))

        assert exc_info.value.status_code == 503
        assert exc_info.value.attempts == 3
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_default_budget_is_six_attempts(self):
        """Five retries plus the first attempt."""
        recorder = Recorder(httpx.Response(500))
        pipeline = make_pipeline(recorder)

        with pytest.raises(HttpError):
            await pipeline.execute(S3Request("GET", "bucket"))

        assert len(recorder.requests) == 6

    @pytest.mark.asyncio
    async def test_transport_errors_exhausted(self):
        """Connection failures become a TransportError after the budget."""
        recorder = Recorder(httpx.ConnectError("Connection refused"))
        pipeline = make_pipeline(recorder, max_retries=2)

        with pytest.raises(TransportError) as exc_info:
            await pipeline.execute(S3Request("GET", "bucket"))

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_transport_error_then_success(self):
        """A dropped connection is retried transparently."""
        recorder = Recorder(httpx.ReadTimeout("timed out"), httpx.Response(200))
        pipeline = make_pipeline(recorder)

        response = await pipeline.execute(S3Request("HEAD", "bucket"))

        assert response.status_code == 200
        assert len(recorder.requests) == 2
