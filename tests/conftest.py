"""Shared fixtures and helpers for the s3proto tests.

Requests are served by ``httpx.MockTransport`` handlers, signed with the
MinIO default credentials at a fixed instant, and retried without delay.
"""

import random
from datetime import datetime, timezone

import httpx
import pytest

from s3proto.credentials import StaticCredentialsProvider
from s3proto.pipeline import RequestPipeline
from s3proto.retry import RetryPolicy
from s3proto.s3_client import S3Client
from s3proto.signer import RequestSigner

ENDPOINT = "http://localhost:9000"
ACCESS_KEY = "minioadmin"
SECRET_KEY = "minioadmin"
FIXED_NOW = datetime(2024, 4, 11, 15, 37, 13, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


class Recorder:
    """MockTransport handler that records requests and replays responses.

    ``responses`` may hold ``httpx.Response`` objects, exceptions to raise,
    or callables taking the request. The last entry repeats once the list
    runs out.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [httpx.Response(200)]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        if callable(response) and not isinstance(response, httpx.Response):
            return response(request)
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            content=response.content,
        )


def make_pipeline(handler, max_retries: int = 5, clock=fixed_clock, session_token=None) -> RequestPipeline:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    signer = RequestSigner(StaticCredentialsProvider(ACCESS_KEY, SECRET_KEY, session_token), clock)
    policy = RetryPolicy(max_retries=max_retries, median_first_delay=0.0, rng=random.Random(42))
    return RequestPipeline(http_client, ENDPOINT, signer, policy)


def make_client(handler, **kwargs) -> S3Client:
    return S3Client(make_pipeline(handler, **kwargs), owns_http_client=True)


@pytest.fixture
def recorder():
    return Recorder()
