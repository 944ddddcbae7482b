"""Pytest configuration and fixtures."""

import httpx
import pytest
from jose import jwt

from drone.sdk.client import DroneClient


@pytest.fixture
def mock_token():
    """JWT user token for testing."""
    return jwt.encode({"text": "octocat", "type": "user"}, "secret", algorithm="HS256")


class Recorder:
    """Collects requests seen by a mock transport and answers them."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(200, json={})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        # Fresh response per request; httpx binds each one to its request
        return httpx.Response(
            self.response.status_code,
            headers=self.response.headers,
            content=self.response.content,
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def transport(recorder):
    return httpx.MockTransport(recorder)


@pytest.fixture
def client(transport):
    """Client with a token and csrf value, wired to the mock transport."""
    return DroneClient("http://localhost", "password", "123456", transport=transport)


@pytest.fixture
def anonymous_client(transport):
    return DroneClient("http://localhost", transport=transport)
