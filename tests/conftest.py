"""Shared fixtures: a fake features endpoint behind httpx.MockTransport."""

import httpx
import pytest

from flagsync.http_client import FetchClient

BASE_URL = "http://flags.test/api/"


def features_response(features, etag=None, status=200):
    headers = {"etag": etag} if etag else {}
    return httpx.Response(status, json={"features": features}, headers=headers)


class FakeServer:
    """Replays queued responses; answers 304 once the queue is empty."""

    def __init__(self):
        self.responses = []
        self.requests: list[httpx.Request] = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(304)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def fetch_client(self) -> FetchClient:
        return FetchClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def default_features():
    return [{"name": "feature", "enabled": True, "strategies": ["default"]}]
