"""Shared fixtures: VAPID key pairs and a recording mock push service."""
from __future__ import annotations

import httpx
import pytest

from pushcore.app import registry
from pushcore.config import VapidConfig
from pushcore.keys import generate_vapid_keys


ENDPOINT = "https://fcm.googleapis.com/fcm/send/abc"
SUBJECT = "mailto:test@example.com"


class PushServiceStub:
    """Records requests and answers with a fixed (or per-endpoint) status."""

    def __init__(self, status_code: int = 201):
        self.status_code = status_code
        self.statuses: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.get(str(request.url), self.status_code)
        return httpx.Response(status, content=b"")

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def vapid_keys():
    """(private_key, public_key) as base64url strings."""
    return generate_vapid_keys()


@pytest.fixture
def vapid_config(vapid_keys):
    private_key, public_key = vapid_keys
    return VapidConfig(public_key=public_key, private_key=private_key, subject=SUBJECT)


@pytest.fixture
def push_service():
    return PushServiceStub()


@pytest.fixture(autouse=True)
def _reset_registry():
    yield
    registry.reset()
