"""Push routes: subscribe, unsubscribe, dispatch, latest."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from pushcore.app import FALLBACK_MESSAGE, FALLBACK_TITLE, app, registry
from pushcore.config import Settings
from pushcore.subscriptions import MemorySubscriptionStore
from pushcore.webpush import PushDispatcher

from conftest import ENDPOINT


AUTH = {"Authorization": "Bearer token-alice"}


def _settings(vapid_config=None, **overrides) -> Settings:
    values = {"api_tokens": {"token-alice": "alice", "token-bob": "bob"}}
    if vapid_config is not None:
        values.update(
            vapid_public_key=vapid_config.public_key,
            vapid_private_key=vapid_config.private_key,
            vapid_subject=vapid_config.subject,
        )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def store():
    return MemorySubscriptionStore()


@pytest.fixture
def client(vapid_config, store, push_service, monkeypatch):
    monkeypatch.setattr("pushcore.app.today", lambda: "2024-05-01")
    settings = _settings(vapid_config)
    registry.configure(
        settings_fn=lambda: settings,
        store=store,
        dispatcher_factory=lambda s: PushDispatcher(s.vapid_config(), client=push_service.client()),
    )
    with TestClient(app) as c:
        yield c


def _subscribe(client, endpoint=ENDPOINT, headers=AUTH):
    return client.post(
        "/api/push/subscribe",
        json={"subscription": {"endpoint": endpoint, "keys": {"p256dh": "BEl6f5Y8", "auth": "gq8Yh5xA"}}},
        headers=headers,
    )


def test_vapid_public_key(client, vapid_config):
    r = client.get("/api/push/vapid-public-key")
    assert r.status_code == 200
    assert r.json() == {"public_key": vapid_config.public_key}


def test_vapid_public_key_not_configured(store):
    registry.configure(settings_fn=lambda: _settings(), store=store)
    with TestClient(app) as c:
        r = c.get("/api/push/vapid-public-key")
    assert r.status_code == 501


def test_subscribe_requires_auth(client):
    assert _subscribe(client, headers={}).status_code == 401
    assert _subscribe(client, headers={"Authorization": "Bearer nope"}).status_code == 401
    assert _subscribe(client, headers={"Authorization": "Basic token-alice"}).status_code == 401


def test_subscribe_requires_endpoint(client):
    r = client.post("/api/push/subscribe", json={"subscription": {"keys": {}}}, headers=AUTH)
    assert r.status_code == 400
    r = client.post("/api/push/subscribe", json={}, headers=AUTH)
    assert r.status_code == 400


def test_subscribe_stores_subscription(client, store):
    r = _subscribe(client)
    assert r.status_code == 200
    assert r.json() == {"ok": True}

    record = store.get(ENDPOINT)
    assert record.user_id == "alice"
    assert record.p256dh == "BEl6f5Y8"
    assert record.enabled is True
    assert store.enabled_endpoints("alice") == [ENDPOINT]


def test_unsubscribe_disables_only_own_endpoint(client, store):
    _subscribe(client)

    r = client.post("/api/push/unsubscribe", json={"endpoint": ENDPOINT}, headers={"Authorization": "Bearer token-bob"})
    assert r.status_code == 200
    assert store.enabled_endpoints("alice") == [ENDPOINT]

    r = client.post("/api/push/unsubscribe", json={"endpoint": ENDPOINT}, headers=AUTH)
    assert r.status_code == 200
    assert store.enabled_endpoints("alice") == []


def test_unsubscribe_requires_endpoint(client):
    r = client.post("/api/push/unsubscribe", json={}, headers=AUTH)
    assert r.status_code == 400


def test_dispatch_sends_and_disables_expired(client, store, push_service):
    _subscribe(client, "https://fcm.googleapis.com/fcm/send/phone")
    _subscribe(client, "https://updates.push.services.mozilla.com/wpush/v2/laptop")
    push_service.statuses["https://updates.push.services.mozilla.com/wpush/v2/laptop"] = 410

    r = client.post("/api/push/dispatch", json={"title": "Protein check", "message": "Add 30g protein at dinner."}, headers=AUTH)

    assert r.status_code == 200
    assert r.json() == {"title": "Protein check", "message": "Add 30g protein at dinner.", "sent": 1}
    assert len(push_service.requests) == 2
    assert all(req.headers["Authorization"].startswith("vapid t=") for req in push_service.requests)
    assert store.enabled_endpoints("alice") == ["https://fcm.googleapis.com/fcm/send/phone"]


def test_dispatch_without_subscriptions(client, push_service):
    r = client.post("/api/push/dispatch", json={}, headers=AUTH)

    assert r.status_code == 200
    assert r.json() == {"title": FALLBACK_TITLE, "message": FALLBACK_MESSAGE, "sent": 0}
    assert push_service.requests == []


def test_dispatch_without_keys_returns_501(store, push_service):
    registry.configure(
        settings_fn=lambda: _settings(),
        store=store,
        dispatcher_factory=lambda s: PushDispatcher(s.vapid_config(), client=push_service.client()),
    )
    store.upsert("alice", ENDPOINT)

    with TestClient(app) as c:
        r = c.post("/api/push/dispatch", json={}, headers=AUTH)

    assert r.status_code == 501
    assert push_service.requests == []


def test_latest_returns_todays_message(client):
    _subscribe(client)
    client.post("/api/push/dispatch", json={"title": "Fiber", "message": "Add beans to lunch."}, headers=AUTH)

    r = client.post("/api/push/latest", json={"endpoint": ENDPOINT})
    assert r.status_code == 200
    assert r.json() == {"title": "Fiber", "message": "Add beans to lunch."}


def test_latest_falls_back_for_unknown_endpoint(client):
    r = client.post("/api/push/latest", json={"endpoint": "https://push.example/unknown"})
    assert r.status_code == 200
    assert r.json() == {"title": FALLBACK_TITLE, "message": FALLBACK_MESSAGE}


def test_latest_falls_back_on_other_days(client, monkeypatch):
    _subscribe(client)
    client.post("/api/push/dispatch", json={"title": "Fiber", "message": "Beans."}, headers=AUTH)
    monkeypatch.setattr("pushcore.app.today", lambda: "2024-05-02")

    r = client.post("/api/push/latest", json={"endpoint": ENDPOINT})
    assert r.json() == {"title": FALLBACK_TITLE, "message": FALLBACK_MESSAGE}


def test_latest_requires_endpoint(client):
    assert client.post("/api/push/latest", json={}).status_code == 400


def test_local_handler_wires_registry(vapid_config, monkeypatch):
    import importlib

    from pushcore.config import get_settings

    monkeypatch.setenv("VAPID_PUBLIC_KEY", vapid_config.public_key)
    monkeypatch.setenv("VAPID_PRIVATE_KEY", vapid_config.private_key)
    monkeypatch.setenv("API_TOKENS", '{"token-alice": "alice"}')
    get_settings.cache_clear()
    try:
        handler = importlib.reload(importlib.import_module("providers.local.handler"))

        with TestClient(handler.app) as c:
            assert c.get("/api/push/vapid-public-key").json() == {"public_key": vapid_config.public_key}
            assert _subscribe(c).status_code == 200
        assert registry.store.enabled_endpoints("alice") == [ENDPOINT]
    finally:
        get_settings.cache_clear()
