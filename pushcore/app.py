"""
FastAPI application exposing push subscription and dispatch routes.

Provider-specific implementations (settings, subscription store, dispatcher)
are registered via the `registry` before the app starts handling requests.
"""
from __future__ import annotations

import os
import secrets
import time
from datetime import date

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from pushcore.config import Settings
from pushcore.errors import KeysNotConfigured, WebPushError
from pushcore.fanout import dispatch_to_endpoints
from pushcore.keys import load_signing_key
from pushcore.subscriptions import SubscriptionStore
from pushcore.webpush import PushDispatcher


# =============================================================================
# Provider Registry
# =============================================================================

class _ProviderRegistry:
    """Registry for provider-specific implementations."""

    def __init__(self):
        self._settings_fn = None        # callable() -> Settings
        self._store = None              # SubscriptionStore implementation
        self._dispatcher_factory = None  # callable(Settings) -> PushDispatcher

    def configure(self, settings_fn=None, store=None, dispatcher_factory=None):
        """Register provider implementations. Only sets non-None values."""
        if settings_fn is not None:
            self._settings_fn = settings_fn
        if store is not None:
            self._store = store
        if dispatcher_factory is not None:
            self._dispatcher_factory = dispatcher_factory

    def reset(self):
        self.__init__()

    @property
    def settings(self) -> Settings:
        if self._settings_fn is None:
            raise RuntimeError("Settings provider not configured")
        return self._settings_fn()

    @property
    def store(self) -> SubscriptionStore:
        if self._store is None:
            raise RuntimeError("Subscription store not configured")
        return self._store

    def dispatcher(self) -> PushDispatcher:
        factory = self._dispatcher_factory or PushDispatcher.from_settings
        return factory(self.settings)


registry = _ProviderRegistry()


def get_settings() -> Settings:
    return registry.settings


def get_store() -> SubscriptionStore:
    return registry.store


# =============================================================================
# App Configuration
# =============================================================================

# CORS config
ALLOWED_ORIGIN = os.environ.get("ALLOWED_ORIGIN", "*")

FALLBACK_TITLE = "Daily nutrition update"
FALLBACK_MESSAGE = "Open the app for today's insight."

app = FastAPI(title="Push Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[ALLOWED_ORIGIN],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    try:
        response = await call_next(request)
        duration = time.time() - start_time
        print(f"DEBUG: {request.method} {request.url.path} - Status: {response.status_code} - Duration: {duration:.2f}s", flush=True)
        return response
    except Exception as e:
        duration = time.time() - start_time
        print(f"DEBUG: REQUEST ERROR - {request.method} {request.url.path} - Error: {type(e).__name__}: {e} - Duration: {duration:.2f}s", flush=True)
        raise


def today() -> str:
    """Current local day as YYYY-MM-DD."""
    return date.today().isoformat()


# =============================================================================
# Auth Helpers
# =============================================================================

def get_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


def get_current_user(
    authorization: str | None = Header(None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
) -> str:
    """Resolve the bearer token to a user id."""
    token = get_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing auth token")

    for known_token, user_id in settings.api_tokens.items():
        if secrets.compare_digest(token.encode(), known_token.encode()):
            return user_id

    raise HTTPException(status_code=401, detail="Invalid auth token")


# =============================================================================
# Request/Response Models
# =============================================================================

class SubscriptionKeys(BaseModel):
    p256dh: str | None = None
    auth: str | None = None


class SubscriptionPayload(BaseModel):
    endpoint: str | None = None
    keys: SubscriptionKeys | None = None


class SubscribeRequest(BaseModel):
    subscription: SubscriptionPayload | None = None


class EndpointRequest(BaseModel):
    endpoint: str | None = None


class DispatchRequest(BaseModel):
    title: str | None = None
    message: str | None = None


# =============================================================================
# Push Notifications
# =============================================================================

@app.get("/api/push/vapid-public-key")
def get_vapid_public_key(settings: Settings = Depends(get_settings)):
    """Get VAPID public key for push subscription (applicationServerKey)."""
    if not settings.vapid_public_key:
        raise HTTPException(status_code=501, detail="Push notifications not configured")
    return {"public_key": settings.vapid_public_key}


@app.post("/api/push/subscribe")
def subscribe_push(
    body: SubscribeRequest,
    user_id: str = Depends(get_current_user),
    store: SubscriptionStore = Depends(get_store),
):
    """Subscribe a browser endpoint to push notifications."""
    subscription = body.subscription
    if subscription is None or not subscription.endpoint:
        raise HTTPException(status_code=400, detail="Subscription endpoint is required")

    keys = subscription.keys or SubscriptionKeys()
    store.upsert(user_id, subscription.endpoint, p256dh=keys.p256dh, auth=keys.auth)

    print(f"PUSH: Subscribed user '{user_id}'", flush=True)
    return {"ok": True}


@app.post("/api/push/unsubscribe")
def unsubscribe_push(
    body: EndpointRequest,
    user_id: str = Depends(get_current_user),
    store: SubscriptionStore = Depends(get_store),
):
    """Disable one of the user's push subscriptions."""
    if not body.endpoint:
        raise HTTPException(status_code=400, detail="Endpoint is required")

    store.disable(user_id, body.endpoint)
    print(f"PUSH: Unsubscribed user '{user_id}'", flush=True)
    return {"ok": True}


@app.post("/api/push/dispatch")
def dispatch_push(
    body: DispatchRequest,
    user_id: str = Depends(get_current_user),
    store: SubscriptionStore = Depends(get_store),
):
    """
    Store today's message for the user and wake all their devices.

    Devices fetch the message from /api/push/latest after the push arrives.
    Endpoints the push service reports as gone are disabled.
    """
    title = (body.title or "").strip() or FALLBACK_TITLE
    message = (body.message or "").strip() or FALLBACK_MESSAGE
    store.save_message(user_id, today(), title, message)

    endpoints = store.enabled_endpoints(user_id)
    if not endpoints:
        print(f"PUSH: No subscription for user '{user_id}', skipping notification", flush=True)
        return {"title": title, "message": message, "sent": 0}

    dispatcher = registry.dispatcher()

    # Key problems are the same for every endpoint, so fail the whole request
    try:
        load_signing_key(dispatcher.vapid.public_key, dispatcher.vapid.private_key, verify_pair=dispatcher.verify_pair)
    except KeysNotConfigured:
        raise HTTPException(status_code=501, detail="Push notifications not configured")
    except WebPushError as e:
        print(f"PUSH: Cannot sign push for '{user_id}': {type(e).__name__}: {e}", flush=True)
        raise HTTPException(status_code=500, detail=str(e))

    result = dispatch_to_endpoints(dispatcher, endpoints)

    if result.invalid_endpoints:
        disabled = store.disable_endpoints(result.invalid_endpoints)
        print(f"PUSH: Disabled {disabled} expired subscription(s) for '{user_id}'", flush=True)

    print(f"PUSH: Sent {result.sent}/{result.attempted} notification(s) to '{user_id}'", flush=True)
    return {"title": title, "message": message, "sent": result.sent}


@app.post("/api/push/latest")
def latest_push(body: EndpointRequest, store: SubscriptionStore = Depends(get_store)):
    """Return the message a woken service worker should display."""
    if not body.endpoint:
        raise HTTPException(status_code=400, detail="Endpoint is required")

    fallback = {"title": FALLBACK_TITLE, "message": FALLBACK_MESSAGE}

    user_id = store.owner_of(body.endpoint)
    if user_id is None:
        return fallback

    saved = store.get_message(user_id, today())
    if saved is None:
        return fallback
    return {"title": saved.title or FALLBACK_TITLE, "message": saved.message or FALLBACK_MESSAGE}
