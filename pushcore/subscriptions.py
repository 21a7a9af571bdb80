"""
Push subscription storage interface (Protocol) and an in-memory implementation.

Subscriptions are keyed by endpoint; a user may own several (one per
browser/device). Disabled subscriptions are kept but never pushed to.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol


@dataclass(frozen=True)
class PushSubscriptionRecord:
    user_id: str
    endpoint: str
    p256dh: str | None = None
    auth: str | None = None
    enabled: bool = True
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class DailyMessage:
    title: str
    message: str


class SubscriptionStore(Protocol):
    """Protocol defining the subscription storage interface for all providers."""

    def upsert(self, user_id: str, endpoint: str, p256dh: str | None = None, auth: str | None = None) -> PushSubscriptionRecord:
        """Save or update a subscription by endpoint and mark it enabled."""
        ...

    def disable(self, user_id: str, endpoint: str) -> bool:
        """Disable a user's subscription. Returns True if one was changed."""
        ...

    def disable_endpoints(self, endpoints: list[str]) -> int:
        """Disable subscriptions by endpoint. Returns count disabled."""
        ...

    def enabled_endpoints(self, user_id: str) -> list[str]:
        """Get endpoints of a user's enabled subscriptions."""
        ...

    def owner_of(self, endpoint: str) -> str | None:
        """Get the user id owning an endpoint."""
        ...

    def save_message(self, user_id: str, day: str, title: str, message: str) -> None:
        """Save or replace a user's message for a day (YYYY-MM-DD)."""
        ...

    def get_message(self, user_id: str, day: str) -> DailyMessage | None:
        """Get a user's message for a day."""
        ...


class MemorySubscriptionStore:
    """Process-local store. Suitable for tests and single-instance deployments."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[str, PushSubscriptionRecord] = {}
        self._messages: dict[tuple[str, str], DailyMessage] = {}

    def upsert(self, user_id, endpoint, p256dh=None, auth=None):
        record = PushSubscriptionRecord(user_id=user_id, endpoint=endpoint, p256dh=p256dh, auth=auth)
        with self._lock:
            self._subscriptions[endpoint] = record
        return record

    def disable(self, user_id, endpoint):
        with self._lock:
            record = self._subscriptions.get(endpoint)
            if record is None or record.user_id != user_id or not record.enabled:
                return False
            self._subscriptions[endpoint] = replace(record, enabled=False, updated_at=datetime.now(timezone.utc))
            return True

    def disable_endpoints(self, endpoints):
        count = 0
        now = datetime.now(timezone.utc)
        with self._lock:
            for endpoint in endpoints:
                record = self._subscriptions.get(endpoint)
                if record is not None and record.enabled:
                    self._subscriptions[endpoint] = replace(record, enabled=False, updated_at=now)
                    count += 1
        return count

    def enabled_endpoints(self, user_id):
        with self._lock:
            return [
                r.endpoint for r in self._subscriptions.values()
                if r.user_id == user_id and r.enabled
            ]

    def get(self, endpoint: str) -> PushSubscriptionRecord | None:
        with self._lock:
            return self._subscriptions.get(endpoint)

    def owner_of(self, endpoint):
        record = self.get(endpoint)
        return record.user_id if record else None

    def save_message(self, user_id, day, title, message):
        with self._lock:
            self._messages[(user_id, day)] = DailyMessage(title=title, message=message)

    def get_message(self, user_id, day):
        with self._lock:
            return self._messages.get((user_id, day))
