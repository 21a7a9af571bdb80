"""
Web Push dispatch with VAPID authorization.

Pushes carry no payload: each request is an empty POST that wakes the
service worker, which then fetches its content from the API.

Usage:
    from pushcore.config import VapidConfig
    from pushcore.webpush import PushDispatcher

    dispatcher = PushDispatcher(VapidConfig(public_key, private_key, 'mailto:admin@example.com'))
    response = dispatcher.send_push('https://fcm.googleapis.com/fcm/send/...')
    if response.status_code in (404, 410):
        ...  # subscription expired, caller should disable it
"""
from __future__ import annotations

import asyncio
import time

import httpx

from pushcore.config import Settings, VapidConfig, get_settings
from pushcore.errors import KeysNotConfigured, TransportError
from pushcore.tokens import build_token


DEFAULT_TTL_SECONDS = 60
DEFAULT_URGENCY = "normal"


class _DispatcherBase:
    def __init__(
        self,
        vapid: VapidConfig,
        ttl: int = DEFAULT_TTL_SECONDS,
        urgency: str = DEFAULT_URGENCY,
        timeout: float | None = None,
        max_retries: int = 0,
        backoff_seconds: float = 0.5,
        verify_pair: bool = False,
    ):
        self.vapid = vapid
        self.ttl = ttl
        self.urgency = urgency
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self.verify_pair = verify_pair

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs):
        """Build a dispatcher from process settings."""
        settings = settings or get_settings()
        return cls(
            settings.vapid_config(),
            ttl=settings.push_ttl_seconds,
            urgency=settings.push_urgency,
            timeout=settings.push_timeout_seconds,
            max_retries=settings.push_max_retries,
            backoff_seconds=settings.push_retry_backoff_seconds,
            verify_pair=settings.push_verify_key_pair,
            **kwargs,
        )

    def build_headers(self, endpoint: str) -> dict[str, str]:
        """
        Build the VAPID request headers for an endpoint.

        Raises KeysNotConfigured before any token work if a key is blank.
        """
        if not self.vapid.configured:
            raise KeysNotConfigured("VAPID keys are not configured")

        token = build_token(
            endpoint,
            self.vapid.subject,
            self.vapid.public_key,
            self.vapid.private_key,
            verify_pair=self.verify_pair,
        )

        return {
            'TTL': str(self.ttl),
            'Urgency': self.urgency,
            'Authorization': f'vapid t={token}, k={self.vapid.public_key}',
            'Content-Length': '0',
        }

    def _request_timeout(self):
        # Without a configured deadline, a caller-supplied client keeps its own timeout
        return self.timeout if self.timeout is not None else httpx.USE_CLIENT_DEFAULT

    def _retry_delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** attempt)


class PushDispatcher(_DispatcherBase):
    """Blocking dispatcher backed by httpx.Client."""

    def __init__(self, vapid: VapidConfig, client: httpx.Client | None = None, **kwargs):
        super().__init__(vapid, **kwargs)
        self._client = client

    def send_push(self, endpoint: str) -> httpx.Response:
        """
        Send a wake-up push to a subscription endpoint.

        Returns:
            The push service response, uninterpreted. 201 means accepted,
            404/410 mean the subscription is gone.

        Raises:
            KeysNotConfigured, InvalidKeyFormat, InvalidEndpoint, SigningFailed:
                Nothing was sent.
            TransportError: The request could not be completed.
        """
        headers = self.build_headers(endpoint)

        attempt = 0
        while True:
            try:
                if self._client is not None:
                    return self._client.post(endpoint, headers=headers, content=b'', timeout=self._request_timeout())
                with httpx.Client(timeout=self.timeout) as client:
                    return client.post(endpoint, headers=headers, content=b'')
            except httpx.RequestError as e:
                # Only connection-level failures are worth another attempt
                if not isinstance(e, httpx.TransportError) or attempt >= self.max_retries:
                    raise TransportError(f"Push failed: {e}") from e
                time.sleep(self._retry_delay(attempt))
                attempt += 1


class AsyncPushDispatcher(_DispatcherBase):
    """Non-blocking dispatcher backed by httpx.AsyncClient."""

    def __init__(self, vapid: VapidConfig, client: httpx.AsyncClient | None = None, **kwargs):
        super().__init__(vapid, **kwargs)
        self._client = client

    async def send_push(self, endpoint: str) -> httpx.Response:
        """Async counterpart of PushDispatcher.send_push."""
        headers = self.build_headers(endpoint)

        attempt = 0
        while True:
            try:
                if self._client is not None:
                    return await self._client.post(endpoint, headers=headers, content=b'', timeout=self._request_timeout())
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    return await client.post(endpoint, headers=headers, content=b'')
            except httpx.RequestError as e:
                # Only connection-level failures are worth another attempt
                if not isinstance(e, httpx.TransportError) or attempt >= self.max_retries:
                    raise TransportError(f"Push failed: {e}") from e
                await asyncio.sleep(self._retry_delay(attempt))
                attempt += 1


def send_push(endpoint: str, vapid: VapidConfig | None = None) -> httpx.Response:
    """Send a wake-up push using process settings (or an explicit VapidConfig)."""
    if vapid is None:
        return PushDispatcher.from_settings().send_push(endpoint)
    return PushDispatcher(vapid).send_push(endpoint)
