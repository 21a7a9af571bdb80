"""
Send a wake-up push to every endpoint a user has enabled.

Failures are isolated per endpoint. 404/410 responses mark an endpoint as
expired; the caller decides what to do with it (usually disable it).
"""
from __future__ import annotations

from dataclasses import dataclass, field

from pushcore.errors import WebPushError
from pushcore.webpush import PushDispatcher


# Push service responses meaning the subscription no longer exists
EXPIRED_STATUS_CODES = (404, 410)


@dataclass
class DispatchResult:
    attempted: int = 0
    invalid_endpoints: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # endpoint -> error

    @property
    def sent(self) -> int:
        return self.attempted - len(self.invalid_endpoints) - len(self.failed)


def dispatch_to_endpoints(dispatcher: PushDispatcher, endpoints: list[str]) -> DispatchResult:
    result = DispatchResult(attempted=len(endpoints))

    for endpoint in endpoints:
        try:
            response = dispatcher.send_push(endpoint)
        except WebPushError as e:
            print(f"PUSH: Error sending to '{endpoint}': {type(e).__name__}: {e}", flush=True)
            result.failed[endpoint] = str(e)
            continue

        if response.status_code in EXPIRED_STATUS_CODES:
            print(f"PUSH: Subscription expired ({response.status_code}) for '{endpoint}'", flush=True)
            result.invalid_endpoints.append(endpoint)
        elif response.status_code >= 400:
            print(f"PUSH: Push service returned {response.status_code} for '{endpoint}'", flush=True)

    return result
