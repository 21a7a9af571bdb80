"""
Single-process entry point for the push service.

Configures the shared app with process settings and an in-memory
subscription store. Serve with any ASGI server:

    uvicorn providers.local.handler:app
"""
from pushcore.app import app, registry
from pushcore.config import get_settings
from pushcore.subscriptions import MemorySubscriptionStore
from pushcore.webpush import PushDispatcher

print("DEBUG: Initializing local providers...", flush=True)

registry.configure(
    settings_fn=get_settings,
    store=MemorySubscriptionStore(),
    dispatcher_factory=PushDispatcher.from_settings,
)

if not get_settings().vapid_config().configured:
    print("DEBUG: WARNING - VAPID keys not set, push dispatch will return 501", flush=True)

print("DEBUG: Local providers initialized", flush=True)
