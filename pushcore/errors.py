"""
Error types raised by the Web Push signing core.

Everything derives from WebPushError so callers can catch the whole family.
None of these are retried inside the core.
"""


class WebPushError(Exception):
    """Base class for Web Push failures."""


class KeysNotConfigured(WebPushError):
    """VAPID public or private key is missing or blank."""


class InvalidKeyFormat(WebPushError):
    """VAPID public key is not a 65-byte uncompressed P-256 point."""


class InvalidEndpoint(WebPushError):
    """Push subscription endpoint is not an absolute URL."""


class SigningFailed(WebPushError):
    """Key construction or ECDSA signing failed."""


class TransportError(WebPushError):
    """The outbound request to the push service could not be completed."""
