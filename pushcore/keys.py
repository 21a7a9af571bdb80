"""
VAPID key material handling.

Public keys are URL-safe base64 uncompressed P-256 points (0x04 || x || y).
Private keys are the raw 32-byte scalar `d`, URL-safe base64 encoded.

Usage:
    from pushcore.keys import generate_vapid_keys, load_signing_key

    # Generate VAPID keys (do once, store in env vars)
    private_key, public_key = generate_vapid_keys()

    signing_key = load_signing_key(public_key, private_key)
"""
from __future__ import annotations

import base64
import binascii

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.backends import default_backend

from pushcore.errors import InvalidKeyFormat, KeysNotConfigured, SigningFailed


# 0x04 marker + 32-byte x + 32-byte y
UNCOMPRESSED_POINT_SIZE = 65
UNCOMPRESSED_POINT_MARKER = 0x04
COORDINATE_SIZE = 32


def b64encode(data: bytes) -> str:
    """URL-safe base64 encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')


def b64decode(data: str) -> bytes:
    """Base64 decode with padding restoration. Handles both URL-safe and standard base64."""
    # Convert standard base64 to URL-safe if needed
    data = data.strip().replace('+', '-').replace('/', '_').rstrip('=')
    # Restore padding
    padding = 4 - (len(data) % 4)
    if padding != 4:
        data += '=' * padding
    # validate=True rejects characters outside the alphabet instead of dropping them
    return base64.b64decode(data, altchars=b'-_', validate=True)


def decode_public_key(public_key: str) -> tuple[bytes, bytes]:
    """
    Decode a VAPID public key into its (x, y) coordinates.

    Raises:
        InvalidKeyFormat: If the key is not a 65-byte point starting with 0x04.
    """
    try:
        public_bytes = b64decode(public_key)
    except (binascii.Error, ValueError) as e:
        raise InvalidKeyFormat(f"Invalid VAPID public key format: {e}") from e

    if len(public_bytes) != UNCOMPRESSED_POINT_SIZE or public_bytes[0] != UNCOMPRESSED_POINT_MARKER:
        raise InvalidKeyFormat(
            f"Invalid VAPID public key format: expected {UNCOMPRESSED_POINT_SIZE} bytes "
            f"starting with 0x04, got {len(public_bytes)} bytes"
        )

    x = public_bytes[1:1 + COORDINATE_SIZE]
    y = public_bytes[1 + COORDINATE_SIZE:]
    return x, y


def load_signing_key(
    public_key: str | None,
    private_key: str | None,
    verify_pair: bool = False,
) -> ec.EllipticCurvePrivateKey:
    """
    Build a P-256 signing key from the configured VAPID key pair.

    The public key is always decoded and validated first. Signing only needs
    the scalar, so the pair is not cross-checked unless verify_pair=True, in
    which case the point derived from `d` must equal the supplied (x, y).

    Raises:
        KeysNotConfigured: Either key is blank.
        InvalidKeyFormat: Public key is malformed, or does not match (verify_pair).
        SigningFailed: Private scalar cannot be turned into a P-256 key.
    """
    if not public_key or not public_key.strip() or not private_key or not private_key.strip():
        raise KeysNotConfigured("VAPID keys are not configured")

    x, y = decode_public_key(public_key)

    try:
        d = int.from_bytes(b64decode(private_key), 'big')
    except (binascii.Error, ValueError) as e:
        raise SigningFailed(f"Invalid VAPID private key: {e}") from e

    try:
        signing_key = ec.derive_private_key(d, ec.SECP256R1(), default_backend())
    except (ValueError, TypeError) as e:
        raise SigningFailed(f"Invalid VAPID private key: {e}") from e

    if verify_pair:
        public_numbers = signing_key.public_key().public_numbers()
        if (public_numbers.x, public_numbers.y) != (int.from_bytes(x, 'big'), int.from_bytes(y, 'big')):
            raise InvalidKeyFormat("VAPID key pair mismatch: private key does not derive the public key")

    return signing_key


def public_key_bytes(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """Export the public half of a key as an uncompressed point (65 bytes)."""
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint
    )


def load_public_key(public_key: str) -> ec.EllipticCurvePublicKey:
    """Load a VAPID public key string for signature verification."""
    x, y = decode_public_key(public_key)
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(
            ec.SECP256R1(), bytes([UNCOMPRESSED_POINT_MARKER]) + x + y
        )
    except ValueError as e:
        raise InvalidKeyFormat(f"VAPID public key is not a P-256 point: {e}") from e


def generate_vapid_keys() -> tuple[str, str]:
    """
    Generate a new VAPID key pair.
    Returns (private_key_base64, public_key_base64).

    Store the private key securely (env var).
    The public key goes in your frontend for subscription.
    """
    private_key = ec.generate_private_key(ec.SECP256R1(), default_backend())

    # Export private key as raw bytes (32 bytes for P-256)
    private_bytes = private_key.private_numbers().private_value.to_bytes(COORDINATE_SIZE, 'big')

    return b64encode(private_bytes), b64encode(public_key_bytes(private_key))


def derive_public_key(private_key: str) -> str:
    """
    Derive the public key from a VAPID private key.
    Use this to get the applicationServerKey for frontend subscription.
    """
    if not private_key:
        raise KeysNotConfigured("VAPID private key is not configured")
    try:
        key = ec.derive_private_key(
            int.from_bytes(b64decode(private_key), 'big'),
            ec.SECP256R1(),
            default_backend()
        )
    except (binascii.Error, ValueError, TypeError) as e:
        raise SigningFailed(f"Invalid VAPID private key: {e}") from e
    return b64encode(public_key_bytes(key))
