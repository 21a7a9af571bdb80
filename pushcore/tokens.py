"""
VAPID JWT construction (RFC 8292).

Tokens are ES256 JWTs whose signature is the raw 64-byte r||s form,
not the DER encoding cryptography produces by default.
"""
from __future__ import annotations

import json
import time
from urllib.parse import urlsplit

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from pushcore.errors import InvalidEndpoint, SigningFailed
from pushcore.keys import COORDINATE_SIZE, b64decode, b64encode, load_public_key, load_signing_key


# 12 hour expiry; push services reject anything over 24h
TOKEN_LIFETIME_SECONDS = 12 * 60 * 60

JWT_HEADER = {'typ': 'JWT', 'alg': 'ES256'}

_DEFAULT_PORTS = {'http': 80, 'https': 443}


def get_audience(endpoint: str) -> str:
    """
    Extract the push service origin (scheme://host[:port]) from an endpoint URL.

    Raises:
        InvalidEndpoint: If the endpoint is not an absolute http(s) URL.
    """
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise InvalidEndpoint("Push endpoint is required")

    try:
        parsed = urlsplit(endpoint.strip())
        port = parsed.port
    except ValueError as e:
        raise InvalidEndpoint(f"Invalid push endpoint '{endpoint}': {e}") from e

    scheme = parsed.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parsed.hostname:
        raise InvalidEndpoint(f"Invalid push endpoint '{endpoint}': must be an absolute http(s) URL")

    # The request is built by httpx, so its parser must accept the URL too
    # (control characters, bad IDNA labels such as "xn--")
    try:
        httpx.URL(endpoint.strip()).host
    except (httpx.InvalidURL, ValueError) as e:
        raise InvalidEndpoint(f"Invalid push endpoint '{endpoint}': {e}") from e

    host = parsed.hostname
    if ':' in host:
        # IPv6 literal
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    return f"{scheme}://{host}"


def _encode_segment(data: dict) -> str:
    return b64encode(json.dumps(data, separators=(',', ':')).encode())


def sign_es256(signing_key: ec.EllipticCurvePrivateKey, signing_input: bytes) -> bytes:
    """Sign with ECDSA P-256/SHA-256 and return the fixed-width r||s signature."""
    try:
        der_signature = signing_key.sign(signing_input, ec.ECDSA(hashes.SHA256()))
    except (ValueError, TypeError) as e:
        raise SigningFailed(f"ECDSA signing failed: {e}") from e

    # Convert DER signature to raw r||s format (64 bytes)
    r, s = decode_dss_signature(der_signature)
    return r.to_bytes(COORDINATE_SIZE, 'big') + s.to_bytes(COORDINATE_SIZE, 'big')


def build_token(
    endpoint: str,
    subject: str,
    public_key: str,
    private_key: str,
    now: float | None = None,
    verify_pair: bool = False,
) -> str:
    """
    Create a signed VAPID JWT for a push endpoint.

    Args:
        endpoint: Push subscription endpoint URL (audience source)
        subject: Contact URI for the `sub` claim (mailto: or https:)
        public_key: Base64url uncompressed P-256 public key
        private_key: Base64url private scalar
        now: Issue time override (unix seconds), defaults to time.time()
        verify_pair: Check that the private key derives the public key

    Returns:
        Compact JWT: header.payload.signature
    """
    # Endpoint problems are reported before any key work
    audience = get_audience(endpoint)

    signing_key = load_signing_key(public_key, private_key, verify_pair=verify_pair)

    issued_at = int(time.time() if now is None else now)
    payload = {
        'aud': audience,
        'exp': issued_at + TOKEN_LIFETIME_SECONDS,
        'sub': subject,
    }

    signing_input = f"{_encode_segment(JWT_HEADER)}.{_encode_segment(payload)}"
    signature = sign_es256(signing_key, signing_input.encode())

    return f"{signing_input}.{b64encode(signature)}"


def decode_segment(segment: str) -> dict:
    """Decode a base64url JSON segment of a token."""
    return json.loads(b64decode(segment))


def verify_token(token: str, public_key: str) -> dict:
    """
    Verify a VAPID JWT against a public key and return its claims.

    Raises:
        SigningFailed: Token is malformed or the signature does not verify.
        InvalidKeyFormat: Public key is malformed.
    """
    parts = token.split('.')
    if len(parts) != 3 or not all(parts):
        raise SigningFailed("Token must have three non-empty segments")

    header_b64, payload_b64, signature_b64 = parts
    try:
        header = decode_segment(header_b64)
        claims = decode_segment(payload_b64)
        signature = b64decode(signature_b64)
    except ValueError as e:
        raise SigningFailed(f"Malformed token: {e}") from e

    if header != JWT_HEADER:
        raise SigningFailed(f"Unexpected token header: {header}")
    if len(signature) != 2 * COORDINATE_SIZE:
        raise SigningFailed(f"Signature must be {2 * COORDINATE_SIZE} raw bytes, got {len(signature)}")

    r = int.from_bytes(signature[:COORDINATE_SIZE], 'big')
    s = int.from_bytes(signature[COORDINATE_SIZE:], 'big')

    verifier = load_public_key(public_key)
    try:
        verifier.verify(
            encode_dss_signature(r, s),
            f"{header_b64}.{payload_b64}".encode(),
            ec.ECDSA(hashes.SHA256()),
        )
    except InvalidSignature as e:
        raise SigningFailed("Token signature does not verify") from e

    return claims

