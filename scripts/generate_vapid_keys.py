#!/usr/bin/env python3
"""
Generate a VAPID key pair for Web Push notifications.

Usage:
    python scripts/generate_vapid_keys.py            # JSON
    python scripts/generate_vapid_keys.py --env      # .env lines
    python scripts/generate_vapid_keys.py --env --subject mailto:ops@example.com >> .env

Outputs JSON: {"private_key": "base64url...", "public_key": "base64url..."}
"""
import argparse
import json
import sys

from pushcore.config import DEFAULT_SUBJECT
from pushcore.keys import generate_vapid_keys


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate a VAPID key pair")
    parser.add_argument("--env", action="store_true", help="Print as .env assignments instead of JSON")
    parser.add_argument("--subject", default=DEFAULT_SUBJECT, help="Contact URI for the sub claim (with --env)")
    args = parser.parse_args(argv)

    private_key, public_key = generate_vapid_keys()

    if args.env:
        print(f"VAPID_PUBLIC_KEY={public_key}")
        print(f"VAPID_PRIVATE_KEY={private_key}")
        print(f"VAPID_SUBJECT={args.subject}")
    else:
        print(json.dumps({"private_key": private_key, "public_key": public_key}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
