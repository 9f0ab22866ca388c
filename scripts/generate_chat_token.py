#!/usr/bin/env python3
"""
Chat Token Generator

Prints a JWT signed with the application secret, plus its decoded claims.

Usage:
    # Client token for a user (what front-ends embed in the chat component)
    python scripts/generate_chat_token.py --user-id patient-42

    # Server-to-server token (sent as x-custom-token)
    python scripts/generate_chat_token.py --server

    # Explicit credentials instead of ETHORA_* environment variables
    python scripts/generate_chat_token.py --user-id u1 --app-id my-app --secret s3cret

NOTE: tokens printed here grant real access to the chat application.
"""

import argparse
import json
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from casechat.core.tokens import TokenIssuer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate Ethora chat JWTs")
    kind = parser.add_mutually_exclusive_group(required=True)
    kind.add_argument("--user-id", help="Issue a client token for this user ID")
    kind.add_argument("--server", action="store_true", help="Issue a server-to-server token")
    parser.add_argument("--app-id", default=None, help="Defaults to ETHORA_CHAT_APP_ID")
    parser.add_argument("--secret", default=None, help="Defaults to ETHORA_CHAT_APP_SECRET")
    parser.add_argument("--quiet", action="store_true", help="Print the token only")
    return parser


def generate(args: argparse.Namespace) -> dict:
    app_id = args.app_id or os.environ.get("ETHORA_CHAT_APP_ID")
    secret = args.secret or os.environ.get("ETHORA_CHAT_APP_SECRET")
    if not app_id or not secret:
        raise SystemExit(
            "App ID and secret required: pass --app-id/--secret or set "
            "ETHORA_CHAT_APP_ID and ETHORA_CHAT_APP_SECRET"
        )

    issuer = TokenIssuer(app_id, secret)
    token = issuer.server_token() if args.server else issuer.client_token(args.user_id)
    return {"token": token, "claims": issuer.verify_token(token)}


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    result = generate(args)

    if args.quiet:
        print(result["token"])
        return 0

    print("=" * 80)
    print("Token:")
    print(result["token"])
    print("\nClaims:")
    print(json.dumps(result["claims"], indent=2))
    print("=" * 80)
    return 0


if __name__ == "__main__":
    sys.exit(main())
