#!/usr/bin/env python3
"""
Fetch the Ethora OpenAPI spec (swagger.json) from a running backend.

Usage:
    OPENAPI_URL=https://api.ethoradev.com/api-docs/swagger.json python scripts/fetch_openapi.py
    python scripts/fetch_openapi.py --url http://localhost:8080/openapi.json --out openapi/swagger.json

Output:
    ./openapi/swagger.json
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

import httpx

DEFAULT_OPENAPI_URL = "https://api.ethoradev.com/api-docs/swagger.json"
DEFAULT_OUT_FILE = Path("openapi") / "swagger.json"


def fetch_openapi(url: str, out_file: Path, transport: Optional[httpx.BaseTransport] = None) -> Path:
    """
    Download the spec and write it pretty-printed.

    Raises:
        RuntimeError: Non-2xx answer (first 500 characters of the body included)
    """
    print(f"[openapi:fetch] Fetching: {url}")

    with httpx.Client(timeout=30.0, transport=transport) as client:
        response = client.get(url, headers={"Accept": "application/json"})

    if response.is_error:
        raise RuntimeError(
            f"[openapi:fetch] Failed ({response.status_code}) {url}\n{response.text[:500]}"
        )

    spec = response.json()

    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_text(json.dumps(spec, indent=2) + "\n", encoding="utf8")

    print(f"[openapi:fetch] Wrote: {out_file}")
    return out_file


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch the chat service OpenAPI spec")
    parser.add_argument("--url", default=os.environ.get("OPENAPI_URL", DEFAULT_OPENAPI_URL))
    parser.add_argument("--out", type=Path, default=DEFAULT_OUT_FILE)
    args = parser.parse_args(argv)

    try:
        fetch_openapi(args.url, args.out)
    except (RuntimeError, httpx.HTTPError) as e:
        print(e, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
