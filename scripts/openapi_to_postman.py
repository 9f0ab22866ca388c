#!/usr/bin/env python3
"""
Convert the fetched OpenAPI spec into a Postman collection (v2.1).

Usage:
    python scripts/fetch_openapi.py
    python scripts/openapi_to_postman.py

Input:
    ./openapi/swagger.json
Output:
    ./postman/ethora-api.postman_collection.json

Requests are grouped into one folder per tag, in the spec's path order.
Path parameters become Postman variables (`{id}` -> `:id`); the base URL is
the `{{baseUrl}}` collection variable.
"""

import argparse
import json
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_IN_FILE = Path("openapi") / "swagger.json"
DEFAULT_OUT_FILE = Path("postman") / "ethora-api.postman_collection.json"

POSTMAN_SCHEMA = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"
HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options")
UNTAGGED = "default"


def base_url(spec: dict) -> str:
    """First server URL (OpenAPI 3) or scheme://host/basePath (Swagger 2)."""
    servers = spec.get("servers") or []
    if servers:
        return servers[0].get("url", "").rstrip("/")
    host = spec.get("host")
    if not host:
        return ""
    scheme = (spec.get("schemes") or ["https"])[0]
    return f"{scheme}://{host}{spec.get('basePath', '')}".rstrip("/")


def example_body(operation: dict) -> Optional[str]:
    """JSON example of the request body, if the spec provides one."""
    content = (operation.get("requestBody") or {}).get("content", {})
    media = content.get("application/json") or {}
    example = media.get("example")
    if example is None:
        examples = media.get("examples") or {}
        if examples:
            example = next(iter(examples.values())).get("value")
    if example is None:
        example = (media.get("schema") or {}).get("example")
    if example is None:
        return None
    return json.dumps(example, indent=2)


def build_request(path: str, method: str, operation: dict) -> Dict[str, Any]:
    postman_path = re.sub(r"\{([^}]+)\}", r":\1", path)
    segments = [s for s in postman_path.split("/") if s]
    parameters = operation.get("parameters") or []

    url: Dict[str, Any] = {
        "raw": "{{baseUrl}}/" + "/".join(segments),
        "host": ["{{baseUrl}}"],
        "path": segments,
    }
    path_vars = [p["name"] for p in parameters if p.get("in") == "path"]
    if path_vars:
        url["variable"] = [{"key": name, "value": ""} for name in path_vars]
    query = [p["name"] for p in parameters if p.get("in") == "query"]
    if query:
        url["query"] = [{"key": name, "value": "", "disabled": True} for name in query]

    request: Dict[str, Any] = {
        "method": method.upper(),
        "header": [{"key": "x-custom-token", "value": "{{serverToken}}"}],
        "url": url,
    }
    body = example_body(operation)
    if body is not None:
        request["header"].append({"key": "Content-Type", "value": "application/json"})
        request["body"] = {"mode": "raw", "raw": body, "options": {"raw": {"language": "json"}}}

    return {
        "name": operation.get("summary") or operation.get("operationId") or f"{method.upper()} {path}",
        "request": request,
    }


def convert(spec: dict) -> dict:
    """Build a Postman collection dict from an OpenAPI/Swagger dict."""
    folders: Dict[str, List[dict]] = {}
    for path, item in (spec.get("paths") or {}).items():
        for method in HTTP_METHODS:
            operation = item.get(method)
            if operation is None:
                continue
            tag = (operation.get("tags") or [UNTAGGED])[0]
            folders.setdefault(tag, []).append(build_request(path, method, operation))

    info = spec.get("info") or {}
    return {
        "info": {
            "name": info.get("title", "Ethora API"),
            "description": info.get("description", ""),
            "schema": POSTMAN_SCHEMA,
        },
        "item": [{"name": tag, "item": requests} for tag, requests in folders.items()],
        "variable": [
            {"key": "baseUrl", "value": base_url(spec)},
            {"key": "serverToken", "value": ""},
        ],
    }


def openapi_to_postman(in_file: Path, out_file: Path) -> Path:
    """
    Read `in_file`, write the collection to `out_file`.

    Raises:
        RuntimeError: Input missing (run fetch_openapi.py first)
    """
    if not in_file.exists():
        raise RuntimeError(
            f"[openapi:postman] Missing {in_file}. Run: python scripts/fetch_openapi.py"
        )

    spec = json.loads(in_file.read_text(encoding="utf8"))

    print("[openapi:postman] Converting OpenAPI -> Postman collection...")
    collection = convert(spec)

    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_text(json.dumps(collection, indent=2) + "\n", encoding="utf8")

    print(f"[openapi:postman] Wrote: {out_file}")
    return out_file


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Convert OpenAPI JSON to a Postman collection")
    parser.add_argument("--in", dest="in_file", type=Path, default=DEFAULT_IN_FILE)
    parser.add_argument("--out", type=Path, default=DEFAULT_OUT_FILE)
    args = parser.parse_args(argv)

    try:
        openapi_to_postman(args.in_file, args.out)
    except (RuntimeError, ValueError) as e:
        print(e, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
