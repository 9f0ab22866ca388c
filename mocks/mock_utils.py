"""
Shared utilities for mock servers.

Provides server-token checking, chat-service style error bodies, failure
injection, network delay simulation and request metrics.
"""

import asyncio
import random
from collections import Counter
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException
from fastapi.responses import JSONResponse


def decode_server_token(token: Optional[str], secret: str, app_id: str) -> Dict[str, Any]:
    """
    Validate an `x-custom-token` server JWT.

    Raises:
        HTTPException: 401 if the token is missing, badly signed, not a server
            token or issued for another application
    """
    if not token:
        raise HTTPException(status_code=401, detail="Missing x-custom-token header")

    try:
        payload = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")

    data = payload.get("data") or {}
    if data.get("type") != "server" or data.get("appId") != app_id:
        raise HTTPException(status_code=401, detail="Not a server token for this app")

    return payload


def unprocessable(message: str) -> JSONResponse:
    """The chat service's 422 answer: `{"error": message}`."""
    return JSONResponse(status_code=422, content={"error": message})


async def simulate_network_delay(min_ms: int = 50, max_ms: int = 200):
    """Sleep a random latency in [min_ms, max_ms]."""
    await asyncio.sleep(random.uniform(min_ms, max_ms) / 1000)


class FailureInjector:
    """
    Queue of forced responses per endpoint.

    Usage:
        failures.add("POST /chats", 500, "boom")
        failures.add("POST /users", 422, "User already exists", times=2)
    """

    def __init__(self):
        self._queued: Dict[str, list] = {}

    def add(self, endpoint: str, status_code: int, message: str = "Simulated error", times: int = 1):
        self._queued.setdefault(endpoint, []).extend([(status_code, message)] * times)

    def take(self, endpoint: str) -> Optional[JSONResponse]:
        queued = self._queued.get(endpoint)
        if not queued:
            return None
        status_code, message = queued.pop(0)
        return JSONResponse(status_code=status_code, content={"error": message})

    def clear(self):
        self._queued.clear()


class MockMetrics:
    """Request and error counters per endpoint (`"METHOD /path"`)."""

    def __init__(self):
        self.requests: Counter = Counter()
        self.errors: Counter = Counter()

    def record_request(self, endpoint: str):
        self.requests[endpoint] += 1

    def record_error(self, endpoint: str):
        self.errors[endpoint] += 1

    def count(self, endpoint: str) -> int:
        return self.requests[endpoint]

    def get_stats(self) -> Dict[str, Any]:
        total = sum(self.requests.values())
        failed = sum(self.errors.values())
        return {
            "total_requests": total,
            "total_errors": failed,
            "error_rate": failed / total if total else 0,
            "endpoints": dict(self.requests),
            "errors": dict(self.errors),
        }
