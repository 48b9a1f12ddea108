"""Shared utilities for FastAPI routes."""

import json
from typing import Any

from fastapi import Request

UNKNOWN_CLIENT_IP = "unknown"


def get_client_ip(request: Request) -> str:
    """
    Best guess at the caller's address.

    Proxies put the original client first in x-forwarded-for; x-real-ip is
    the single-value variant some proxies use instead.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_IP


def to_sse(event: dict[str, Any]) -> str:
    """Serialize one pipeline event as a server-sent event frame."""
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"
