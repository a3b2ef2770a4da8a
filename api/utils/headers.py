"""HTTP header helpers: client address resolution and log-safe header views."""
from __future__ import annotations

from typing import Mapping, Optional


REDACTED = "***REDACTED***"

# 不允许原样写入日志的请求头
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "cookie",
    "stripe-signature",
    "x-api-key",
})


def resolve_client_ip(headers: Mapping[str, str], peer_host: Optional[str]) -> str:
    """Best-effort original client address behind proxies.

    X-Forwarded-For (first hop) wins over X-Real-IP, then the socket peer.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer_host or "unknown"


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        key: (REDACTED if key.lower() in SENSITIVE_HEADERS else value)
        for key, value in headers.items()
    }
