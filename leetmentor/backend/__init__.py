"""Hint backend client."""

from leetmentor.backend.client import (
    BackendClient,
    BackendHealth,
    BackendReply,
    health_url,
    parse_reply,
    ping_backend_sync,
)

__all__ = [
    "BackendClient",
    "BackendHealth",
    "BackendReply",
    "health_url",
    "parse_reply",
    "ping_backend_sync",
]
