"""
HTTP Client Module

Factory for httpx.AsyncClient instances used to reach collaborator
services (the knowledge-base search service).

Reference Documents:
- GUIDELINES pp. 2309: Connection pooling per downstream service (Newman)
- GUIDELINES pp. 2319: Timeout configuration and logging

Pattern: Factory pattern for creating configured HTTP clients
"""

from typing import Optional

import httpx


DEFAULT_TIMEOUT_SECONDS: float = 5.0
"""Default per-request timeout. Knowledge lookups are best effort and must stay short."""

DEFAULT_MAX_CONNECTIONS: int = 50
DEFAULT_MAX_KEEPALIVE: int = 10

DEFAULT_CONNECT_RETRIES: int = 1
"""Connection-level retries only; request-level retries belong to RetryExecutor."""

USER_AGENT = "broker-ai/1.0"


def create_http_client(
    base_url: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
    max_connections: Optional[int] = None,
    max_keepalive: Optional[int] = None,
    retries: Optional[int] = None,
    headers: Optional[dict[str, str]] = None,
) -> httpx.AsyncClient:
    """
    Create a configured HTTP client with connection pooling and timeouts.

    Args:
        base_url: Base URL for all requests
        timeout_seconds: Request timeout in seconds (default: 5.0)
        max_connections: Maximum connections in pool (default: 50)
        max_keepalive: Maximum keepalive connections (default: 10)
        retries: Connection retries (default: 1)
        headers: Additional headers to include in all requests

    Returns:
        httpx.AsyncClient: Configured async HTTP client

    Example:
        >>> client = create_http_client(base_url="http://knowledge:8081")
        >>> async with client:
        ...     response = await client.post("/search", json={"query": "SBA"})
    """
    timeout = timeout_seconds if timeout_seconds is not None else DEFAULT_TIMEOUT_SECONDS
    max_conn = max_connections if max_connections is not None else DEFAULT_MAX_CONNECTIONS
    max_keep = max_keepalive if max_keepalive is not None else DEFAULT_MAX_KEEPALIVE
    retry_count = retries if retries is not None else DEFAULT_CONNECT_RETRIES

    limits = httpx.Limits(
        max_connections=max_conn,
        max_keepalive_connections=max_keep,
    )

    default_headers = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
    }
    if headers:
        default_headers.update(headers)

    transport = httpx.AsyncHTTPTransport(retries=retry_count, limits=limits)

    return httpx.AsyncClient(
        base_url=base_url or "",
        timeout=httpx.Timeout(timeout),
        headers=default_headers,
        transport=transport,
    )
