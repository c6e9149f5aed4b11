"""Shared HTTP client used for image downloads."""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_shared_client: Optional[httpx.AsyncClient] = None


def get_shared_http_client() -> httpx.AsyncClient:
    """Get or create the process-wide async HTTP client.

    Per-request timeouts and headers are set by the caller; the client
    only owns the connection pool.
    """
    global _shared_client

    if _shared_client is None:
        _shared_client = httpx.AsyncClient(
            follow_redirects=True,
            limits=httpx.Limits(
                max_keepalive_connections=20,
                max_connections=100,
                keepalive_expiry=30.0,
            ),
        )
        logger.info("Created shared HTTP client for image downloads")

    return _shared_client


async def close_shared_http_client() -> None:
    """Close the shared client (call on application shutdown)."""
    global _shared_client

    if _shared_client is not None:
        await _shared_client.aclose()
        _shared_client = None
        logger.info("Closed shared HTTP client")
