"""HTTP client factory and response checking.

All components talk to the portal through an ``httpx.AsyncClient``
created here, so base URL, timeout and credentials are a config-only
change. Retries and redirects are left to httpx defaults.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .config import PortalAccessConfig
from .exceptions import TransportError, error_for_status
from .logging import safe_log_value

__all__ = [
    "create_client",
    "raise_for_status",
    "send",
]

logger = logging.getLogger(__name__)


def create_client(
    config: Optional[PortalAccessConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an async HTTP client for the portal.

    Args:
        config: Configuration (if None, loads from environment).
        transport: Optional transport override (e.g. ``httpx.MockTransport``).

    Returns:
        ``httpx.AsyncClient`` bound to ``config.base_url``.
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    headers = {"Accept": "application/json"}
    if config.api_token:
        headers["Authorization"] = f"Bearer {config.api_token}"

    return httpx.AsyncClient(
        base_url=config.base_url,
        headers=headers,
        timeout=config.request_timeout_seconds,
        transport=transport,
    )


def raise_for_status(response: httpx.Response, *, allowed: tuple[int, ...] = ()) -> None:
    """Raise the matching TransportError unless the response succeeded.

    Args:
        response: Response to check.
        allowed: Extra non-2xx status codes accepted as success (e.g. 304).
    """
    if response.is_success or response.status_code in allowed:
        return
    error_cls = error_for_status(response.status_code)
    body = safe_log_value(response.text, limit=200)
    logger.error(
        "%s %s failed with status %d: %s",
        response.request.method,
        response.request.url.path,
        response.status_code,
        body,
    )
    raise error_cls(
        f"{response.request.method} {response.request.url.path} returned {response.status_code}",
        status_code=response.status_code,
        body=body,
    )


async def send(client: httpx.AsyncClient, request: httpx.Request) -> httpx.Response:
    """Send a request, wrapping network failures in TransportError."""
    try:
        return await client.send(request)
    except httpx.HTTPError as e:
        logger.error("%s %s failed: %s", request.method, request.url.path, e)
        raise TransportError(f"{request.method} {request.url.path} failed: {e}") from e
