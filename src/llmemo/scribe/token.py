from __future__ import annotations

import logging
from typing import Any

import httpx

from llmemo.errors import AuthError, ConfigError, NetworkError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://api.elevenlabs.io/v1/single-use-token/realtime_scribe"


def _error_detail(response: httpx.Response) -> str:
    try:
        data: Any = response.json()
    except ValueError:
        data = {}
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict):
        detail = detail.get("message")
    message = data.get("message") if isinstance(data, dict) else None
    return str(detail or message or f"HTTP {response.status_code}")


async def fetch_token(
    credential: str,
    *,
    url: str = TOKEN_URL,
    client: httpx.AsyncClient | None = None,
    timeout: float = 10.0,
) -> str:
    """Exchange a long-lived API key for a single-use realtime token.

    Every call performs exactly one request; tokens are never cached because
    each one authorises a single streaming connection.
    """

    if not credential or not credential.strip():
        raise ConfigError("API key is required")

    headers = {"xi-api-key": credential.strip(), "Content-Type": "application/json"}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                response = await owned.post(url, headers=headers)
        else:
            response = await client.post(url, headers=headers)
    except httpx.TransportError as exc:
        raise NetworkError(f"Failed to fetch token: {exc}") from exc

    if response.is_client_error:
        raise AuthError(f"Failed to fetch token: {_error_detail(response)}")
    if not response.is_success:
        raise NetworkError(f"Failed to fetch token: {_error_detail(response)}")

    try:
        data = response.json()
    except ValueError as exc:
        raise AuthError("Malformed token response from API") from exc

    token = data.get("token") if isinstance(data, dict) else None
    if not token or not isinstance(token, str):
        raise AuthError("No token received from API")

    logger.debug("Received realtime token %s...", token[:8])
    return token
