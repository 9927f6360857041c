"""
leakprobe/net/adapter.py
Unified HTTP Adapter for leakprobe.

This is the single choke point for all outbound HTTP traffic from the probe
(public address lookup, geolocation, sink delivery). It wraps
httpx.AsyncClient, injects the identity header, and turns transport errors,
non-2xx statuses and undecodable bodies into LookupFailedError so callers
have exactly one failure type to absorb.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from leakprobe.errors import ErrorCode, LookupFailedError

logger = logging.getLogger(__name__)

# How much of an error body is carried into error markers
ERROR_BODY_EXCERPT = 200


class ProbeHTTPClient:
    """
    A unified HTTP client for every outbound call the probe makes.
    Owns the underlying httpx.AsyncClient only when it created it.
    """
    def __init__(
        self,
        user_agent: str,
        timeout: float = 10.0,
        underlying_client: Optional[httpx.AsyncClient] = None,
    ):
        self.user_agent = user_agent
        self._owns_client = underlying_client is None
        self.client = underlying_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Execute an HTTP request and require a 2xx answer.

        Raises:
            LookupFailedError: LOOKUP_TRANSPORT_FAILED for network errors/timeouts,
                LOOKUP_BAD_STATUS for non-2xx responses.
        """
        headers = dict(kwargs.pop("headers", None) or {})
        headers.setdefault("User-Agent", self.user_agent)

        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise LookupFailedError(
                ErrorCode.LOOKUP_TRANSPORT_FAILED,
                f"{method} {url} failed: {e.__class__.__name__}: {e}",
                details={"url": url},
            ) from e

        if not response.is_success:
            excerpt = response.text[:ERROR_BODY_EXCERPT]
            raise LookupFailedError(
                ErrorCode.LOOKUP_BAD_STATUS,
                f"{method} {url} returned {response.status_code}",
                details={"url": url, "body": excerpt},
                status_code=response.status_code,
            )
        return response

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self.request("GET", url, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise LookupFailedError(
                ErrorCode.LOOKUP_MALFORMED_PAYLOAD,
                f"GET {url} returned a non-JSON body",
                details={"url": url},
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise LookupFailedError(
                ErrorCode.LOOKUP_MALFORMED_PAYLOAD,
                f"GET {url} returned {type(data).__name__}, expected an object",
                details={"url": url},
                status_code=response.status_code,
            )
        return data

    async def post_json(self, url: str, payload: Dict[str, Any], **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, json=payload, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
