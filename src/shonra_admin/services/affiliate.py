"""Signed client for the affiliate GraphQL API."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from shonra_admin.core.errors import UpstreamError
from shonra_admin.core.settings import Settings
from shonra_admin.core.signature import authorization_header, canonical_payload, generate_signature

logger = logging.getLogger(__name__)


def _unix_seconds() -> int:
    return int(time.time())


class AffiliateClient:
    """HTTP client wrapper that signs every GraphQL request.

    Requests carry ``Authorization: SHA256 Credential=..,Timestamp=..,Signature=..``
    computed over the exact body bytes. Failures raise ``UpstreamError``;
    nothing is retried.
    """

    def __init__(
        self,
        config: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timestamp: Callable[[], int] = _unix_seconds,
    ) -> None:
        self.app_id = config.shopee_app_id
        self.secret = config.shopee_app_secret
        self.api_url = config.shopee_api_url
        self.timeout_seconds = config.shopee_http_timeout_seconds
        self._transport = transport
        self._timestamp = timestamp
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.secret)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_seconds, connect=10.0),
                    transport=self._transport,
                )
        return self._client

    def signed_headers(self, payload: str) -> dict[str, str]:
        """Return the headers for a request whose body is ``payload``."""
        timestamp = self._timestamp()
        signature = generate_signature(self.app_id or "", timestamp, payload, self.secret or "")
        return {
            "Authorization": authorization_header(self.app_id or "", timestamp, signature),
            "Content-Type": "application/json",
        }

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Sign and POST a GraphQL query.

        Args:
            query: GraphQL document.
            variables: Optional variables object.

        Returns:
            The decoded JSON response body.

        Raises:
            UpstreamError: If credentials are missing, the transport fails, the
                response is not 2xx, the body is not JSON, or it carries
                GraphQL ``errors``.
        """
        if not self.enabled:
            raise UpstreamError("Affiliate API credentials are not configured")

        payload = canonical_payload(query, variables)
        client = await self._ensure_client()
        try:
            response = await client.post(
                self.api_url,
                content=payload.encode("utf-8"),
                headers=self.signed_headers(payload),
            )
        except httpx.HTTPError as exc:
            logger.error("Affiliate API request failed: %s", exc)
            raise UpstreamError(f"Affiliate API request failed: {exc}") from exc

        if not response.is_success:
            logger.error("Affiliate API responded with %s", response.status_code)
            raise UpstreamError(
                f"Affiliate API responded with {response.status_code}",
                status=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(
                "Affiliate API returned a malformed body",
                status=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(body, dict):
            raise UpstreamError("Affiliate API returned a malformed body", status=response.status_code)
        if body.get("errors"):
            logger.error("Affiliate API returned GraphQL errors: %s", body["errors"])
            raise UpstreamError(
                "Affiliate API returned errors",
                status=response.status_code,
                body=response.text,
            )
        return body

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
