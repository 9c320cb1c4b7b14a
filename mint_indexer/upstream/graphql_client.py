"""
Upstream GraphQL Client

Thin async GraphQL-over-HTTP client on httpx. Every transport, HTTP or
GraphQL-level failure surfaces as UpstreamTransientError; nothing is retried
here.

Usage:
    client = GraphQLClient("https://indexer.example/graphql")
    data = await client.request(QUERY_MINT_BY_ADDRESS, {"mint": address})
    await client.close()
"""

import json
import logging
from typing import Any, Optional

import httpx

from ..core.errors import UpstreamTransientError

logger = logging.getLogger(__name__)


class GraphQLClient:
    """Async GraphQL client with a lazily created httpx.AsyncClient."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        headers: Optional[dict[str, str]] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def request(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Execute a GraphQL query.

        Args:
            query: GraphQL document
            variables: Query variables

        Returns:
            The response's `data` object

        Raises:
            UpstreamTransientError: on transport errors, non-2xx status,
                invalid JSON, GraphQL errors, or a missing `data` object
        """
        client = await self._get_client()

        try:
            response = await client.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
            )
            response.raise_for_status()
            payload = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"[graphql] HTTP error {e.response.status_code}: "
                f"{e.response.text[:200] if e.response.text else 'no body'}"
            )
            raise UpstreamTransientError(f"HTTP error! status: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"[graphql] Transport error: {type(e).__name__}: {e}")
            raise UpstreamTransientError(f"Upstream transport error: {type(e).__name__}: {e}") from e
        except ValueError as e:
            logger.error(f"[graphql] Invalid JSON response: {e}")
            raise UpstreamTransientError("Invalid JSON returned from GraphQL endpoint") from e

        if not isinstance(payload, dict):
            raise UpstreamTransientError("Unexpected GraphQL response shape")

        errors = payload.get("errors")
        if errors:
            logger.error(f"[graphql] Query errors: {errors}")
            raise UpstreamTransientError(f"GraphQL error: {json.dumps(errors)}")

        data = payload.get("data")
        if not data:
            raise UpstreamTransientError("No data returned from GraphQL query")

        return data
