"""
Mint Event Source

Paginated access to raw mint events for one mint. Pages are ordered newest
first by event time; a short or empty page means the end of data.
"""

import logging

from pydantic import ValidationError

from ..core.errors import UpstreamTransientError
from ..core.types import UpstreamMintEvent
from .graphql_client import GraphQLClient
from .queries import QUERY_MINT_EVENTS

logger = logging.getLogger(__name__)


class MintEventSource:
    """Fetches pages of mint events from the upstream GraphQL source."""

    def __init__(self, client: GraphQLClient):
        self.client = client

    async def fetch_page(self, mint_address: str, offset: int, first: int) -> list[UpstreamMintEvent]:
        """
        Fetch one page of events.

        Args:
            mint_address: Mint address
            offset: Number of events to skip (newest first)
            first: Page size

        Returns:
            Events in upstream order (descending by time)

        Raises:
            UpstreamTransientError: on transport failure or malformed events
        """
        data = await self.client.request(
            QUERY_MINT_EVENTS,
            {"mint": mint_address, "offset": offset, "first": first},
        )

        connection = data.get("allMintTokenEntities") or {}
        nodes = connection.get("nodes") or []

        try:
            events = [UpstreamMintEvent.model_validate(node) for node in nodes]
        except ValidationError as e:
            logger.error(f"[mint_events] Malformed event for {mint_address}: {e}")
            raise UpstreamTransientError(f"Malformed mint event for {mint_address}") from e

        logger.debug(f"[mint_events] {mint_address}: offset={offset} first={first} -> {len(events)} events")
        return events
