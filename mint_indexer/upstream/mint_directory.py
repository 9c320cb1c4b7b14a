"""
Mint Directory

Resolves mint addresses to registered mints (with their reference fee rate)
using the upstream registrar. Read-only; no caching and no retries.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..core.errors import UpstreamTransientError
from ..core.types import Mint
from .graphql_client import GraphQLClient
from .queries import QUERY_ALL_MINTS, QUERY_MINT_BY_ADDRESS

logger = logging.getLogger(__name__)


def _node_to_mint(node: dict[str, Any]) -> Mint:
    """Convert a registrar node to a Mint."""
    try:
        fee_rate = Decimal(str(node.get("feeRate") or 0))
    except InvalidOperation as e:
        raise UpstreamTransientError(f"Invalid feeRate for mint {node.get('mint')}") from e

    return Mint(
        address=node["mint"],
        name=node.get("tokenName") or None,
        symbol=node.get("tokenSymbol") or None,
        fee_rate=fee_rate,
    )


class MintDirectory:
    """
    Registered mint lookups.

    Usage:
        directory = MintDirectory(client)
        mint = await directory.resolve(address)  # None if not registered
        mints = await directory.list_all()
    """

    def __init__(self, client: GraphQLClient):
        self.client = client

    async def resolve(self, address: str) -> Optional[Mint]:
        """
        Look up a mint by address (whitespace-trimmed).

        Returns:
            Mint, or None if the address is not registered

        Raises:
            UpstreamTransientError: on registrar failures
        """
        address = address.strip()
        if not address:
            return None

        data = await self.client.request(QUERY_MINT_BY_ADDRESS, {"mint": address})
        nodes = (data.get("allInitializeTokenEventEntities") or {}).get("nodes") or []
        if not nodes:
            logger.debug(f"[directory] Mint not registered: {address}")
            return None

        return _node_to_mint(nodes[0])

    async def list_all(self) -> list[Mint]:
        """
        Return every registered mint. Order is not significant.

        Raises:
            UpstreamTransientError: on registrar failures
        """
        data = await self.client.request(QUERY_ALL_MINTS)
        nodes = (data.get("allInitializeTokenEventEntities") or {}).get("nodes") or []
        mints = [_node_to_mint(node) for node in nodes if node.get("mint")]
        logger.debug(f"[directory] {len(mints)} registered mints")
        return mints
