# Mint Indexer Upstream
# GraphQL source for mint events and the mint registrar

"""
Upstream module for the paginated mint-event source.

Components:
- GraphQLClient: httpx-based GraphQL transport
- MintEventSource: Newest-first pages of raw mint events
- MintDirectory: Registered mint lookups (address -> Mint)
"""

from .graphql_client import GraphQLClient
from .mint_directory import MintDirectory
from .mint_events import MintEventSource

__all__ = [
    "GraphQLClient",
    "MintDirectory",
    "MintEventSource",
]
