"""GraphQL documents for the mint indexer upstream."""

# Mint events for one mint, newest first, offset-paginated
QUERY_MINT_EVENTS = """
  query QueryAllTokenMintForChart($mint: String!, $offset: Int!, $first: Int!) {
    allMintTokenEntities(
      condition: { mint: $mint }
      offset: $offset
      first: $first
      orderBy: TIMESTAMP_DESC
    ) {
      nodes {
        timestamp
        mintSizeEpoch
        mintFee
        currentEra
        currentEpoch
      }
    }
  }
"""

# Single registered mint by address
QUERY_MINT_BY_ADDRESS = """
  query GetMintByAddress($mint: String!) {
    allInitializeTokenEventEntities(
      condition: { mint: $mint }
      first: 1
    ) {
      nodes {
        mint
        tokenName
        tokenSymbol
        tokenId
        feeRate
      }
    }
  }
"""

# All registered mints
QUERY_ALL_MINTS = """
  query GetAllMints {
    allInitializeTokenEventEntities {
      nodes {
        mint
        tokenName
        tokenSymbol
        tokenId
        feeRate
      }
      totalCount
    }
  }
"""
