"""
Mint Indexer Aggregator Module

Builds multi-resolution OHLCV candles from stored mint transactions.
"""

from .ohlc_aggregator import OHLCAggregator

__all__ = ["OHLCAggregator"]
