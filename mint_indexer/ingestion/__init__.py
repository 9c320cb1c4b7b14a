"""
Mint Indexer Ingestion Module

Incremental pull of raw mint events from the upstream source.
"""

from .service import IngestionService, IngestResult

__all__ = ["IngestionService", "IngestResult"]
