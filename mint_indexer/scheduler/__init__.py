"""
Mint Indexer Scheduler Module

Periodic trigger for the ingest and aggregate sweeps.
"""

from .service import PeriodicJob, SchedulerService

__all__ = ["PeriodicJob", "SchedulerService"]
