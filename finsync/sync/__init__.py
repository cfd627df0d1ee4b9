"""Mutation queue and sync engine package."""

from finsync.sync.engine import SyncEngine
from finsync.sync.merge import merge_collection
from finsync.sync.queue import MutationQueue

__all__ = ["MutationQueue", "SyncEngine", "merge_collection"]
