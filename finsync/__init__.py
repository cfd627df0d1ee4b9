"""
Finance Sync - Source Package

Offline-first data layer for a personal finance tracker: a versioned
local store, schema migrations, a validation gate, entity repositories,
a durable mutation queue and a sync engine that reconciles the local
store with a remote backend.

DESIGN PRINCIPLES:
1. Local writes are instant; the network is never on the UI path
2. Every local write is queued for the remote backend
3. Migrations never corrupt data; a failed step leaves the old schema
4. Bad records are dropped and reported, never half-repaired
5. Storage and remote backend are swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Sync Team"
