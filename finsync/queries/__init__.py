"""Chat-bot intent execution package."""

from finsync.queries.executor import IntentExecutor, QueryExecutor

__all__ = ["IntentExecutor", "QueryExecutor"]
