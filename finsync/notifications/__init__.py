"""User-facing notice package."""

from finsync.notifications.notifier import (
    Notifier,
    NoticeSink,
    SessionState,
    configure_logging,
)

__all__ = ["Notifier", "NoticeSink", "SessionState", "configure_logging"]
