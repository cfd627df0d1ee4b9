"""
Notifier

DESIGN DECISION: The storage layer reports, the presentation layer decides.
Repositories and the sync engine hand structured Notices to this adapter
instead of raising toasts themselves. This keeps the data layer UI-agnostic
and lets tests assert on exactly what the user would have been told.

The notifier:
- Always logs the notice locally
- Forwards each kind of notice to the UI sink at most once per session
- Never crashes the caller if the sink fails
"""

import logging
from typing import Callable, Optional

import structlog

from finsync.models.entities import EntityKind
from finsync.models.notices import Notice, NoticeBuilder, NoticeSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))


NoticeSink = Callable[[Notice], None]


class SessionState:
    """
    Per-session memory of which notices the user has already seen.

    One instance lives as long as the app session; a fresh instance
    means the user may be told again.
    """

    def __init__(self) -> None:
        self._shown: set[str] = set()

    def mark_shown(self, key: str) -> bool:
        """Record the key. Returns True only the first time it is seen."""
        if key in self._shown:
            return False
        self._shown.add(key)
        return True

    def was_shown(self, key: str) -> bool:
        return key in self._shown

    def reset(self) -> None:
        self._shown.clear()


class Notifier:
    """
    Central notice service.

    Sends notices to:
    1. Structured local log (always)
    2. The UI sink (once per session per notice key)
    """

    def __init__(
        self,
        sink: Optional[NoticeSink] = None,
        session: Optional[SessionState] = None,
    ):
        """
        Initialize notifier.

        Args:
            sink: Callable receiving notices for display.
                  If None, notices are only logged.
            session: Session dedupe state. A new one is created if omitted.
        """
        self._sink = sink
        self._session = session or SessionState()
        self._logger = structlog.get_logger(__name__)

    @property
    def session(self) -> SessionState:
        return self._session

    def notify(self, notice: Notice) -> bool:
        """
        Log a notice and forward it to the sink if not yet shown this session.

        Returns True if the sink received the notice.
        """
        log_dict = notice.to_log_dict()

        if notice.severity is NoticeSeverity.ERROR:
            self._logger.error("notice", **log_dict)
        elif notice.severity is NoticeSeverity.WARNING:
            self._logger.warning("notice", **log_dict)
        else:
            self._logger.info("notice", **log_dict)

        if not self._session.mark_shown(notice.dedupe_key):
            return False

        if self._sink is None:
            return False

        try:
            self._sink(notice)
        except Exception as e:
            # Log failure but don't raise
            self._logger.error(
                "notice_sink_failed",
                error=str(e),
                notice_id=str(notice.notice_id),
            )
            return False
        return True

    def records_dropped(self, entity_kind: EntityKind, count: int) -> bool:
        """Report corrupt records removed from a collection."""
        return self.notify(NoticeBuilder.records_dropped(entity_kind, count))

    def profile_reset(self) -> bool:
        """Report a corrupt profile replaced by defaults."""
        return self.notify(NoticeBuilder.profile_reset())

    def migration_failed(self, version: int, error_message: str) -> bool:
        """Report a migration step that will be retried next start."""
        return self.notify(NoticeBuilder.migration_failed(version, error_message))

    def sync_failures(self, entity_kind: EntityKind, attempts: int) -> bool:
        """Report repeated remote failures for one entity kind."""
        return self.notify(NoticeBuilder.sync_failures(entity_kind, attempts))
