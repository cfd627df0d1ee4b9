"""
Main Orchestrator for Finance Sync

Ties the components together and defines the application lifecycle:
1. Load (migrate the local store, exactly once, before any read)
2. Start (best-effort sync on load, then the periodic cadence)
3. Use (repositories for reads and writes, intents from the chat-bot,
   backup export/import, recurring generation)

DESIGN DECISION: The orchestrator enforces the ordering boundaries:
- No repository read before migrations ran
- No remote call outside the sync engine
- A failing remote never stops the app from showing local data
"""

from datetime import date
from pathlib import Path
from typing import Mapping, Optional

import structlog

from finsync.config import Settings, get_settings
from finsync.migrations import MigrationEngine
from finsync.models.intents import AssistantIntent, IntentOutcome
from finsync.models.sync import MigrationReport, SyncReport
from finsync.notifications import Notifier, NoticeSink, configure_logging
from finsync.queries import IntentExecutor
from finsync.repositories import Repositories
from finsync.services.backup import (
    BackupData,
    ImportMode,
    ImportResult,
    create_backup,
    import_backup,
)
from finsync.services.investments import MarketQuote, PortfolioReport, build_portfolio_report
from finsync.services.recurring import GenerationReport, generate_due_transactions
from finsync.services.remote import (
    InMemoryRemoteBackend,
    RemoteBackend,
    RestRemoteBackend,
)
from finsync.store import JsonFileStore, KeyValueStore
from finsync.sync import MutationQueue, SyncEngine


logger = structlog.get_logger(__name__)


class FinanceApp:
    """
    One user's running application.

    Lifecycle:
        app = create_app_components()
        await app.start()     # load + sync_on_load + periodic sync
        app.repositories.transactions.add(...)
        app.stop()
    """

    def __init__(
        self,
        store: KeyValueStore,
        notifier: Notifier,
        queue: MutationQueue,
        repositories: Repositories,
        migrations: MigrationEngine,
        remote: RemoteBackend,
        sync: SyncEngine,
    ):
        self.store = store
        self.notifier = notifier
        self.queue = queue
        self.repositories = repositories
        self.migrations = migrations
        self.remote = remote
        self.sync = sync
        self.intents = IntentExecutor(repositories)
        self._migration_report: Optional[MigrationReport] = None

    @property
    def is_loaded(self) -> bool:
        return self._migration_report is not None

    def load(self) -> MigrationReport:
        """Run migrations. Later calls return the first report."""
        if self._migration_report is None:
            self._migration_report = self.migrations.run()
            logger.info(
                "app_loaded",
                schema_version=self._migration_report.to_version,
                migration_success=self._migration_report.success,
            )
        return self._migration_report

    async def start(self) -> SyncReport:
        """Load, reconcile with the remote backend once, then sync periodically."""
        self.load()
        report = await self.sync.sync_on_load()
        self.sync.start_sync()
        return report

    def stop(self) -> None:
        self.sync.stop_sync()

    # Features ----------------------------------------------------------------

    def handle_intent(self, intent: AssistantIntent, today: Optional[date] = None) -> IntentOutcome:
        self.load()
        return self.intents.execute(intent, today)

    def portfolio(self, quotes: Optional[Mapping[str, MarketQuote]] = None) -> PortfolioReport:
        self.load()
        return build_portfolio_report(self.repositories.assets.get_all(), quotes)

    def generate_recurring(self, today: Optional[date] = None) -> GenerationReport:
        self.load()
        return generate_due_transactions(self.repositories, today)

    def export_backup(self) -> BackupData:
        self.load()
        return create_backup(self.repositories, self.migrations.current_version)

    def restore_backup(self, backup: BackupData, mode: ImportMode = ImportMode.REPLACE) -> ImportResult:
        self.load()
        return import_backup(backup, self.repositories, self.migrations, mode)


def create_store(settings: Settings, user_id: Optional[str]) -> KeyValueStore:
    """Open the JSON file store for this user (or the shared file without one)."""
    store_settings = settings.store
    if user_id:
        return JsonFileStore.for_user(store_settings.data_path, user_id)
    return JsonFileStore(Path(store_settings.data_path) / store_settings.file_name)


def create_remote(settings: Settings, user_id: Optional[str]) -> RemoteBackend:
    """REST backend when a base URL is configured, in-memory otherwise."""
    remote_settings = settings.remote
    if remote_settings.base_url:
        return RestRemoteBackend(
            base_url=remote_settings.base_url,
            api_key=remote_settings.api_key,
            user_id=user_id,
            timeout_seconds=remote_settings.timeout_seconds,
            max_attempts=remote_settings.max_attempts,
        )
    logger.info("remote_not_configured", backend="in_memory")
    return InMemoryRemoteBackend(user_id or "local-user")


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    remote: Optional[RemoteBackend] = None,
    sink: Optional[NoticeSink] = None,
) -> FinanceApp:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use; the cached environment settings if omitted
        store: Local store override (tests pass an InMemoryStore)
        remote: Remote backend override
        sink: Receives user-facing notices; they are only logged if omitted

    Returns:
        A FinanceApp that has not been loaded yet
    """
    settings = settings or get_settings()
    app_settings = settings.app
    sync_settings = settings.sync
    configure_logging(app_settings.log_level)

    user_id = app_settings.user_id
    store = store if store is not None else create_store(settings, user_id)
    remote = remote if remote is not None else create_remote(settings, user_id)

    notifier = Notifier(sink=sink)
    queue = MutationQueue(store)
    repositories = Repositories(store, queue, notifier)
    migrations = MigrationEngine(store, notifier=notifier)
    sync = SyncEngine(
        store,
        repositories,
        queue,
        remote,
        notifier=notifier,
        timeout_seconds=settings.remote.timeout_seconds,
        interval_seconds=sync_settings.interval_seconds,
        flush_on_write=sync_settings.flush_on_write,
        failure_notice_threshold=sync_settings.failure_notice_threshold,
    )

    return FinanceApp(
        store=store,
        notifier=notifier,
        queue=queue,
        repositories=repositories,
        migrations=migrations,
        remote=remote,
        sync=sync,
    )
