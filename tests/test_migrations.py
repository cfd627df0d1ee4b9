"""
Tests for the schema migration engine
"""

from finsync.migrations import CURRENT_VERSION, MIGRATIONS, MigrationEngine, run_migrations
from finsync.migrations.steps import unexpected_type_to_flag
from finsync.models.notices import NoticeType
from finsync.store import InMemoryStore, StorageKeys

from tests.helpers import put, raw


LEGACY_TRANSACTIONS = [
    {"id": "1", "type": "unexpected", "amount": 50, "category": "misc", "date": "2024-01-05"},
    {"id": "2", "type": "income", "amount": 1000, "category": "salary", "date": "2024-01-01"},
]


def legacy_store() -> InMemoryStore:
    store = InMemoryStore()
    put(store, StorageKeys.TRANSACTIONS, LEGACY_TRANSACTIONS)
    return store


class TestMigrationEngine:
    """Tests for running the registry against a store."""

    def test_legacy_transactions_upgraded(self):
        """Test version 0 data is rewritten to the current shape."""
        store = legacy_store()
        report = MigrationEngine(store).run()

        assert report.success
        assert report.from_version == 0
        assert report.to_version == CURRENT_VERSION
        assert report.applied_steps == [1, 2]
        assert store.get(StorageKeys.SCHEMA_VERSION) == str(CURRENT_VERSION)

        transactions = raw(store, StorageKeys.TRANSACTIONS)
        assert transactions[0]["type"] == "expense"
        assert transactions[0]["isUnexpected"] is True
        assert transactions[0]["amount"] == 50
        assert transactions[0]["date"] == "2024-01-05"
        assert transactions[1]["type"] == "income"
        assert transactions[1]["isUnexpected"] is False

    def test_second_run_is_a_noop(self):
        """Test a migrated store is left alone."""
        store = legacy_store()
        MigrationEngine(store).run()
        before = store.snapshot()

        report = MigrationEngine(store).run()
        assert report.applied_steps == []
        assert store.snapshot() == before

    def test_steps_are_idempotent_when_version_marker_was_lost(self):
        """Test re-running every step over migrated data changes nothing."""
        store = legacy_store()
        MigrationEngine(store).run()
        migrated = raw(store, StorageKeys.TRANSACTIONS)

        store.remove(StorageKeys.SCHEMA_VERSION)
        report = MigrationEngine(store).run()

        assert report.success
        assert report.changed_keys == []
        assert raw(store, StorageKeys.TRANSACTIONS) == migrated

    def test_current_store_returns_immediately(self):
        """Test nothing is read or written when already current."""
        store = InMemoryStore({StorageKeys.SCHEMA_VERSION: str(CURRENT_VERSION)})
        engine = MigrationEngine(store)
        assert engine.needs_migration() is False
        report = engine.run()
        assert report.from_version == report.to_version == CURRENT_VERSION
        assert store.snapshot() == {StorageKeys.SCHEMA_VERSION: str(CURRENT_VERSION)}

    def test_unreadable_version_counts_as_zero(self):
        """Test a non-integer version marker is treated as pre-versioning data."""
        store = InMemoryStore({StorageKeys.SCHEMA_VERSION: "two"})
        assert MigrationEngine(store).stored_version() == 0

    def test_version_marker_whitespace_tolerated(self):
        """Test surrounding whitespace around the version is ignored."""
        store = InMemoryStore({StorageKeys.SCHEMA_VERSION: " 1\n"})
        assert MigrationEngine(store).stored_version() == 1

    def test_failing_step_leaves_store_untouched(self, notifier, notices):
        """Test a raising step writes nothing and reports the failure."""
        def broken(snapshot):
            raise RuntimeError("boom")

        store = legacy_store()
        before = store.snapshot()
        engine = MigrationEngine(
            store,
            registry={1: MIGRATIONS[1], 2: broken},
            notifier=notifier,
        )
        report = engine.run()

        assert report.success is False
        assert report.failed_step == 2
        assert report.error_message == "boom"
        assert store.snapshot() == before
        assert store.get(StorageKeys.SCHEMA_VERSION) is None
        assert [n.notice_type for n in notices] == [NoticeType.MIGRATION_FAILED]

    def test_failed_migration_is_retried_next_start(self):
        """Test the chain runs again once the step is fixed."""
        def broken(snapshot):
            raise RuntimeError("boom")

        store = legacy_store()
        MigrationEngine(store, registry={1: MIGRATIONS[1], 2: broken}).run()
        report = MigrationEngine(store).run()

        assert report.success
        assert report.applied_steps == [1, 2]
        assert raw(store, StorageKeys.TRANSACTIONS)[0]["type"] == "expense"

    def test_registry_defines_current_version(self):
        """Test a new registered step raises the current version."""
        def add_marker(snapshot):
            result = dict(snapshot)
            result[StorageKeys.GOALS] = []
            return result

        registry = dict(MIGRATIONS)
        registry[3] = add_marker
        store = InMemoryStore({StorageKeys.SCHEMA_VERSION: "2"})
        engine = MigrationEngine(store, registry=registry)

        assert engine.current_version == 3
        report = engine.run()
        assert report.applied_steps == [3]
        assert raw(store, StorageKeys.GOALS) == []
        assert store.get(StorageKeys.SCHEMA_VERSION) == "3"

    def test_corrupt_key_is_left_for_the_gate(self):
        """Test malformed JSON under an entity key is not overwritten."""
        store = legacy_store()
        store.set(StorageKeys.GOALS, "{oops")
        report = MigrationEngine(store).run()

        assert report.success
        assert store.get(StorageKeys.GOALS) == "{oops"

    def test_upgrade_snapshot_does_not_mutate_input(self):
        """Test upgrading a detached snapshot returns a copy."""
        snapshot = {StorageKeys.TRANSACTIONS: [dict(t) for t in LEGACY_TRANSACTIONS]}
        upgraded = MigrationEngine(InMemoryStore()).upgrade_snapshot(snapshot, 0)

        assert snapshot[StorageKeys.TRANSACTIONS][0]["type"] == "unexpected"
        assert upgraded[StorageKeys.TRANSACTIONS][0]["type"] == "expense"

    def test_run_migrations_helper(self):
        """Test the module-level helper migrates with the default registry."""
        store = legacy_store()
        run_migrations(store)
        assert store.get(StorageKeys.SCHEMA_VERSION) == str(CURRENT_VERSION)


class TestUnexpectedTypeStep:
    """Tests for the version 2 step on its own."""

    def test_categories_upgraded(self):
        """Test 'unexpected' categories become expense categories."""
        snapshot = {StorageKeys.CATEGORIES: [
            {"id": "imprevistos", "name": "Imprevistos", "type": "unexpected", "icon": "!"},
            {"id": "lazer", "name": "Lazer", "type": "mixed"},
        ]}
        result = unexpected_type_to_flag(snapshot)
        assert result[StorageKeys.CATEGORIES][0]["type"] == "expense"
        assert result[StorageKeys.CATEGORIES][0]["icon"] == "!"
        assert result[StorageKeys.CATEGORIES][1]["type"] == "mixed"

    def test_existing_flag_preserved(self):
        """Test a record already carrying isUnexpected keeps it."""
        snapshot = {StorageKeys.TRANSACTIONS: [
            {"id": "1", "type": "expense", "isUnexpected": True, "amount": 10},
        ]}
        result = unexpected_type_to_flag(snapshot)
        assert result[StorageKeys.TRANSACTIONS][0]["isUnexpected"] is True

    def test_unrecognized_records_untouched(self):
        """Test records not matching the legacy shape pass through as-is."""
        garbage = [{"id": 7, "type": "expense"}, "not-a-record", {"type": "weird"}]
        result = unexpected_type_to_flag({StorageKeys.TRANSACTIONS: garbage})
        assert result[StorageKeys.TRANSACTIONS] == garbage

    def test_absent_keys_stay_absent(self):
        """Test the step does not invent keys."""
        assert unexpected_type_to_flag({}) == {}
