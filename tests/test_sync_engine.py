"""
Tests for the sync engine: pull, merge, drain and cadence

All remote traffic goes to InMemoryRemoteBackend; tests drive the event
loop with asyncio.run.
"""

import asyncio
from datetime import datetime

from finsync.models.entities import EntityKind, Goal, UserProfile
from finsync.models.notices import NoticeType
from finsync.models.sync import OperationKind, SyncPhase
from finsync.services.remote import InMemoryRemoteBackend, RemoteConnectionError
from finsync.store import StorageKeys
from finsync.sync import SyncEngine, merge_collection

from tests.helpers import make_transaction, raw


def remote_transaction(entity_id, amount=100):
    return make_transaction(id=entity_id, amount=amount).to_record()


class SlowRemote(InMemoryRemoteBackend):
    """Remote whose reads never answer in time."""

    async def fetch_collection(self, entity_kind):
        await asyncio.sleep(5)
        return []


class LaggingRemote(InMemoryRemoteBackend):
    """Remote whose reads answer late with what it held when they started."""

    async def fetch_collection(self, entity_kind):
        records = await super().fetch_collection(entity_kind)
        await asyncio.sleep(0.05)
        return records


class FlakyWriteRemote(InMemoryRemoteBackend):
    """Remote that reads fine but rejects every write."""

    async def upsert(self, entity_kind, record):
        return False


class TestMergeCollection:
    """Tests for the pure merge rules."""

    def test_union_by_id(self):
        """Test remote-only records are added and local-only ones kept."""
        local = [make_transaction(id="l1")]
        remote = [make_transaction(id="r1")]
        merged, result = merge_collection(EntityKind.TRANSACTIONS, local, remote, set(), set())

        assert [t.id for t in merged] == ["l1", "r1"]
        assert result.added == 1
        assert result.kept_local == 1

    def test_remote_wins_without_pending_edit(self):
        """Test a record on both sides takes the remote copy."""
        local = [make_transaction(id="x", amount=1)]
        remote = [make_transaction(id="x", amount=2)]
        merged, result = merge_collection(EntityKind.TRANSACTIONS, local, remote, set(), set())

        assert merged[0].amount == 2
        assert result.replaced == 1

    def test_pending_local_edit_wins(self):
        """Test an unpushed local edit is not overwritten."""
        local = [make_transaction(id="x", amount=1)]
        remote = [make_transaction(id="x", amount=2)]
        merged, result = merge_collection(EntityKind.TRANSACTIONS, local, remote, {"x"}, set())

        assert merged[0].amount == 1
        assert result.replaced == 0

    def test_pending_delete_not_resurrected(self):
        """Test a remote record the user deleted locally stays deleted."""
        remote = [make_transaction(id="gone")]
        merged, result = merge_collection(EntityKind.TRANSACTIONS, [], remote, {"gone"}, {"gone"})

        assert merged == []
        assert result.added == 0

    def test_identical_records_count_as_unchanged(self):
        """Test equal copies neither replace nor add."""
        transaction = make_transaction(id="same")
        merged, result = merge_collection(
            EntityKind.TRANSACTIONS, [transaction], [transaction.model_copy()], set(), set()
        )
        assert merged == [transaction]
        assert result.added == result.replaced == 0


class TestSyncOnLoad:
    """Tests for the full cycle."""

    def test_first_load_pulls_and_pushes(self, engine, repositories, remote, queue, store):
        """Test pull merges remote data and drain pushes local writes."""
        remote.seed(EntityKind.TRANSACTIONS, [remote_transaction("r1")])
        repositories.transactions.add(make_transaction(id="l1"))

        report = asyncio.run(engine.sync_on_load())

        assert report.pulled is True
        assert report.drain.succeeded == 1
        assert {t.id for t in repositories.transactions.get_all()} == {"l1", "r1"}
        assert {r["id"] for r in remote.records(EntityKind.TRANSACTIONS)} == {"l1", "r1"}
        assert queue.pending_count() == 0
        assert engine.state.phase is SyncPhase.IDLE
        assert isinstance(raw(store, StorageKeys.LAST_SYNC), str)
        assert engine.last_sync is not None

    def test_last_sync_survives_restart(self, engine, store, repositories, queue, remote):
        """Test a new engine reads the persisted last sync time."""
        asyncio.run(engine.sync_on_load())
        restarted = SyncEngine(store, repositories, queue, remote, flush_on_write=False)
        assert restarted.last_sync == engine.last_sync

    def test_pull_failure_still_drains(self, engine, repositories, remote, queue):
        """Test pull and push degrade independently."""
        repositories.goals.add(Goal(id="g1", title="Trip", completed=False, created_at="2024-01-01"))
        original_fetch = remote.fetch_profile

        async def failing_profile():
            raise RemoteConnectionError("profile table down")

        remote.fetch_profile = failing_profile
        report = asyncio.run(engine.sync_on_load())
        remote.fetch_profile = original_fetch

        assert report.pulled is False
        assert report.errors
        assert report.drain.succeeded == 1
        assert queue.pending_count() == 0
        assert engine.last_sync is None

    def test_pull_failure_leaves_local_data(self, engine, repositories, remote, store):
        """Test a failing pull changes nothing locally."""
        repositories.transactions.overwrite_from_remote([make_transaction(id="l1")])
        before = store.snapshot()
        remote.available = False

        report = asyncio.run(engine.sync_on_load())

        assert report.pulled is False
        assert report.drain.succeeded == 0
        assert store.snapshot() == before

    def test_pending_delete_not_readded(self, engine, repositories, remote, queue):
        """Test a local delete is pushed, not undone by the pull."""
        remote.seed(EntityKind.TRANSACTIONS, [remote_transaction("t1")])
        asyncio.run(engine.sync_on_load())
        repositories.transactions.delete("t1")

        asyncio.run(engine.sync_on_load())

        assert repositories.transactions.get("t1") is None
        assert remote.records(EntityKind.TRANSACTIONS) == []

    def test_pending_local_edit_survives_pull(self, remote, repositories, queue, store, notifier):
        """Test an unconfirmed local edit is kept and retried."""
        failing = FlakyWriteRemote(user_id="user-1")
        failing.seed(EntityKind.TRANSACTIONS, [remote_transaction("t1", amount=1)])
        engine = SyncEngine(store, repositories, queue, failing, notifier=notifier, flush_on_write=False)
        asyncio.run(engine.sync_on_load())

        repositories.transactions.patch("t1", {"amount": 42})
        report = asyncio.run(engine.sync_on_load())

        assert report.drain.failed == 1
        assert repositories.transactions.get("t1").amount == 42
        assert queue.pending_count() == 1

    def test_remote_profile_applied_when_nothing_pending(self, engine, repositories, remote):
        """Test a valid remote profile replaces the local one."""
        remote.seed_profile({"name": "Ana", "currency": "USD", "defaultMonth": "2024-02"})
        asyncio.run(engine.sync_on_load())
        assert repositories.profile.get().currency == "USD"

    def test_local_profile_edit_wins(self, engine, repositories, remote):
        """Test a pending profile save is pushed rather than overwritten."""
        remote.seed_profile({"name": "Old", "currency": "USD", "defaultMonth": "2024-02"})
        repositories.profile.save(UserProfile(name="New", currency="EUR", default_month="2024-03"))

        asyncio.run(engine.sync_on_load())

        assert repositories.profile.get().name == "New"
        assert remote.profile()["name"] == "New"

    def test_invalid_remote_records_skipped(self, engine, repositories, remote):
        """Test remote records go through the Validation Gate."""
        remote.seed(EntityKind.TRANSACTIONS, [
            remote_transaction("ok"),
            {"id": "bad", "type": "expense", "amount": "lots"},
        ])
        report = asyncio.run(engine.sync_on_load())

        assert [t.id for t in repositories.transactions.get_all()] == ["ok"]
        merge = next(m for m in report.merges if m.entity_kind is EntityKind.TRANSACTIONS)
        assert merge.dropped_invalid == 1

    def test_default_categories_not_persisted_by_merge(self, engine, store):
        """Test an empty pull does not write the built-in categories."""
        asyncio.run(engine.sync_on_load())
        assert store.get(StorageKeys.CATEGORIES) is None

    def test_offline_skips_cycle(self, engine, repositories, remote, queue):
        """Test nothing is attempted while offline."""
        repositories.goals.add(Goal(id="g1", title="Trip", completed=False, created_at="2024-01-01"))
        engine.set_online(False)

        report = asyncio.run(engine.sync_on_load())

        assert report.skipped is True
        assert remote.calls == []
        assert queue.pending_count() == 1

    def test_timeout_counts_as_failure(self, store, repositories, queue, notifier):
        """Test a hanging remote does not hang the cycle."""
        engine = SyncEngine(
            store, repositories, queue, SlowRemote(user_id="user-1"),
            notifier=notifier, timeout_seconds=0.05, flush_on_write=False,
        )
        report = asyncio.run(engine.sync_on_load())

        assert report.pulled is False
        assert report.finished_at is not None
        assert engine.is_syncing is False


class TestDrainFailures:
    """Tests for repeated push failures."""

    def test_notice_after_threshold(self, store, repositories, queue, notifier, notices):
        """Test the user hears about repeated failures once the threshold is hit."""
        engine = SyncEngine(
            store, repositories, queue, FlakyWriteRemote(user_id="user-1"),
            notifier=notifier, flush_on_write=False, failure_notice_threshold=2,
        )
        repositories.transactions.add(make_transaction(id="t1"))

        asyncio.run(engine.flush())
        assert notices == []
        asyncio.run(engine.flush())

        assert [n.notice_type for n in notices] == [NoticeType.SYNC_FAILURES]
        assert notices[0].entity_kind is EntityKind.TRANSACTIONS
        assert queue.pending_count() == 1

    def test_success_resets_failure_count(self, store, repositories, queue, notifier, notices, remote):
        """Test a successful drain clears the consecutive failure count."""
        engine = SyncEngine(
            store, repositories, queue, remote,
            notifier=notifier, flush_on_write=False, failure_notice_threshold=2,
        )
        repositories.transactions.add(make_transaction(id="t1"))

        remote.available = False
        asyncio.run(engine.flush())
        remote.available = True
        asyncio.run(engine.flush())
        remote.available = False
        repositories.transactions.add(make_transaction(id="t2"))
        asyncio.run(engine.flush())

        assert notices == []

    def test_flush_offline_is_skipped(self, engine, repositories, queue):
        """Test flushing while offline leaves the queue alone."""
        repositories.goals.add(Goal(id="g1", title="Trip", completed=False, created_at="2024-01-01"))
        engine.set_online(False)
        assert asyncio.run(engine.flush()).skipped is True
        assert queue.pending_count() == 1


class TestFlushOnWrite:
    """Tests for the background flush scheduled by writes."""

    def test_write_inside_event_loop_is_pushed(self, store, repositories, queue, remote):
        """Test a write made on the running loop reaches the remote without a cycle."""
        engine = SyncEngine(store, repositories, queue, remote, flush_on_write=True)

        async def scenario():
            repositories.transactions.add(make_transaction(id="t1"))
            await asyncio.sleep(0.05)
            return queue.pending_count()

        assert asyncio.run(scenario()) == 0
        assert remote.calls == [("upsert", EntityKind.TRANSACTIONS, "t1")]
        assert engine.pending_count() == 0

    def test_write_without_event_loop_waits_for_next_cycle(self, store, repositories, queue, remote):
        """Test writes outside a loop stay queued."""
        SyncEngine(store, repositories, queue, remote, flush_on_write=True)
        repositories.transactions.add(make_transaction(id="t1"))
        assert queue.pending_count() == 1

    def test_coming_back_online_flushes(self, store, repositories, queue, remote):
        """Test reconnecting schedules a flush."""
        engine = SyncEngine(store, repositories, queue, remote, flush_on_write=True)

        async def scenario():
            engine.set_online(False)
            repositories.transactions.add(make_transaction(id="t1"))
            await asyncio.sleep(0)
            assert queue.pending_count() == 1
            engine.set_online(True)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert queue.pending_count() == 0

    def test_edit_during_pull_is_not_overwritten(self, store, repositories, queue):
        """Test an edit flushed while the pull is in flight beats the stale pulled copy."""
        remote = LaggingRemote("user-1")
        remote.seed(EntityKind.TRANSACTIONS, [remote_transaction("x", amount=10)])
        repositories.transactions.overwrite_from_remote([make_transaction(id="x", amount=10)])
        engine = SyncEngine(store, repositories, queue, remote, flush_on_write=True)

        async def scenario():
            cycle = asyncio.create_task(engine.sync_on_load())
            await asyncio.sleep(0.01)
            repositories.transactions.patch("x", {"amount": 99.0})
            return await cycle

        report = asyncio.run(scenario())
        assert report.pulled is True
        assert repositories.transactions.get("x").amount == 99.0
        assert remote.records(EntityKind.TRANSACTIONS)[0]["amount"] == 99.0
        assert queue.pending_count() == 0

    def test_delete_during_pull_is_not_resurrected(self, store, repositories, queue):
        """Test a delete flushed while the pull is in flight stays deleted."""
        remote = LaggingRemote("user-1")
        remote.seed(EntityKind.TRANSACTIONS, [remote_transaction("x")])
        repositories.transactions.overwrite_from_remote([make_transaction(id="x")])
        engine = SyncEngine(store, repositories, queue, remote, flush_on_write=True)

        async def scenario():
            cycle = asyncio.create_task(engine.sync_on_load())
            await asyncio.sleep(0.01)
            repositories.transactions.delete("x")
            await cycle

        asyncio.run(scenario())
        assert repositories.transactions.get("x") is None
        assert remote.records(EntityKind.TRANSACTIONS) == []


class TestPeriodicSync:
    """Tests for the periodic cadence."""

    def test_periodic_cycles_run_until_stopped(self, store, repositories, queue, remote):
        """Test start_sync runs cycles on the interval and stop_sync cancels them."""
        engine = SyncEngine(
            store, repositories, queue, remote,
            interval_seconds=0.01, flush_on_write=False,
        )

        async def scenario():
            engine.start_sync()
            await asyncio.sleep(0.05)
            engine.stop_sync()
            synced = engine.last_sync
            await asyncio.sleep(0.03)
            return synced

        synced = asyncio.run(scenario())
        assert isinstance(synced, datetime)
        assert engine.last_sync == synced


class TestQueuePassThroughs:
    """Tests for the engine's queue helpers."""

    def test_queue_helpers(self, engine, queue):
        """Test each helper enqueues for its entity kind."""
        engine.queue_transaction(OperationKind.CREATE, make_transaction(id="t1"))
        engine.queue_goal("delete", {"id": "g1"})
        engine.queue_profile({"name": "Ana", "currency": "BRL", "defaultMonth": "2024-01"})

        assert [(m.entity_kind, m.entity_id) for m in queue.pending()] == [
            (EntityKind.TRANSACTIONS, "t1"),
            (EntityKind.GOALS, "g1"),
            (EntityKind.PROFILE, "profile"),
        ]
        assert engine.state.pending_count == 3
