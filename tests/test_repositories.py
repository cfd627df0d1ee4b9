"""
Tests for repositories: validated reads, self-healing and write enqueueing
"""

from datetime import date

from finsync.models.entities import (
    DEFAULT_CATEGORIES,
    Category,
    CategoryType,
    EntityKind,
    Goal,
    RecurringTransaction,
    TransactionType,
    UserProfile,
    default_profile,
)
from finsync.models.notices import NoticeType
from finsync.models.sync import OperationKind
from finsync.store import StorageKeys

from tests.helpers import make_transaction, put, raw


class TestCollectionReads:
    """Tests for reads through the Validation Gate."""

    def test_missing_key_is_empty(self, repositories):
        """Test an absent collection reads as empty."""
        assert repositories.transactions.get_all() == []

    def test_corrupt_records_are_dropped_and_healed(self, store, repositories, notices):
        """Test invalid records are excluded and the store is rewritten once."""
        put(store, StorageKeys.TRANSACTIONS, [
            {"id": "a", "type": "expense", "amount": 10, "category": "c", "date": "2024-01-01"},
            {"id": "b", "type": "expense", "amount": "ten", "category": "c", "date": "2024-01-01"},
            {"id": "c", "type": "income", "amount": 5, "category": "c", "date": "2024-01-02"},
        ])

        first = repositories.transactions.get_all()
        assert [t.id for t in first] == ["a", "c"]
        assert [r["id"] for r in raw(store, StorageKeys.TRANSACTIONS)] == ["a", "c"]

        second = repositories.transactions.get_all()
        assert second == first
        assert len(notices) == 1
        assert notices[0].notice_type is NoticeType.RECORDS_DROPPED
        assert notices[0].entity_kind is EntityKind.TRANSACTIONS
        assert notices[0].count == 1

    def test_healing_is_not_enqueued(self, store, repositories, queue):
        """Test self-healing writes do not produce mutations."""
        put(store, StorageKeys.GOALS, [{"id": "g1", "title": "x"}])
        assert repositories.goals.get_all() == []
        assert queue.pending_count() == 0

    def test_malformed_json_reads_as_empty(self, store, repositories):
        """Test unparseable storage degrades to the default."""
        store.set(StorageKeys.ASSETS, "[{")
        assert repositories.assets.get_all() == []

    def test_notice_once_per_session_per_kind(self, store, repositories, notices):
        """Test repeated corruption of the same kind is reported once."""
        put(store, StorageKeys.GOALS, [{"id": "g1"}])
        repositories.goals.get_all()
        put(store, StorageKeys.GOALS, [{"id": "g2"}])
        repositories.goals.get_all()
        put(store, StorageKeys.ASSETS, [{"id": "a1"}])
        repositories.assets.get_all()

        assert [(n.notice_type, n.entity_kind) for n in notices] == [
            (NoticeType.RECORDS_DROPPED, EntityKind.GOALS),
            (NoticeType.RECORDS_DROPPED, EntityKind.ASSETS),
        ]


class TestCollectionWrites:
    """Tests for user writes and their queue entries."""

    def test_add_enqueues_create(self, repositories, queue):
        """Test add persists the record and enqueues one create."""
        transaction = make_transaction(id="t1")
        repositories.transactions.add(transaction)

        assert repositories.transactions.get("t1") == transaction
        pending = queue.pending()
        assert len(pending) == 1
        assert pending[0].entity_kind is EntityKind.TRANSACTIONS
        assert pending[0].operation_kind is OperationKind.CREATE
        assert pending[0].entity_id == "t1"
        assert pending[0].payload == transaction.to_record()

    def test_add_existing_id_replaces(self, repositories):
        """Test ids stay unique when a record is added twice."""
        repositories.transactions.add(make_transaction(id="t1", amount=10))
        repositories.transactions.add(make_transaction(id="t1", amount=20))

        transactions = repositories.transactions.get_all()
        assert len(transactions) == 1
        assert transactions[0].amount == 20

    def test_update_enqueues_update(self, repositories, queue):
        """Test update replaces the record and enqueues an update."""
        repositories.transactions.add(make_transaction(id="t1", amount=10))
        repositories.transactions.update("t1", make_transaction(id="other", amount=99))

        updated = repositories.transactions.get("t1")
        assert updated.amount == 99
        assert repositories.transactions.get("other") is None
        ops = [(m.operation_kind, m.entity_id) for m in queue.pending()]
        assert ops == [(OperationKind.CREATE, "t1"), (OperationKind.UPDATE, "t1")]

    def test_update_unknown_id_is_noop(self, repositories, queue, store):
        """Test updating a missing record writes and enqueues nothing."""
        repositories.transactions.update("ghost", make_transaction(id="ghost"))
        assert queue.pending_count() == 0
        assert store.get(StorageKeys.TRANSACTIONS) is None

    def test_delete_enqueues_delete(self, repositories, queue):
        """Test delete removes the record and enqueues an id-only delete."""
        repositories.transactions.add(make_transaction(id="t1"))
        repositories.transactions.delete("t1")

        assert repositories.transactions.get_all() == []
        last = queue.pending()[-1]
        assert last.operation_kind is OperationKind.DELETE
        assert last.payload == {"id": "t1"}

    def test_delete_unknown_id_is_noop(self, repositories, queue):
        """Test deleting a missing record enqueues nothing."""
        repositories.transactions.delete("ghost")
        assert queue.pending_count() == 0

    def test_patch(self, repositories, queue):
        """Test partial updates by field name."""
        repositories.transactions.add(make_transaction(id="t1", description="old"))
        patched = repositories.transactions.patch("t1", {"description": "new", "is_unexpected": True})

        assert patched.description == "new"
        assert repositories.transactions.get("t1").is_unexpected is True
        assert queue.pending()[-1].payload["isUnexpected"] is True

    def test_patch_rejects_invalid_result(self, repositories, queue):
        """Test a patch that would corrupt the record is refused."""
        repositories.transactions.add(make_transaction(id="t1"))
        assert repositories.transactions.patch("t1", {"amount": -5}) is None
        assert repositories.transactions.get("t1").amount == 100
        assert queue.pending_count() == 1

    def test_by_type(self, repositories):
        """Test filtering transactions by type."""
        repositories.transactions.add(make_transaction(type=TransactionType.INCOME))
        repositories.transactions.add(make_transaction(type=TransactionType.EXPENSE))
        assert len(repositories.transactions.by_type(TransactionType.INCOME)) == 1

    def test_import_merge_adds_only_new_ids(self, repositories, queue):
        """Test merge-mode import skips ids already present."""
        repositories.transactions.add(make_transaction(id="t1", amount=1))
        imported = repositories.transactions.import_items([
            make_transaction(id="t1", amount=2),
            make_transaction(id="t2", amount=3),
        ])

        assert imported == 1
        assert {t.id: t.amount for t in repositories.transactions.get_all()} == {"t1": 1, "t2": 3}
        assert queue.pending_count() == 2

    def test_import_replace(self, repositories):
        """Test replace-mode import makes the collection exactly the input."""
        repositories.transactions.add(make_transaction(id="t1"))
        imported = repositories.transactions.import_items([make_transaction(id="t9")], replace=True)

        assert imported == 1
        assert [t.id for t in repositories.transactions.get_all()] == ["t9"]

    def test_import_replace_enqueues_deletes_for_dropped_ids(self, repositories, queue):
        """Test replace-mode import deletes the records it drops, remotely too."""
        repositories.transactions.add(make_transaction(id="t1"))
        repositories.transactions.add(make_transaction(id="t2"))
        queue.clear()

        repositories.transactions.import_items([make_transaction(id="t1")], replace=True)

        pending = [(m.operation_kind, m.entity_id) for m in queue.pending()]
        assert pending == [(OperationKind.CREATE, "t1"), (OperationKind.DELETE, "t2")]
        assert queue.pending_deletes(EntityKind.TRANSACTIONS) == {"t2"}

    def test_import_replace_leaves_unstored_defaults_alone(self, repositories, queue):
        """Test built-in categories that were never stored get no delete."""
        imported = repositories.categories.import_items([], replace=True)

        assert imported == 0
        assert queue.pending_count() == 0

    def test_overwrite_from_remote_is_not_enqueued(self, repositories, queue):
        """Test sync writes bypass the queue."""
        repositories.transactions.overwrite_from_remote([make_transaction(id="r1")])
        assert repositories.transactions.get("r1") is not None
        assert queue.pending_count() == 0


class TestEntityRepositories:
    """Tests for per-entity behavior."""

    def test_categories_default_when_empty(self, repositories, store):
        """Test the built-in categories are served but not persisted."""
        categories = repositories.categories.get_all()
        assert [c.id for c in categories] == [c.id for c in DEFAULT_CATEGORIES]
        assert store.get(StorageKeys.CATEGORIES) is None
        assert repositories.categories.stored_items() == []

    def test_adding_category_keeps_defaults(self, repositories):
        """Test the first added category joins the defaults."""
        repositories.categories.add(Category(id="pets", name="Pets", type=CategoryType.EXPENSE))
        ids = [c.id for c in repositories.categories.get_all()]
        assert ids[-1] == "pets"
        assert len(ids) == len(DEFAULT_CATEGORIES) + 1

    def test_goal_toggle(self, repositories):
        """Test flipping a goal's completed flag."""
        repositories.goals.add(Goal(id="g1", title="Trip", completed=False, created_at="2024-01-01"))
        assert repositories.goals.toggle("g1").completed is True
        assert repositories.goals.toggle("missing") is None

    def test_recurring_mark_generated(self, repositories):
        """Test stamping a rule's last generated date."""
        repositories.recurring_transactions.add(RecurringTransaction(
            id="r1", type=TransactionType.EXPENSE, amount=1200, category="moradia",
            frequency="monthly", day_of_month=5, start_date="2024-01-01",
            is_active=True, created_at="2024-01-01",
        ))
        rule = repositories.recurring_transactions.mark_generated("r1", date(2024, 3, 5))
        assert rule.last_generated_date == "2024-03-05"
        assert len(repositories.recurring_transactions.active()) == 1

    def test_repositories_registry(self, repositories):
        """Test collection lookup by entity kind."""
        assert repositories.collection(EntityKind.GOALS) is repositories.goals
        assert repositories.collection("recurringTransactions") is repositories.recurring_transactions
        assert EntityKind.PROFILE not in repositories.collections()


class TestProfileRepository:
    """Tests for the profile singleton."""

    def test_missing_profile_is_default(self, repositories):
        """Test an absent profile reads as the default."""
        profile = repositories.profile.get()
        assert profile.currency == "BRL"
        assert profile.name == ""

    def test_save_enqueues_profile_update(self, repositories, queue):
        """Test saving the profile enqueues an update keyed 'profile'."""
        profile = default_profile(date(2024, 1, 1)).model_copy(update={"name": "Ana"})
        repositories.profile.save(profile)

        assert repositories.profile.get().name == "Ana"
        mutation = queue.pending()[0]
        assert mutation.entity_kind is EntityKind.PROFILE
        assert mutation.operation_kind is OperationKind.UPDATE
        assert mutation.entity_id == "profile"

    def test_corrupt_profile_reset(self, store, repositories, queue, notices):
        """Test a corrupt profile is replaced, persisted and reported once."""
        put(store, StorageKeys.PROFILE, {"name": 5})

        profile = repositories.profile.get()
        assert profile.currency == "BRL"
        assert UserProfile.model_validate(raw(store, StorageKeys.PROFILE)) == profile
        assert queue.pending_count() == 0
        assert [n.notice_type for n in notices] == [NoticeType.PROFILE_RESET]

        repositories.profile.get()
        assert len(notices) == 1
