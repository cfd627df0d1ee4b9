"""
Pull merge rules.

Merging is additive by record presence, not a conflict-free replicated
type. There are no tombstones, so a record deleted on another device
but still present here survives the merge.

For one collection:
- remote-only ids are added, unless a local delete for that id is pending
- local-only ids are kept
- ids on both sides take the remote copy, unless the id has a pending
  local mutation (the unpushed local edit wins)
"""

from typing import Sequence, TypeVar

from finsync.models.entities import EntityKind, StoredModel
from finsync.models.sync import MergeResult


T = TypeVar("T", bound=StoredModel)


def merge_collection(
    entity_kind: EntityKind,
    local: Sequence[T],
    remote: Sequence[T],
    pending_ids: set[str],
    pending_deletes: set[str],
) -> tuple[list[T], MergeResult]:
    """
    Union local and remote records by id.

    Local order is preserved; new remote records are appended in remote order.
    """
    result = MergeResult(entity_kind=entity_kind)
    remote_by_id = {}
    for record in remote:
        remote_by_id.setdefault(record.id, record)

    merged: list[T] = []
    seen = set()
    for record in local:
        seen.add(record.id)
        incoming = remote_by_id.get(record.id)
        if incoming is None or record.id in pending_ids:
            merged.append(record)
            result.kept_local += 1
        elif incoming != record:
            merged.append(incoming)
            result.replaced += 1
        else:
            merged.append(record)

    for record_id, record in remote_by_id.items():
        if record_id in seen or record_id in pending_deletes:
            continue
        merged.append(record)
        result.added += 1

    return merged, result
