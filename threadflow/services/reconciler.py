"""Merge authoritative poll results with not-yet-confirmed optimistic records.

Every function here is pure: given the same authoritative and pending inputs it
returns the same output, so re-running a merge on an unchanged tick never
inserts duplicates.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from threadflow.domain import Message, OptimisticRecord, RecordId, SubDiscussion, Task


R = TypeVar("R", bound=OptimisticRecord)

# Pending messages are keyed by the sub-discussion they were posted to; None is the main thread.
Scope = RecordId | None


@dataclass(frozen=True)
class Reconciliation(Generic[R]):
    """Result of merging one authoritative collection with its pending set."""

    merged: list[R]
    still_pending: list[R]


@dataclass(frozen=True)
class MessageGroups:
    """One tick's messages split into the main thread and per-sub-discussion sequences."""

    main: list[Message] = field(default_factory=list)
    by_subdiscussion: dict[RecordId, list[Message]] = field(default_factory=dict)


def reconcile(authoritative: Sequence[R], pending: Sequence[R]) -> Reconciliation[R]:
    """Merge an authoritative collection with the optimistic records not yet seen in it.

    A pending record is dropped once its correlation key (``server_id``) shows up
    among the authoritative ids. Records still in flight, confirmed but not yet
    polled, or failed are appended after the authoritative ones so unconfirmed
    content renders as the most recent.

    Args:
        authoritative: Records just fetched from the Remote Store, in server order
        pending: Optimistic records from earlier local writes

    Returns:
        Reconciliation with the merged collection and the remaining pending set
    """
    seen: set[RecordId] = set()
    confirmed: list[R] = []
    for record in authoritative:
        if record.id in seen:
            continue
        seen.add(record.id)
        confirmed.append(record)

    still_pending = [record for record in pending if record.server_id is None or record.server_id not in seen]
    return Reconciliation(merged=[*confirmed, *still_pending], still_pending=still_pending)


def group_messages(messages: Sequence[Message]) -> MessageGroups:
    """Build the sub-discussion id -> ordered messages mapping once per tick."""
    groups = MessageGroups()
    for message in messages:
        if message.subdiscussion_id is None:
            groups.main.append(message)
        else:
            groups.by_subdiscussion.setdefault(message.subdiscussion_id, []).append(message)
    return groups


def build_subdiscussions(
    subdiscussions: Sequence[SubDiscussion],
    groups: MessageGroups,
    pending_messages: Mapping[Scope, Sequence[Message]],
) -> tuple[list[SubDiscussion], dict[Scope, list[Message]]]:
    """Give each sub-discussion its reconciled message sequence.

    Returns the sub-discussions with messages attached, and the pending messages
    per scope that are still unconfirmed. Pending entries for the main thread
    and for sub-discussions missing from this tick are carried over unchanged.
    """
    still_pending: dict[Scope, list[Message]] = {scope: list(records) for scope, records in pending_messages.items()}
    attached: list[SubDiscussion] = []

    for subdiscussion in subdiscussions:
        result = reconcile(
            groups.by_subdiscussion.get(subdiscussion.id, []),
            pending_messages.get(subdiscussion.id, ()),
        )
        if result.still_pending:
            still_pending[subdiscussion.id] = result.still_pending
        else:
            still_pending.pop(subdiscussion.id, None)
        attached.append(subdiscussion.model_copy(update={"messages": result.merged}))

    return attached, still_pending


def merge_tasks(previous: Sequence[Task], fetched: Sequence[Task]) -> list[Task]:
    """Merge a task poll with local task state.

    - A task with an in-flight progress change keeps its local values until the
      write resolves.
    - A failed progress change stays flagged on top of the authoritative values.
    - A locally known verification survives a poll that lacks it while the task
      is still at 100%.
    """
    local_by_id = {task.id: task for task in previous}
    merged: list[Task] = []

    for task in fetched:
        local = local_by_id.get(task.id)
        if local is None:
            merged.append(task)
            continue
        if local.pending:
            merged.append(local)
            continue

        update: dict[str, object] = {}
        if local.failed:
            update["failed"] = True
        if local.is_verified and not task.is_verified and task.progress == local.progress:
            update["verified"] = 1
        merged.append(task.model_copy(update=update) if update else task)

    return merged
