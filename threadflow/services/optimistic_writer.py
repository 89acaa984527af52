"""Optimistic writes: render locally first, then confirm or fail against the Remote Store."""

import itertools
import logging
import secrets
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from threadflow.core.config import constants
from threadflow.core.errors import RemoteStoreError
from threadflow.core.logging import span
from threadflow.domain import OptimisticRecord, RecordId
from threadflow.services.poller import LivenessGuard


logger = logging.getLogger(__name__)

R = TypeVar("R", bound=OptimisticRecord)
T = TypeVar("T")

_sequence = itertools.count(1)


def new_temp_id() -> str:
    """Session-unique temporary id, e.g. ``temp-12-9f1c2a0b``."""
    return f"{constants.TEMP_ID_PREFIX}{next(_sequence)}-{secrets.token_hex(4)}"


def confirm_record(records: Sequence[R], temp_id: RecordId, saved: R) -> list[R]:
    """Swap the record carrying ``temp_id`` for the server's copy.

    The server id becomes both ``id`` and the ``server_id`` correlation key.
    Fields the server left empty keep their draft values.
    """
    confirmed: list[R] = []
    for record in records:
        if record.id != temp_id:
            confirmed.append(record)
            continue
        update: dict[str, object] = {"server_id": saved.id, "pending": False, "failed": False}
        for name in type(saved).model_fields:
            if name not in update and getattr(saved, name) is None and getattr(record, name) is not None:
                update[name] = getattr(record, name)
        confirmed.append(saved.model_copy(update=update))
    return confirmed


def fail_record(records: Sequence[R], temp_id: RecordId) -> list[R]:
    """Mark the record carrying ``temp_id`` as failed; it is never removed."""
    return [
        record.model_copy(update={"pending": False, "failed": True}) if record.id == temp_id else record
        for record in records
    ]


class OptimisticWriter:
    """Apply a local change immediately and settle it when the write resolves.

    Outcomes are applied only while the view that issued the write is still
    current; otherwise they are logged and dropped.
    """

    def __init__(self, guard: LivenessGuard) -> None:
        self._guard = guard

    def temp_id(self) -> str:
        return new_temp_id()

    async def submit(
        self,
        *,
        label: str,
        insert: Callable[[], None],
        request: Callable[[], Awaitable[T]],
        confirm: Callable[[T], None],
        fail: Callable[[RemoteStoreError], None],
    ) -> T | None:
        """Run one optimistic write.

        Args:
            label: Name of the write, used for spans and logs
            insert: Applies the optimistic change synchronously, before any I/O
            request: Issues the Remote Store write
            confirm: Applies the server's result
            fail: Marks the optimistic change as failed

        Returns:
            The server's result, or None when the write failed or the view moved on
        """
        generation = self._guard.generation
        insert()

        with span(f"optimistic_writer.{label}"):
            try:
                saved = await request()
            except RemoteStoreError as e:
                if not self._guard.is_current(generation):
                    logger.info("optimistic_write_discarded", extra={"write": label, "outcome": "failed"})
                    return None
                logger.warning(
                    "optimistic_write_failed",
                    extra={"write": label, "category": e.category.value, "error": str(e)},
                )
                fail(e)
                return None
            except Exception as e:
                # The draft must still settle as failed before the error propagates.
                if self._guard.is_current(generation):
                    logger.exception("optimistic_write_crashed", extra={"write": label})
                    failure = RemoteStoreError(f"Could not save: {e}")
                    failure.__cause__ = e
                    fail(failure)
                raise

        if not self._guard.is_current(generation):
            logger.info("optimistic_write_discarded", extra={"write": label, "outcome": "confirmed"})
            return None

        confirm(saved)
        logger.info("optimistic_write_confirmed", extra={"write": label})
        return saved
