"""Discussion list and open-discussion view state.

Both views keep the last authoritative poll result separately from their
pending optimistic records and rebuild the rendered collections from the two
after every poll or write, so confirming a write between polls never shows a
record twice.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from threadflow.core.errors import NotFoundError, RemoteStoreError, ValidationError
from threadflow.core.logging import span
from threadflow.core.time_format import format_relative, utc_now
from threadflow.domain import (
    Actor,
    Discussion,
    DiscussionSummary,
    Message,
    RecordId,
    SubDiscussion,
)
from threadflow.interface.remote_store import RemoteStoreClient
from threadflow.services.notices import NoticeQueue
from threadflow.services.optimistic_writer import OptimisticWriter, confirm_record, fail_record
from threadflow.services.policy import Action, authorize
from threadflow.services.poller import LivenessGuard, Poller, TickCounter
from threadflow.services.reconciler import MessageGroups, Scope, build_subdiscussions, group_messages, reconcile
from threadflow.services.task_rules import validate_progress


logger = logging.getLogger(__name__)


class DiscussionListView:
    """All discussions, with optimistic creation and local activity bumps."""

    def __init__(
        self,
        *,
        client: RemoteStoreClient,
        actor: Actor,
        interval_seconds: float | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._client = client
        self._actor = actor
        self._interval = interval_seconds
        self._scheduler = scheduler
        self.guard = LivenessGuard()
        self._ticks = TickCounter()
        self._writer = OptimisticWriter(self.guard)
        self._poller: Poller | None = None
        self._authoritative: list[Discussion] = []
        self._pending: list[Discussion] = []
        self.discussions: list[Discussion] = []
        self.notices = NoticeQueue()

    def _rebuild(self) -> None:
        result = reconcile(self._authoritative, self._pending)
        self._pending = result.still_pending
        self.discussions = result.merged

    async def open(self) -> None:
        """Load discussions and start polling."""
        await self.close()
        self.guard.advance()
        await self.refresh()
        self._poller = Poller(
            self.refresh,
            interval_seconds=self._interval,
            name="discussion-list",
            scheduler=self._scheduler,
        )
        await self._poller.start()

    async def close(self) -> None:
        self.guard.close()
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None

    async def refresh(self) -> None:
        """Fetch discussions and merge them with unconfirmed local ones."""
        generation = self.guard.generation
        tick = self._ticks.begin()
        with span("discussion_list.refresh"):
            try:
                fetched = await self._client.list_discussions()
            except RemoteStoreError as e:
                logger.warning("discussion_list_refresh_failed", extra={"error": str(e)})
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return

        if not self.guard.is_current(generation):
            logger.info("discussion_list_stale_tick_discarded", extra={"generation": generation})
            return
        if not self._ticks.accept(tick):
            logger.info("discussion_list_out_of_order_tick_discarded", extra={"tick": tick})
            return

        self._authoritative = fetched
        self._rebuild()

    async def create_discussion(self, title: str) -> Discussion | None:
        """Show a new discussion immediately and save it in the background.

        Raises:
            ValidationError: If the title is blank
        """
        title = title.strip()
        if not title:
            msg = "Discussion title cannot be empty"
            raise ValidationError(msg)

        temp_id = self._writer.temp_id()
        draft = Discussion(
            id=temp_id,
            title=title,
            started_by=self._actor.full_name,
            created_at=utc_now(),
            pending=True,
        )

        def insert() -> None:
            self._pending.append(draft)
            self._rebuild()

        def confirm(saved: Discussion) -> None:
            self._pending = confirm_record(self._pending, temp_id, saved)
            self._rebuild()

        def fail(error: RemoteStoreError) -> None:
            self._pending = fail_record(self._pending, temp_id)
            self._rebuild()
            self.notices.error(error)

        return await self._writer.submit(
            label="create_discussion",
            insert=insert,
            request=lambda: self._client.create_discussion(title=title, username=self._actor.full_name),
            confirm=confirm,
            fail=fail,
        )

    def touch(self, discussion_id: RecordId, *, at: datetime | None = None) -> None:
        """Record locally that a message was just sent in ``discussion_id``."""
        at = at or utc_now()

        def bump(records: list[Discussion]) -> list[Discussion]:
            return [
                record.model_copy(update={"last_message_at": at, "message_count": record.message_count + 1})
                if record.id == discussion_id
                else record
                for record in records
            ]

        self._authoritative = bump(self._authoritative)
        self._pending = bump(self._pending)
        self._rebuild()

    def summaries(self, *, now: datetime | None = None) -> list[DiscussionSummary]:
        """Rendered rows, most recently active first."""
        ordered = sorted(self.discussions, key=lambda d: d.last_activity, reverse=True)
        return [
            DiscussionSummary(
                id=discussion.id,
                title=discussion.title,
                started_by=discussion.started_by,
                message_count=discussion.message_count,
                created=format_relative(discussion.created_at, now=now),
                last_activity=format_relative(discussion.last_activity, now=now),
                pending=discussion.pending,
                failed=discussion.failed,
            )
            for discussion in ordered
        ]


class DiscussionView:
    """One open discussion: its main thread, sub-discussions and the current selection.

    Opening another discussion advances the liveness guard, so ticks and
    writes started for the previous discussion can no longer touch this state.
    """

    def __init__(
        self,
        *,
        client: RemoteStoreClient,
        actor: Actor,
        interval_seconds: float | None = None,
        scheduler: AsyncIOScheduler | None = None,
        discussion_list: DiscussionListView | None = None,
    ) -> None:
        self._client = client
        self._actor = actor
        self._interval = interval_seconds
        self._scheduler = scheduler
        self._discussion_list = discussion_list
        self.guard = LivenessGuard()
        self._ticks = TickCounter()
        self._writer = OptimisticWriter(self.guard)
        self._poller: Poller | None = None
        self.notices = NoticeQueue()
        self.discussion_id: int | None = None
        self.selected_subdiscussion_id: RecordId | None = None
        self._reset()

    def _reset(self) -> None:
        self._groups = MessageGroups()
        self._fetched_subdiscussions: list[SubDiscussion] = []
        self._pending_messages: dict[Scope, list[Message]] = {}
        self._pending_subdiscussions: list[SubDiscussion] = []
        self.messages: list[Message] = []
        self.subdiscussions: list[SubDiscussion] = []
        self.selected_subdiscussion_id = None

    def _rebuild(self) -> None:
        main = reconcile(self._groups.main, self._pending_messages.get(None, ()))
        subs = reconcile(self._fetched_subdiscussions, self._pending_subdiscussions)
        self._pending_subdiscussions = subs.still_pending

        attached, pending = build_subdiscussions(subs.merged, self._groups, self._pending_messages)
        if main.still_pending:
            pending[None] = main.still_pending
        else:
            pending.pop(None, None)

        self._pending_messages = pending
        self.messages = main.merged
        self.subdiscussions = attached

    async def open(self, discussion_id: int) -> None:
        """Switch to ``discussion_id``: drop the old state, load the new one and poll it."""
        await self._stop_polling()
        generation = self.guard.advance()
        self._reset()
        self.discussion_id = discussion_id
        logger.info("discussion_opened", extra={"discussion_id": discussion_id, "generation": generation})

        await self.refresh()
        if not self.guard.is_current(generation):
            return
        self._poller = Poller(
            self.refresh,
            interval_seconds=self._interval,
            name=f"discussion-{discussion_id}",
            scheduler=self._scheduler,
        )
        await self._poller.start()

    async def close(self) -> None:
        """Stop polling and invalidate everything in flight."""
        self.guard.close()
        await self._stop_polling()
        self.discussion_id = None
        self._reset()

    async def _stop_polling(self) -> None:
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None

    async def refresh(self) -> None:
        """Fetch messages and sub-discussions together and merge them into the view."""
        discussion_id = self.discussion_id
        if discussion_id is None:
            return
        generation = self.guard.generation
        tick = self._ticks.begin()

        with span("discussion_view.refresh"):
            try:
                messages, subdiscussions = await asyncio.gather(
                    self._client.list_messages(discussion_id=discussion_id),
                    self._client.list_subdiscussions(discussion_id=discussion_id),
                )
            except RemoteStoreError as e:
                logger.warning(
                    "discussion_refresh_failed",
                    extra={"discussion_id": discussion_id, "error": str(e)},
                )
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return

        if not self.guard.is_current(generation):
            logger.info(
                "discussion_stale_tick_discarded",
                extra={"discussion_id": discussion_id, "generation": generation},
            )
            return
        if not self._ticks.accept(tick):
            logger.info(
                "discussion_out_of_order_tick_discarded",
                extra={"discussion_id": discussion_id, "tick": tick},
            )
            return

        self._groups = group_messages(messages)
        self._fetched_subdiscussions = subdiscussions
        self._rebuild()

    # Selection

    def select_subdiscussion(self, subdiscussion_id: RecordId) -> SubDiscussion:
        """Route subsequent sends and ``visible_messages`` to one sub-discussion."""
        subdiscussion = self.get_subdiscussion(subdiscussion_id)
        self.selected_subdiscussion_id = subdiscussion.id
        return subdiscussion

    def clear_selection(self) -> None:
        self.selected_subdiscussion_id = None

    def get_subdiscussion(self, subdiscussion_id: RecordId) -> SubDiscussion:
        for subdiscussion in self.subdiscussions:
            if subdiscussion.id == subdiscussion_id:
                return subdiscussion
        msg = f"Sub-discussion {subdiscussion_id} not found"
        raise NotFoundError(msg)

    def visible_messages(self) -> list[Message]:
        """Messages of the selected sub-discussion, or of the main thread."""
        if self.selected_subdiscussion_id is None:
            return list(self.messages)
        for subdiscussion in self.subdiscussions:
            if subdiscussion.id == self.selected_subdiscussion_id:
                return list(subdiscussion.messages)
        return []

    # Writes

    def _apply_to_pending_messages(self, update: Callable[[list[Message]], list[Message]]) -> None:
        self._pending_messages = {scope: update(records) for scope, records in self._pending_messages.items()}
        self._rebuild()

    async def send_message(self, content: str) -> Message | None:
        """Post ``content`` to the main thread or the selected sub-discussion.

        The message renders immediately as pending; it is confirmed with the
        server id or marked failed when the write resolves.

        Raises:
            ValidationError: If no discussion is open or the content is blank
        """
        content = content.strip()
        if not content:
            msg = "Message cannot be empty"
            raise ValidationError(msg)
        discussion_id = self.discussion_id
        if discussion_id is None:
            msg = "No discussion is open"
            raise ValidationError(msg)

        scope = self.selected_subdiscussion_id
        temp_id = self._writer.temp_id()
        draft = Message(
            id=temp_id,
            author=self._actor.full_name,
            content=content,
            created_at=utc_now(),
            discussion_id=discussion_id,
            subdiscussion_id=scope,
            pending=True,
        )

        def insert() -> None:
            self._pending_messages.setdefault(scope, []).append(draft)
            self._rebuild()
            if self._discussion_list is not None:
                self._discussion_list.touch(discussion_id, at=draft.created_at)

        def confirm(saved: Message) -> None:
            self._apply_to_pending_messages(lambda records: confirm_record(records, temp_id, saved))

        def fail(error: RemoteStoreError) -> None:
            self._apply_to_pending_messages(lambda records: fail_record(records, temp_id))
            self.notices.error(error)

        return await self._writer.submit(
            label="send_message",
            insert=insert,
            request=lambda: self._client.create_message(
                discussion_id=discussion_id,
                content=content,
                author=self._actor.full_name,
                subdiscussion_id=scope,
            ),
            confirm=confirm,
            fail=fail,
        )

    async def create_subdiscussion(self, title: str) -> SubDiscussion | None:
        """Show a new, empty sub-discussion immediately and save it in the background.

        Raises:
            ValidationError: If no discussion is open or the title is blank
        """
        title = title.strip()
        if not title:
            msg = "Sub-discussion title cannot be empty"
            raise ValidationError(msg)
        discussion_id = self.discussion_id
        if discussion_id is None:
            msg = "No discussion is open"
            raise ValidationError(msg)

        temp_id = self._writer.temp_id()
        draft = SubDiscussion(
            id=temp_id,
            discussion_id=discussion_id,
            title=title,
            created_at=utc_now(),
            pending=True,
        )

        def insert() -> None:
            self._pending_subdiscussions.append(draft)
            self._rebuild()

        def confirm(saved: SubDiscussion) -> None:
            self._pending_subdiscussions = confirm_record(self._pending_subdiscussions, temp_id, saved)
            self._rekey_scope(temp_id, saved.id)
            self._rebuild()

        def fail(error: RemoteStoreError) -> None:
            self._pending_subdiscussions = fail_record(self._pending_subdiscussions, temp_id)
            self._rebuild()
            self.notices.error(error)

        return await self._writer.submit(
            label="create_subdiscussion",
            insert=insert,
            request=lambda: self._client.create_subdiscussion(discussion_id=discussion_id, title=title),
            confirm=confirm,
            fail=fail,
        )

    def _rekey_scope(self, old_id: RecordId, new_id: RecordId) -> None:
        """Move messages and selection from a temporary sub-discussion id to its server id."""
        moved = self._pending_messages.pop(old_id, [])
        if moved:
            self._pending_messages.setdefault(new_id, []).extend(
                message.model_copy(update={"subdiscussion_id": new_id}) for message in moved
            )
        if self.selected_subdiscussion_id == old_id:
            self.selected_subdiscussion_id = new_id

    async def update_subdiscussion_progress(self, subdiscussion_id: RecordId, progress: int) -> SubDiscussion | None:
        """Set a sub-discussion's progress (reviewers only).

        Returns:
            The updated sub-discussion, or None when the Remote Store rejected it

        Raises:
            AuthorizationError: If the actor is not a reviewer
            ValidationError: If progress is outside 0-100
            NotFoundError: If the sub-discussion is not in this view
        """
        authorize(Action.UPDATE_SUBDISCUSSION_PROGRESS, self._actor)
        validate_progress(progress)
        self.get_subdiscussion(subdiscussion_id)
        generation = self.guard.generation

        with span("discussion_view.update_subdiscussion_progress"):
            try:
                saved = await self._client.update_subdiscussion_progress(
                    subdiscussion_id=subdiscussion_id,
                    progress=progress,
                    role=self._actor.role,
                )
            except RemoteStoreError as e:
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return None

        if not self.guard.is_current(generation):
            return None

        def set_progress(records: list[SubDiscussion]) -> list[SubDiscussion]:
            return [
                record.model_copy(update={"progress": saved.progress}) if record.id == subdiscussion_id else record
                for record in records
            ]

        self._fetched_subdiscussions = set_progress(self._fetched_subdiscussions)
        self._pending_subdiscussions = set_progress(self._pending_subdiscussions)
        self._rebuild()
        self.notices.success(f"Progress set to {saved.progress}%")
        return saved
