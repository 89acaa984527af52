"""Unit tests for the discussion list and open-discussion views."""

import asyncio
from collections.abc import AsyncGenerator

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from threadflow.core.errors import AuthorizationError, ErrorCode, NotFoundError, ValidationError
from threadflow.core.time_format import format_relative
from threadflow.domain import Actor, is_temporary_id
from threadflow.interface.remote_store import RemoteStoreClient
from threadflow.services.discussion_view import DiscussionListView, DiscussionView
from threadflow.services.notices import NoticeLevel
from tests.unit.fake_store import FakeRemoteStore


@pytest.fixture
def seeded_store(fake_store: FakeRemoteStore) -> FakeRemoteStore:
    """Discussion 7 with a main-thread message and one sub-discussion; discussion 8 with one message."""
    fake_store.seed_discussion(7, "Launch plan")
    fake_store.seed_discussion(8, "Hiring")
    fake_store.seed_message(7, "Kickoff notes")
    sub = fake_store.seed_subdiscussion(7, "API")
    fake_store.seed_message(7, "Endpoints draft", subdiscussion_id=sub["id"])
    fake_store.seed_message(8, "Open roles")
    return fake_store


@pytest.fixture
async def view(
    client: RemoteStoreClient, developer: Actor, scheduler: AsyncIOScheduler
) -> AsyncGenerator[DiscussionView, None]:
    instance = DiscussionView(client=client, actor=developer, interval_seconds=60, scheduler=scheduler)
    yield instance
    await instance.close()


@pytest.mark.unit
class TestOpen:
    """Loading a discussion and routing messages to their thread."""

    async def test_open_splits_main_thread_and_subdiscussions(self, view: DiscussionView, seeded_store):
        """Messages are routed to the main thread or their sub-discussion."""
        await view.open(7)

        assert [m.content for m in view.messages] == ["Kickoff notes"]
        [api] = view.subdiscussions
        assert api.title == "API"
        assert [m.content for m in api.messages] == ["Endpoints draft"]

    async def test_visible_messages_follow_selection(self, view: DiscussionView, seeded_store):
        """Visible messages follow the selected sub-discussion."""
        await view.open(7)
        api = view.subdiscussions[0]

        view.select_subdiscussion(api.id)
        assert [m.content for m in view.visible_messages()] == ["Endpoints draft"]

        view.clear_selection()
        assert [m.content for m in view.visible_messages()] == ["Kickoff notes"]

    async def test_select_unknown_subdiscussion(self, view: DiscussionView, seeded_store):
        """Selecting an unknown sub-discussion raises NotFoundError."""
        await view.open(7)

        with pytest.raises(NotFoundError):
            view.select_subdiscussion(999)

    async def test_open_starts_polling(self, view: DiscussionView, seeded_store, scheduler: AsyncIOScheduler):
        """One poll job runs per open discussion and stops on close."""
        await view.open(7)
        assert len(scheduler.get_jobs()) == 1

        await view.open(8)
        assert len(scheduler.get_jobs()) == 1

        await view.close()
        assert scheduler.get_jobs() == []


@pytest.mark.unit
class TestSendMessage:
    """Optimistic message sending."""

    async def test_pending_then_confirmed_without_duplicates(self, view: DiscussionView, seeded_store):
        """A sent message is pending, then confirmed, and never duplicated by polls."""
        await view.open(7)
        gate = seeded_store.block("create_message")

        sending = asyncio.create_task(view.send_message("Shipping Friday"))
        await seeded_store.wait_until_blocked("create_message")

        draft = view.messages[-1]
        assert draft.pending
        assert is_temporary_id(draft.id)
        assert draft.author == "Bob Builder"

        gate.set()
        saved = await sending

        assert saved is not None
        confirmed = view.messages[-1]
        assert confirmed.id == saved.id
        assert confirmed.server_id == saved.id
        assert not confirmed.pending

        await view.refresh()
        await view.refresh()
        ids = [m.id for m in view.messages]
        assert ids.count(saved.id) == 1
        assert not any(is_temporary_id(message_id) for message_id in ids)

    async def test_send_into_selected_subdiscussion(self, view: DiscussionView, seeded_store):
        """Messages go to the selected sub-discussion only."""
        await view.open(7)
        api = view.select_subdiscussion(view.subdiscussions[0].id)

        saved = await view.send_message("Added pagination")

        assert saved.subdiscussion_id == api.id
        assert [m.content for m in view.visible_messages()] == ["Endpoints draft", "Added pagination"]
        assert [m.content for m in view.messages] == ["Kickoff notes"]

        await view.refresh()
        assert [m.content for m in view.visible_messages()] == ["Endpoints draft", "Added pagination"]

    async def test_blank_message_rejected(self, view: DiscussionView, seeded_store):
        """Blank messages are rejected before any draft is shown."""
        await view.open(7)

        with pytest.raises(ValidationError):
            await view.send_message("   ")

        assert [m.content for m in view.messages] == ["Kickoff notes"]

    async def test_send_without_open_discussion(self, view: DiscussionView):
        """Sending needs an open discussion."""
        with pytest.raises(ValidationError, match="No discussion is open"):
            await view.send_message("hello")

    async def test_offline_send_fails_but_stays_visible(
        self, offline_client: RemoteStoreClient, developer: Actor, scheduler: AsyncIOScheduler
    ):
        """An unreachable store leaves the draft visible and failed."""
        view = DiscussionView(client=offline_client, actor=developer, interval_seconds=60, scheduler=scheduler)
        try:
            await view.open(7)
            assert view.messages == []

            saved = await view.send_message("Anyone there?")

            assert saved is None
            [message] = view.messages
            assert message.content == "Anyone there?"
            assert message.failed
            assert not message.pending

            await view.refresh()
            assert view.messages == [message]

            codes = [notice.code for notice in view.notices.drain()]
            assert ErrorCode.ERR_NETWORK_ERROR in codes
        finally:
            await view.close()

    async def test_author_is_stored_as_display_name(self, view: DiscussionView, seeded_store):
        """The Remote Store receives the display name, not the login name."""
        await view.open(7)

        saved = await view.send_message("Hello")

        assert saved.author == "Bob Builder"
        assert seeded_store.messages[saved.id]["author"] == "Bob Builder"

    async def test_rejected_write_survives_successful_polls(self, view: DiscussionView, seeded_store):
        """Failed drafts are kept across polls."""
        await view.open(7)
        seeded_store.fail_writes = True

        await view.send_message("Will not save")
        await view.refresh()

        assert [m.content for m in view.messages] == ["Kickoff notes", "Will not save"]
        assert view.messages[-1].failed

    async def test_send_touches_discussion_list(
        self, client: RemoteStoreClient, developer: Actor, seeded_store, scheduler: AsyncIOScheduler
    ):
        """Sending bumps the discussion's activity in the list."""
        discussions = DiscussionListView(client=client, actor=developer)
        await discussions.refresh()
        view = DiscussionView(
            client=client,
            actor=developer,
            interval_seconds=60,
            scheduler=scheduler,
            discussion_list=discussions,
        )
        try:
            await view.open(8)
            await view.send_message("We should hire two")
        finally:
            await view.close()

        [hiring] = [row for row in discussions.summaries() if row.id == 8]
        assert hiring.last_activity == "just now"
        assert hiring.message_count == 2
        assert discussions.summaries()[0].id == 8


@pytest.mark.unit
class TestSubDiscussions:
    """Creating sub-discussions and setting their progress."""

    async def test_design_spec_created_under_discussion_7(self, view: DiscussionView, seeded_store):
        """The new sub-discussion shows at once, then carries its server id exactly once."""
        await view.open(7)
        gate = seeded_store.block("create_subdiscussion")

        creating = asyncio.create_task(view.create_subdiscussion("Design Spec"))
        await seeded_store.wait_until_blocked("create_subdiscussion")

        draft = view.subdiscussions[-1]
        assert draft.title == "Design Spec"
        assert draft.pending
        assert is_temporary_id(draft.id)
        assert draft.message_count == 0
        assert format_relative(draft.last_activity) == "just now"

        gate.set()
        saved = await creating

        assert saved is not None
        assert view.subdiscussions[-1].id == saved.id
        assert not view.subdiscussions[-1].pending

        await view.refresh()
        titles = [sub.title for sub in view.subdiscussions]
        assert titles.count("Design Spec") == 1
        assert [sub.id for sub in view.subdiscussions if sub.title == "Design Spec"] == [saved.id]

    async def test_selection_follows_confirmed_id(self, view: DiscussionView, seeded_store):
        """The selection moves from the temporary id to the server id."""
        await view.open(7)
        gate = seeded_store.block("create_subdiscussion")

        creating = asyncio.create_task(view.create_subdiscussion("Design Spec"))
        await seeded_store.wait_until_blocked("create_subdiscussion")
        view.select_subdiscussion(view.subdiscussions[-1].id)
        gate.set()
        saved = await creating

        assert view.selected_subdiscussion_id == saved.id

    async def test_developer_cannot_set_progress(self, view: DiscussionView, seeded_store):
        """Developers cannot set sub-discussion progress."""
        await view.open(7)
        sub_id = view.subdiscussions[0].id

        with pytest.raises(AuthorizationError, match="Only reviewers can update progress"):
            await view.update_subdiscussion_progress(sub_id, 50)

        assert ("PUT", "/api/subdiscussions") not in seeded_store.requests

    async def test_reviewer_sets_progress(
        self, client: RemoteStoreClient, reviewer: Actor, seeded_store, scheduler: AsyncIOScheduler
    ):
        """Reviewers set progress within 0-100."""
        view = DiscussionView(client=client, actor=reviewer, interval_seconds=60, scheduler=scheduler)
        try:
            await view.open(7)
            sub_id = view.subdiscussions[0].id

            updated = await view.update_subdiscussion_progress(sub_id, 75)

            assert updated.progress == 75
            assert view.subdiscussions[0].progress == 75
            assert [notice.level for notice in view.notices] == [NoticeLevel.SUCCESS]

            with pytest.raises(ValidationError):
                await view.update_subdiscussion_progress(sub_id, 150)
        finally:
            await view.close()


@pytest.mark.unit
class TestLiveness:
    """Results that arrive after the view moved on are discarded."""

    async def test_stale_tick_after_switching_discussions(self, view: DiscussionView, seeded_store):
        """A tick for the previous discussion never reaches the new one."""
        await view.open(7)
        gate = seeded_store.block("list_messages:7")

        stale = asyncio.create_task(view.refresh())
        await seeded_store.wait_until_blocked("list_messages:7")
        await view.open(8)
        gate.set()
        await stale

        assert view.discussion_id == 8
        assert [m.content for m in view.messages] == ["Open roles"]
        assert view.subdiscussions == []

    async def test_write_resolving_after_close_is_dropped(self, view: DiscussionView, seeded_store):
        """A write resolving after close changes nothing."""
        await view.open(7)
        gate = seeded_store.block("create_message")

        sending = asyncio.create_task(view.send_message("Late"))
        await seeded_store.wait_until_blocked("create_message")
        await view.close()
        gate.set()

        assert await sending is None
        assert view.messages == []

    async def test_older_refresh_resolving_last_is_dropped(self, view: DiscussionView, seeded_store):
        """A slow refresh that finishes after a newer one cannot roll the view back."""
        await view.open(7)
        gate = seeded_store.block("list_messages:7")
        slow = asyncio.create_task(view.refresh())
        await seeded_store.wait_until_blocked("list_messages:7")

        saved = await view.send_message("Hello")
        await view.refresh()
        assert saved.id in [m.id for m in view.messages]

        gate.set()
        await slow

        assert [m.content for m in view.messages] == ["Kickoff notes", "Hello"]
        assert saved.id in [m.id for m in view.messages]

    async def test_older_discussion_list_refresh_is_dropped(
        self, client: RemoteStoreClient, developer: Actor, seeded_store
    ):
        """The discussion list keeps the newest poll result when polls resolve out of order."""
        discussions = DiscussionListView(client=client, actor=developer)
        gate = seeded_store.block("list_discussions")
        slow = asyncio.create_task(discussions.refresh())
        await seeded_store.wait_until_blocked("list_discussions")
        seeded_store.seed_discussion(9, "Offsite")

        await discussions.refresh()
        gate.set()
        await slow

        assert 9 in [d.id for d in discussions.discussions]


@pytest.mark.unit
class TestDiscussionList:
    """Discussion list refresh, optimistic creation and rendering."""

    async def test_create_discussion(self, client: RemoteStoreClient, developer: Actor, seeded_store):
        """A new discussion shows at once and appears once after confirmation."""
        discussions = DiscussionListView(client=client, actor=developer)
        await discussions.refresh()
        gate = seeded_store.block("create_discussion")

        creating = asyncio.create_task(discussions.create_discussion("Roadmap"))
        await seeded_store.wait_until_blocked("create_discussion")

        draft = discussions.discussions[-1]
        assert draft.title == "Roadmap"
        assert draft.pending
        assert draft.started_by == "Bob Builder"

        gate.set()
        saved = await creating
        await discussions.refresh()

        titles = [d.title for d in discussions.discussions]
        assert titles.count("Roadmap") == 1
        assert saved.id in [d.id for d in discussions.discussions]
        assert seeded_store.discussions[saved.id]["started_by"] == "Bob Builder"

    async def test_summaries(self, client: RemoteStoreClient, developer: Actor, seeded_store):
        """Summaries carry counts, authors and relative times."""
        discussions = DiscussionListView(client=client, actor=developer)
        await discussions.refresh()

        rows = {row.id: row for row in discussions.summaries()}

        assert rows[7].title == "Launch plan"
        assert rows[7].message_count == 2
        assert rows[7].started_by == "Alice Admin"
        assert rows[8].message_count == 1
        assert rows[7].last_activity.endswith("ago")

    async def test_blank_title_rejected(self, client: RemoteStoreClient, developer: Actor):
        """Blank discussion titles are rejected."""
        discussions = DiscussionListView(client=client, actor=developer)

        with pytest.raises(ValidationError):
            await discussions.create_discussion("  ")

        assert discussions.discussions == []
