"""threadflow - command-line client for threaded discussions and task tracking."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from threadflow.core.config import settings
from threadflow.core.errors import RemoteStoreError, classify_error_with_response
from threadflow.core.logging import configure_logfire, instrument_httpx
from threadflow.core.time_format import format_relative
from threadflow.domain import Actor, Message
from threadflow.interface.remote_store import RemoteStoreClient
from threadflow.services.discussion_view import DiscussionListView, DiscussionView
from threadflow.services.notices import NoticeQueue
from threadflow.services.task_board import TaskBoardView


logger = logging.getLogger(__name__)


def _actor() -> Actor:
    return Actor(username=settings.username, full_name=settings.full_name, role=settings.role)


def _render_message(message: Message) -> str:
    marker = " (sending...)" if message.pending else " (failed)" if message.failed else ""
    return f"[{format_relative(message.created_at)}] {message.author}: {message.content}{marker}"


def _print_notices(notices: NoticeQueue) -> None:
    for notice in notices.drain():
        print(f"! {notice.message}", file=sys.stderr)  # noqa: T201


async def list_discussions() -> None:
    view = DiscussionListView(client=RemoteStoreClient(), actor=_actor())
    await view.refresh()
    for row in view.summaries():
        print(  # noqa: T201
            f"{row.id:>5}  {row.title}  by {row.started_by}  "
            f"{row.message_count} messages, last activity {row.last_activity}"
        )
    _print_notices(view.notices)


async def watch_discussion(discussion_id: int, *, ticks: int | None) -> None:
    """Print the main thread and sub-discussions of a discussion on every poll."""
    view = DiscussionView(client=RemoteStoreClient(), actor=_actor())
    seen: set[object] = set()
    try:
        await view.open(discussion_id)
        remaining = ticks
        while remaining is None or remaining > 0:
            for message in view.messages:
                if message.id not in seen:
                    seen.add(message.id)
                    print(_render_message(message))  # noqa: T201
            for subdiscussion in view.subdiscussions:
                for message in subdiscussion.messages:
                    if message.id not in seen:
                        seen.add(message.id)
                        print(f"  #{subdiscussion.title} {_render_message(message)}")  # noqa: T201
            _print_notices(view.notices)
            if remaining is not None:
                remaining -= 1
                if remaining == 0:
                    break
            await asyncio.sleep(settings.poll_interval_seconds)
    finally:
        await view.close()


async def watch_tasks(*, ticks: int | None) -> None:
    """Print the task board on every poll."""
    view = TaskBoardView(client=RemoteStoreClient(), actor=_actor())
    try:
        await view.open()
        remaining = ticks
        while remaining is None or remaining > 0:
            for task in view.tasks:
                verified = " verified" if task.is_verified else ""
                print(  # noqa: T201
                    f"{task.id:>5}  {task.name}  [{task.status}{verified}] {task.progress}%  "
                    f"{task.assignee or 'unassigned'}"
                )
            _print_notices(view.notices)
            if remaining is not None:
                remaining -= 1
                if remaining == 0:
                    break
            await asyncio.sleep(settings.poll_interval_seconds)
            print()  # noqa: T201
    finally:
        await view.close()


async def send_message(discussion_id: int, content: str, *, subdiscussion_id: int | None) -> bool:
    """Send one message and report whether the Remote Store accepted it."""
    view = DiscussionView(client=RemoteStoreClient(), actor=_actor())
    try:
        await view.open(discussion_id)
        if subdiscussion_id is not None:
            view.select_subdiscussion(subdiscussion_id)
        saved = await view.send_message(content)
        _print_notices(view.notices)
        if saved is None:
            return False
        print(f"Sent message {saved.id}")  # noqa: T201
        return True
    finally:
        await view.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="threadflow", description="Threaded discussions and task tracking")
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("discussions", help="List discussions")

    watch = subcommands.add_parser("watch-discussion", help="Follow a discussion")
    watch.add_argument("discussion_id", type=int)
    watch.add_argument("--ticks", type=int, default=None, help="Stop after this many polls")

    tasks = subcommands.add_parser("watch-tasks", help="Follow the task board")
    tasks.add_argument("--ticks", type=int, default=None, help="Stop after this many polls")

    send = subcommands.add_parser("send", help="Send a message")
    send.add_argument("discussion_id", type=int)
    send.add_argument("content")
    send.add_argument("--sub", dest="subdiscussion_id", type=int, default=None, help="Sub-discussion id")

    return parser


async def run(args: argparse.Namespace) -> int:
    if args.command == "discussions":
        await list_discussions()
    elif args.command == "watch-discussion":
        await watch_discussion(args.discussion_id, ticks=args.ticks)
    elif args.command == "watch-tasks":
        await watch_tasks(ticks=args.ticks)
    elif args.command == "send":
        sent = await send_message(args.discussion_id, args.content, subdiscussion_id=args.subdiscussion_id)
        return 0 if sent else 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logfire()
    instrument_httpx()

    try:
        return asyncio.run(run(args))
    except RemoteStoreError as e:
        response = classify_error_with_response(e)
        logger.error("command_failed", extra={"command": args.command, "error": str(e)})
        print(f"\n❌ {response.message} {response.suggestion}\n", file=sys.stderr)  # noqa: T201
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
