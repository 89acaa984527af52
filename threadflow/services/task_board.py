"""Task board view: tasks and team members, with the progress/verification workflow."""

import asyncio
import logging
from datetime import date
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from threadflow.core.errors import NotFoundError, RemoteStoreError, ValidationError
from threadflow.core.logging import span
from threadflow.domain import Actor, Task, TaskDifficulty, TaskStatus, TeamMember
from threadflow.interface.remote_store import RemoteStoreClient
from threadflow.services.notices import NoticeQueue
from threadflow.services.optimistic_writer import OptimisticWriter
from threadflow.services.policy import Action, authorize
from threadflow.services.poller import LivenessGuard, Poller, TickCounter
from threadflow.services.reconciler import merge_tasks
from threadflow.services.task_rules import (
    DifficultyCounts,
    apply_progress,
    check_deletable,
    check_verifiable,
    task_counts_by_member,
    validate_progress,
    with_collaborator,
)


logger = logging.getLogger(__name__)

# Fields edit_task may change; status, progress and verification follow their own workflow.
EDITABLE_FIELDS = frozenset({"name", "description", "assignee", "difficulty", "due_date", "collaborators"})


class TaskBoardView:
    """All tasks and team members for the signed-in actor.

    Every mutating call runs the permission policy and the local task rules
    before touching state; a rejected call raises and changes nothing. Remote
    Store failures never raise: they become notices (and, for progress
    updates, a ``failed`` flag on the task).
    """

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
        self.tasks: list[Task] = []
        self.team: list[TeamMember] = []
        self.notices = NoticeQueue()

    # Lifecycle

    async def open(self) -> None:
        """Load tasks and team, then poll both."""
        await self._stop_polling()
        generation = self.guard.advance()
        await self.refresh()
        if not self.guard.is_current(generation):
            return
        self._poller = Poller(
            self.refresh,
            interval_seconds=self._interval,
            name="task-board",
            scheduler=self._scheduler,
        )
        await self._poller.start()

    async def close(self) -> None:
        self.guard.close()
        await self._stop_polling()

    async def _stop_polling(self) -> None:
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None

    async def refresh(self) -> None:
        """Fetch tasks and team together and merge them with local task state."""
        generation = self.guard.generation
        tick = self._ticks.begin()
        with span("task_board.refresh"):
            try:
                tasks, team = await asyncio.gather(self._client.list_tasks(), self._client.list_team())
            except RemoteStoreError as e:
                logger.warning("task_board_refresh_failed", extra={"error": str(e)})
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return

        if not self.guard.is_current(generation):
            logger.info("task_board_stale_tick_discarded", extra={"generation": generation})
            return
        if not self._ticks.accept(tick):
            logger.info("task_board_out_of_order_tick_discarded", extra={"tick": tick})
            return

        self.tasks = merge_tasks(self.tasks, tasks)
        self.team = team

    # Lookups

    def get_task(self, task_id: int) -> Task:
        for task in self.tasks:
            if task.id == task_id:
                return task
        msg = f"Task {task_id} not found"
        raise NotFoundError(msg)

    def _replace(self, task: Task) -> None:
        self.tasks = [task if existing.id == task.id else existing for existing in self.tasks]

    def counts_for(self, member_name: str) -> DifficultyCounts:
        """Workload of one team member by difficulty."""
        return task_counts_by_member(self.tasks, member_name)

    # Writes

    async def create_task(
        self,
        *,
        name: str,
        assignee: str,
        description: str = "",
        difficulty: TaskDifficulty = TaskDifficulty.MODERATE,
        due_date: date | None = None,
    ) -> Task | None:
        """Create a task; it starts Pending at 0%.

        Raises:
            ValidationError: If the name or assignee is blank
        """
        authorize(Action.CREATE_TASK, self._actor)
        if not name.strip() or not assignee.strip():
            msg = "Task name and assignee are required"
            raise ValidationError(msg)

        generation = self.guard.generation
        with span("task_board.create_task"):
            try:
                saved = await self._client.create_task(
                    name=name.strip(),
                    assignee=assignee.strip(),
                    description=description,
                    difficulty=difficulty,
                    due_date=due_date,
                )
            except RemoteStoreError as e:
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return None

        if not self.guard.is_current(generation):
            return None
        self.tasks = [*self.tasks, saved]
        self.notices.success(f"Task '{saved.name}' created")
        return saved

    async def edit_task(self, task_id: int, **changes: Any) -> Task | None:  # noqa: ANN401
        """Change a task's details; status, progress and verification are kept.

        Raises:
            NotFoundError: If the task is not on the board
            ValidationError: If a change names a field that cannot be edited
        """
        task = self.get_task(task_id)
        authorize(Action.EDIT_TASK, self._actor, task)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            msg = f"Cannot edit task field(s): {', '.join(sorted(unknown))}"
            raise ValidationError(msg)

        updated = Task.model_validate({**task.model_dump(), **changes})
        return await self._put_task(updated, label="edit_task", success="Task updated")

    async def join_task(self, task_id: int) -> Task | None:
        """Add the actor to a task's collaborators.

        Raises:
            NotFoundError: If the task is not on the board
            AuthorizationError: If the actor already works on the task
        """
        task = self.get_task(task_id)
        authorize(Action.JOIN_TASK, self._actor, task)
        updated = with_collaborator(task, self._actor.full_name)
        return await self._put_task(updated, label="join_task", success=f"You joined '{task.name}'")

    async def _put_task(self, task: Task, *, label: str, success: str) -> Task | None:
        generation = self.guard.generation
        with span(f"task_board.{label}"):
            try:
                saved = await self._client.update_task(task)
            except RemoteStoreError as e:
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return None

        if not self.guard.is_current(generation):
            return None
        self._replace(saved)
        self.notices.success(success)
        return saved

    async def update_progress(self, task_id: int, progress: int) -> Task | None:
        """Optimistically set a task's progress; status follows from it.

        The task shows the new progress as pending at once. If the write
        fails, the previous progress and status come back and the task is
        flagged as failed.

        Raises:
            NotFoundError: If the task is not on the board
            AuthorizationError: If the actor is not a reviewer, the assignee or a collaborator
            ValidationError: If progress is outside 0-100
        """
        task = self.get_task(task_id)
        authorize(Action.UPDATE_PROGRESS, self._actor, task)
        validate_progress(progress)
        previous = task.model_copy(update={"pending": False, "failed": False})

        def insert() -> None:
            self._replace(apply_progress(task, progress).model_copy(update={"pending": True, "failed": False}))

        def confirm(saved: Task) -> None:
            self._replace(saved)

        def fail(error: RemoteStoreError) -> None:
            self._replace(previous.model_copy(update={"failed": True}))
            self.notices.error(error)

        return await self._writer.submit(
            label="update_progress",
            insert=insert,
            request=lambda: self._client.update_task_progress(task_id=task_id, progress=progress),
            confirm=confirm,
            fail=fail,
        )

    async def verify_task(self, task_id: int) -> Task | None:
        """Mark a completed task as verified (reviewers only).

        Raises:
            NotFoundError: If the task is not on the board
            AuthorizationError: If the actor is not a reviewer
            ValidationError: If the task is not at 100%
        """
        task = self.get_task(task_id)
        authorize(Action.VERIFY_TASK, self._actor, task)
        check_verifiable(task)

        generation = self.guard.generation
        with span("task_board.verify_task"):
            try:
                await self._client.verify_task(task_id=task_id)
            except RemoteStoreError as e:
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return None

        if not self.guard.is_current(generation):
            return None
        # The verify route answers with a raw row lacking assignee names, so only the flag is taken from it.
        current = next((existing for existing in self.tasks if existing.id == task_id), task)
        verified = current.model_copy(update={"verified": 1, "status": TaskStatus.COMPLETED})
        self._replace(verified)
        self.notices.success("Task verified successfully")
        return verified

    async def delete_task(self, task_id: int) -> bool:
        """Delete a task; completed tasks must be verified first.

        Returns:
            True if the Remote Store deleted the task

        Raises:
            NotFoundError: If the task is not on the board
            ValidationError: If the task is completed but not verified
        """
        task = self.get_task(task_id)
        authorize(Action.DELETE_TASK, self._actor, task)
        check_deletable(task)

        generation = self.guard.generation
        with span("task_board.delete_task"):
            try:
                await self._client.delete_task(task_id=task_id)
            except RemoteStoreError as e:
                if self.guard.is_current(generation):
                    self.notices.error(e)
                return False

        if self.guard.is_current(generation):
            self.tasks = [existing for existing in self.tasks if existing.id != task_id]
            self.notices.success(f"Task '{task.name}' deleted")
        return True
