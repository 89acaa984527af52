"""Pure rules for task status, verification, deletion and workload counts."""

from pydantic import BaseModel

from threadflow.core.config import constants
from threadflow.core.errors import ValidationError
from threadflow.domain import Task, TaskDifficulty, TaskStatus


class DifficultyCounts(BaseModel):
    """Tasks assigned to one member, bucketed by difficulty."""

    easy: int = 0
    moderate: int = 0
    hard: int = 0
    total: int = 0


def validate_progress(progress: int) -> int:
    """Reject progress values outside 0-100."""
    if not constants.PROGRESS_MIN <= progress <= constants.PROGRESS_MAX:
        msg = f"Progress must be between {constants.PROGRESS_MIN} and {constants.PROGRESS_MAX}, got {progress}"
        raise ValidationError(msg)
    return progress


def derive_status(progress: int) -> TaskStatus:
    """Status for a task whose progress has just been set.

    Any explicit progress update moves a task out of Pending, so 0 maps to
    In Progress here; Pending only describes tasks nobody has touched yet.
    """
    if validate_progress(progress) == constants.PROGRESS_MAX:
        return TaskStatus.COMPLETED
    return TaskStatus.IN_PROGRESS


def apply_progress(task: Task, progress: int) -> Task:
    """Return a copy of ``task`` at the new progress with its derived status."""
    status = derive_status(progress)
    verified = task.verified if progress == constants.PROGRESS_MAX else 0
    return task.model_copy(update={"progress": progress, "status": status, "verified": verified})


def check_verifiable(task: Task) -> None:
    """Only tasks at 100% can be verified."""
    if task.progress != constants.PROGRESS_MAX:
        msg = "Only completed tasks can be verified"
        raise ValidationError(msg)


def check_deletable(task: Task) -> None:
    """A finished task has to be verified by a reviewer before it can be deleted."""
    if task.progress == constants.PROGRESS_MAX and not task.is_verified:
        msg = "This task is completed but not yet verified. Please wait for reviewer verification before deleting."
        raise ValidationError(msg)


def with_collaborator(task: Task, name: str) -> Task:
    """Return a copy of ``task`` with ``name`` appended to its collaborators."""
    return task.model_copy(update={"collaborators": [*task.collaborators, name]})


def task_counts_by_member(tasks: list[Task], member_name: str) -> DifficultyCounts:
    """Count a member's assigned tasks by difficulty."""
    member_tasks = [task for task in tasks if task.assignee == member_name]
    return DifficultyCounts(
        easy=sum(1 for task in member_tasks if task.difficulty == TaskDifficulty.EASY),
        moderate=sum(1 for task in member_tasks if task.difficulty == TaskDifficulty.MODERATE),
        hard=sum(1 for task in member_tasks if task.difficulty == TaskDifficulty.HARD),
        total=len(member_tasks),
    )
