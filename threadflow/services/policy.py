"""Single permission policy for every mutating action."""

import logging
from collections.abc import Iterable
from enum import StrEnum

from threadflow.core.errors import AuthorizationError
from threadflow.domain import Actor, Task, UserRole


logger = logging.getLogger(__name__)


class Action(StrEnum):
    """Mutating actions guarded by the policy."""

    CREATE_TASK = "create_task"
    EDIT_TASK = "edit_task"
    DELETE_TASK = "delete_task"
    UPDATE_PROGRESS = "update_progress"
    VERIFY_TASK = "verify_task"
    JOIN_TASK = "join_task"
    UPDATE_SUBDISCUSSION_PROGRESS = "update_subdiscussion_progress"


class PolicyDecision(StrEnum):
    """Outcome of a policy evaluation."""

    ALLOWED = "allowed"
    DENIED = "denied"


_DENIAL_MESSAGES = {
    Action.UPDATE_PROGRESS: "You don't have permission to update this task's progress",
    Action.VERIFY_TASK: "Only reviewers can verify tasks",
    Action.JOIN_TASK: "You are already working on this task",
    Action.UPDATE_SUBDISCUSSION_PROGRESS: "Permission denied: Only reviewers can update progress",
}


def _same_name(left: str | None, right: str | None) -> bool:
    return bool(left) and bool(right) and left.casefold() == right.casefold()


def evaluate(
    action: Action,
    *,
    actor_role: str,
    actor_name: str,
    assignee: str | None = None,
    collaborators: Iterable[str] = (),
) -> PolicyDecision:
    """Decide whether an actor may perform an action on a task or sub-discussion.

    Name comparisons are case-insensitive. Reviewers may update and verify any
    task; assignees and collaborators may update progress on their own tasks.

    Args:
        action: The action being attempted
        actor_role: Role of the session user
        actor_name: Full name of the session user
        assignee: Full name of the task's assignee, if any
        collaborators: Full names of the task's collaborators

    Returns:
        PolicyDecision.ALLOWED or PolicyDecision.DENIED
    """
    is_reviewer = actor_role == UserRole.REVIEWER
    is_assignee = _same_name(assignee, actor_name)
    is_collaborator = any(_same_name(name, actor_name) for name in collaborators)

    if action in (Action.VERIFY_TASK, Action.UPDATE_SUBDISCUSSION_PROGRESS):
        allowed = is_reviewer
    elif action is Action.UPDATE_PROGRESS:
        allowed = is_reviewer or is_assignee or is_collaborator
    elif action is Action.JOIN_TASK:
        allowed = not is_assignee and not is_collaborator
    else:
        allowed = True

    return PolicyDecision.ALLOWED if allowed else PolicyDecision.DENIED


def authorize(action: Action, actor: Actor, task: Task | None = None) -> None:
    """Raise AuthorizationError unless the policy allows ``actor`` to perform ``action``."""
    decision = evaluate(
        action,
        actor_role=actor.role,
        actor_name=actor.full_name,
        assignee=task.assignee if task else None,
        collaborators=task.collaborators if task else (),
    )
    if decision is PolicyDecision.DENIED:
        logger.warning(
            "policy_denied",
            extra={"action": action.value, "actor": actor.username, "task_id": task.id if task else None},
        )
        raise AuthorizationError(_DENIAL_MESSAGES.get(action, "You don't have permission for this action"))
