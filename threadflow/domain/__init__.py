"""Domain models and DTOs."""

from threadflow.domain.discussion import Discussion, DiscussionSummary, SubDiscussion
from threadflow.domain.message import Message, OptimisticRecord, RecordId, is_temporary_id
from threadflow.domain.task import Task, TaskDifficulty, TaskStatus
from threadflow.domain.user import Actor, PresenceStatus, TeamMember, UserRole


__all__ = [
    "Actor",
    "Discussion",
    "DiscussionSummary",
    "Message",
    "OptimisticRecord",
    "PresenceStatus",
    "RecordId",
    "SubDiscussion",
    "Task",
    "TaskDifficulty",
    "TaskStatus",
    "TeamMember",
    "UserRole",
    "is_temporary_id",
]
