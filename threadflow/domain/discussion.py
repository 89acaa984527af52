"""Discussion and sub-discussion domain models."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from threadflow.core.time_format import UtcDatetime
from threadflow.domain.message import Message, OptimisticRecord


class SubDiscussion(OptimisticRecord):
    """Sub-discussion data transfer object with its ordered messages."""

    discussion_id: int | None = Field(default=None, description="Owning discussion")
    title: str = Field(..., description="Sub-discussion title")
    created_at: UtcDatetime = Field(..., description="Creation timestamp")
    progress: int = Field(default=0, ge=0, le=100, description="Reviewer-set progress (percent)")
    messages: list[Message] = Field(default_factory=list, description="Messages in creation order")

    @field_validator("progress", mode="before")
    @classmethod
    def default_missing_progress(cls, v: object) -> object:
        """The Remote Store reports progress as null until a reviewer sets it."""
        return 0 if v is None else v

    @property
    def last_activity(self) -> datetime:
        """Most recent message timestamp, or the creation time when there are no messages."""
        return max((message.created_at for message in self.messages), default=self.created_at)

    @property
    def message_count(self) -> int:
        """Number of messages, including unconfirmed ones."""
        return len(self.messages)


class Discussion(OptimisticRecord):
    """Discussion data transfer object."""

    title: str = Field(..., description="Discussion title")
    started_by: str = Field(default="Anonymous", description="Full name of the starter")
    message_count: int = Field(default=0, description="Messages across the main thread and sub-discussions")
    created_at: UtcDatetime = Field(..., description="Creation timestamp")
    last_message_at: UtcDatetime | None = Field(default=None, description="Latest message timestamp, if any")

    @field_validator("message_count", mode="before")
    @classmethod
    def default_missing_count(cls, v: object) -> object:
        """COUNT() arrives as null or a string depending on the store driver."""
        return 0 if v is None else v

    @property
    def last_activity(self) -> datetime:
        """Latest message time, falling back to creation time."""
        return self.last_message_at or self.created_at


class DiscussionSummary(BaseModel):
    """Rendered row for a discussion list."""

    id: int | str
    title: str
    started_by: str
    message_count: int
    created: str
    last_activity: str
    pending: bool = False
    failed: bool = False
