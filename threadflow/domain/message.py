"""Message domain models and the shared optimistic-record fields."""

from pydantic import BaseModel, Field, model_validator

from threadflow.core.config import constants
from threadflow.core.time_format import UtcDatetime


RecordId = int | str


def is_temporary_id(record_id: RecordId) -> bool:
    """Return True for a locally generated id that has never been persisted."""
    return isinstance(record_id, str) and record_id.startswith(constants.TEMP_ID_PREFIX)


class OptimisticRecord(BaseModel):
    """Fields shared by every record that can be rendered before server confirmation."""

    id: RecordId = Field(..., description="Server id, or a temporary 'temp-' id while unconfirmed")
    server_id: int | None = Field(default=None, description="Correlation key assigned by the Remote Store")
    pending: bool = Field(default=False, description="Write is in flight")
    failed: bool = Field(default=False, description="Write failed; record stays visible")

    @model_validator(mode="after")
    def check_terminal_flags(self) -> "OptimisticRecord":
        """A record is pending or failed, never both."""
        if self.pending and self.failed:
            raise ValueError("A record cannot be both pending and failed")
        return self

    @property
    def is_temporary(self) -> bool:
        """Whether the record still carries its temporary id."""
        return is_temporary_id(self.id)

    @property
    def is_confirmed(self) -> bool:
        """Whether the Remote Store has acknowledged this record."""
        return not self.pending and not self.failed and not self.is_temporary


class Message(OptimisticRecord):
    """Message data transfer object."""

    author: str = Field(..., description="Full name of the author")
    content: str = Field(..., description="Message body")
    created_at: UtcDatetime = Field(..., description="Creation timestamp")
    discussion_id: int | None = Field(default=None, description="Owning discussion")
    subdiscussion_id: RecordId | None = Field(default=None, description="Owning sub-discussion, None for main thread")
