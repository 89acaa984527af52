"""Task domain models and enums."""

from datetime import date
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from threadflow.core.config import constants


class TaskStatus(StrEnum):
    """Task lifecycle status, derived from progress."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class TaskDifficulty(StrEnum):
    """How demanding a task is."""

    EASY = "Easy"
    MODERATE = "Moderate"
    HARD = "Hard"


class Task(BaseModel):
    """Task data transfer object.

    Wire names differ between Remote Store routes (``assignedTo`` vs
    ``assigned_to_name``, ``Difficulty`` vs ``difficulty``, ``dueDate`` vs
    ``due_date``), so validation accepts each spelling.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="Unique task ID from the Remote Store")
    name: str = Field(..., description="Task name")
    description: str = Field(default="", description="Detailed task description")
    assignee: str | None = Field(
        default=None,
        validation_alias=AliasChoices("assignee", "assignedTo", "assigned_to_name"),
        description="Full name of the assigned team member",
    )
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current status")
    difficulty: TaskDifficulty = Field(
        default=TaskDifficulty.MODERATE,
        validation_alias=AliasChoices("difficulty", "Difficulty"),
        description="Task difficulty",
    )
    due_date: date | None = Field(
        default=None,
        validation_alias=AliasChoices("due_date", "dueDate"),
        description="Due date",
    )
    progress: int = Field(default=0, ge=constants.PROGRESS_MIN, le=constants.PROGRESS_MAX, description="Percent done")
    verified: int = Field(default=0, ge=0, le=1, description="1 once a reviewer has verified the task")
    collaborators: list[str] = Field(default_factory=list, description="Full names of collaborators, in join order")
    pending: bool = Field(default=False, description="Local progress change is in flight")
    failed: bool = Field(default=False, description="Local progress change failed")

    @field_validator("description", mode="before")
    @classmethod
    def default_missing_description(cls, v: object) -> object:
        """Null descriptions become empty strings."""
        return "" if v is None else v

    @field_validator("due_date", mode="before")
    @classmethod
    def truncate_timestamp(cls, v: object) -> object:
        """Some routes return the due date as a full ISO timestamp."""
        if isinstance(v, str) and len(v) > len("YYYY-MM-DD"):
            return v[: len("YYYY-MM-DD")]
        return v

    @field_validator("collaborators", mode="before")
    @classmethod
    def default_missing_collaborators(cls, v: object) -> object:
        """Null collaborator lists become empty lists."""
        return [] if v is None else v

    @field_validator("verified", mode="before")
    @classmethod
    def coerce_verified(cls, v: object) -> object:
        """Accept booleans and nulls for the verified flag."""
        if v is None:
            return 0
        if isinstance(v, bool):
            return int(v)
        return v

    @model_validator(mode="after")
    def verified_only_when_complete(self) -> "Task":
        """A task only counts as verified while it sits at 100%."""
        if self.verified and self.progress != constants.PROGRESS_MAX:
            self.verified = 0
        return self

    @property
    def is_verified(self) -> bool:
        """Whether a reviewer has verified the task."""
        return self.verified == 1
