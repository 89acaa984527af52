"""Team member and session actor models."""

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class UserRole(StrEnum):
    """Team roles known to the permission policy."""

    REVIEWER = "Reviewer"
    DEVELOPER = "Developer"
    DESIGNER = "Designer"


class PresenceStatus(StrEnum):
    """Presence shown next to a team member."""

    ONLINE = "Online"
    AWAY = "Away"
    OFFLINE = "Offline"


class TeamMember(BaseModel):
    """Team member data transfer object."""

    id: int = Field(..., description="Unique user ID")
    name: str = Field(..., description="Full name")
    role: str = Field(default=UserRole.DEVELOPER, description="Team role")
    avatar: str = Field(default="", description="Avatar URL, empty when unset")
    status: PresenceStatus = Field(default=PresenceStatus.ONLINE, description="Presence")

    @field_validator("avatar", mode="before")
    @classmethod
    def default_missing_avatar(cls, v: object) -> object:
        """Null avatars become empty strings."""
        return "" if v is None else v


class Actor(BaseModel):
    """The user driving the current session."""

    username: str = Field(..., description="Login name")
    full_name: str = Field(..., description="Display name, used as author and assignee key")
    role: str = Field(default=UserRole.DEVELOPER, description="Team role")

    @property
    def is_reviewer(self) -> bool:
        """Whether the actor holds the reviewer role."""
        return self.role == UserRole.REVIEWER
