"""Relative timestamp rendering for discussion and message lists."""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator

from threadflow.core.config import constants


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps from the Remote Store as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


def format_relative(value: datetime, *, now: datetime | None = None) -> str:
    """Render a timestamp as 'just now', 'N minutes ago', 'N hours ago' or 'N days ago'."""
    elapsed = int((as_utc(now or utc_now()) - as_utc(value)).total_seconds())

    if elapsed < constants.SECONDS_PER_MINUTE:
        return "just now"
    if elapsed < constants.SECONDS_PER_HOUR:
        minutes = elapsed // constants.SECONDS_PER_MINUTE
        return f"{minutes} {'minute' if minutes == 1 else 'minutes'} ago"
    if elapsed < constants.SECONDS_PER_DAY:
        hours = elapsed // constants.SECONDS_PER_HOUR
        return f"{hours} {'hour' if hours == 1 else 'hours'} ago"
    days = elapsed // constants.SECONDS_PER_DAY
    return f"{days} {'day' if days == 1 else 'days'} ago"
