"""Shared schema building blocks."""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

# IANA-style label ("Europe/London", "America/Argentina/Buenos_Aires", "UTC").
TIMEZONE_PATTERN = r"^[A-Za-z]+(?:[/_+\-][A-Za-z0-9]+)*$"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are read as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDatetime = Annotated[datetime, AfterValidator(as_utc)]
TimezoneLabel = Annotated[str, Field(max_length=64, pattern=TIMEZONE_PATTERN)]


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
