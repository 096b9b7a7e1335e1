"""
Base Pydantic models with common configurations.

Datetime fields are serialized as ISO-8601 with an explicit UTC offset so
clients never have to guess the timezone of ``updated_at`` values.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import BaseModel, PlainSerializer


def serialize_datetime_utc(dt: Optional[datetime]) -> Optional[str]:
    """
    Serialize datetime to ISO format with UTC timezone.

    Naive datetimes are assumed to be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


UTCDatetime = Annotated[datetime, PlainSerializer(serialize_datetime_utc, return_type=str)]


class APIBaseModel(BaseModel):
    """Base model for API payloads (ORM conversion enabled)."""

    model_config = {
        "from_attributes": True,
    }
