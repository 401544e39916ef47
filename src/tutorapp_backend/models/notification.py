'''
The structured event handed to notification sinks.
'''
import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ..database.db_enums import NotificationKind


class NotificationEvent(BaseModel):
    kind: NotificationKind
    recipients: list[UUID] = Field(default_factory=list)
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime.datetime = Field(default_factory=datetime.datetime.now)
