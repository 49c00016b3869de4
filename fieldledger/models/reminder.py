"""Reminder model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from fieldledger.models.base import Record


class ReminderType(str, Enum):
    FOLLOW_UP = "follow-up"
    MAINTENANCE = "maintenance"
    ANNUAL_CHECKUP = "annual-checkup"
    CUSTOM = "custom"


class Reminder(Record):
    """A dated follow-up tied to a job and its customer."""

    job_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    type: ReminderType = ReminderType.FOLLOW_UP
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    due_date: date
    completed: bool = False
    completed_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_completion(self) -> 'Reminder':
        if self.completed and self.completed_at is None:
            raise ValueError("A completed reminder needs a completion time")
        if not self.completed and self.completed_at is not None:
            raise ValueError("An open reminder cannot have a completion time")
        return self
