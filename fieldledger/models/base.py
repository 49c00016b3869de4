"""
Record Base Model

Every persisted entity carries an opaque string id and ISO-8601
created/updated timestamps. Records serialize with camelCase keys
(`createdAt`, `customerId`, ...) which is the on-disk and export shape;
Python code uses the snake_case attribute names.
"""

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Create a new opaque record id."""
    return str(uuid4())


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class LedgerModel(BaseModel):
    """Shared configuration for every ledger model."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class Record(LedgerModel):
    """A persisted, id-addressed record."""

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Opaque unique identifier"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was first written"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last update timestamp"
    )

    def revised(self, **changes) -> "Record":
        """
        Return a validated copy with `changes` applied and updated_at bumped.

        model_copy(update=...) skips validation, so the copy is rebuilt
        through model_validate to keep field constraints enforced.
        """
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        return type(self).model_validate(data)
