"""Customer model."""

from typing import Optional

from pydantic import Field, field_validator

from fieldledger.models.base import Record


class Customer(Record):
    """
    A customer of the business.

    Customers are archived, never hard-deleted, so their jobs and invoices
    always have an owner to point at.
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Customer or company name"
    )
    email: str = Field(default="", max_length=200)
    phone: str = Field(default="", max_length=20)
    address: str = Field(default="", max_length=200)
    notes: str = Field(default="", max_length=1000)
    tags: list[str] = Field(
        default_factory=list,
        description="Free-text tags, unique, in insertion order"
    )
    archived: bool = False

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        if v and ("@" not in v or v.startswith("@") or v.endswith("@")):
            raise ValueError(f"Invalid email: {v}")
        return v

    @field_validator('tags')
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        """Strip, drop empties and duplicates (case-insensitive)."""
        seen = set()
        tags = []
        for tag in v:
            tag = tag.strip()
            if tag and tag.lower() not in seen:
                seen.add(tag.lower())
                tags.append(tag)
        return tags

    def has_tag(self, tag: Optional[str]) -> bool:
        return bool(tag) and tag.strip().lower() in {t.lower() for t in self.tags}
