"""
Base schemas and mixins for all models.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class CamelSchema(BaseSchema):
    """
    Base for schemas exchanged with suppliers.

    Fields are snake_case in Python and camelCase on the wire.
    Either spelling is accepted on input.
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True
    )

    def to_wire(self) -> dict:
        """Dump as camelCase JSON-compatible dict."""
        return self.model_dump(mode="json", by_alias=True)


class TimestampMixin(BaseModel):
    """Add timestamps to response models."""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(CamelSchema):
    """Offset pagination block returned by list endpoints."""
    page_index: int
    page_size: int
    total_count: int
    total_pages: int

    @classmethod
    def create(cls, total_count: int, page_index: int, page_size: int) -> "Pagination":
        """Create pagination block from a count."""
        total_pages = (total_count + page_size - 1) // page_size  # Ceiling division
        return cls(
            page_index=page_index,
            page_size=page_size,
            total_count=total_count,
            total_pages=total_pages
        )
