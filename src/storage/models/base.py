"""
Base classes for stored models.

Every persisted shape is a pydantic model. to_dict() produces the exact
document written to MongoDB (ids under their stored key, datetimes left as
datetime objects for BSON); from_dict() reads one back and turns pydantic
failures into the storage ValidationError.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from src.common.error_handling import ValidationError

M = TypeVar("M", bound="StoredModel")


def new_id() -> str:
    """Generate an opaque entity identifier."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware current time, used for every stamp written by the engine."""
    return datetime.now(timezone.utc)


class StoredModel(BaseModel):
    """Common pydantic configuration and document conversion."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        use_enum_values=True,
        validate_assignment=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for MongoDB storage."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls: Type[M], data: Dict[str, Any]) -> M:
        """
        Create from dictionary (MongoDB document or caller input).

        Raises:
            ValidationError: If the data does not fit the model
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"invalid {cls.__name__}: {e}") from e


class Document(StoredModel):
    """A top-level document. The id is stored as _id."""

    id: str = Field(default_factory=new_id, alias="_id")
    date_created: Optional[datetime] = None
    date_updated: Optional[datetime] = None


class EmbeddedItem(StoredModel):
    """An element of a parent's embedded array, keyed by a plain id field."""

    id: str = Field(default_factory=new_id)
    date_created: Optional[datetime] = None
    date_updated: Optional[datetime] = None
