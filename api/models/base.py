# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and document mapping.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class DocumentModel(BaseModel):
    """Model stored as (part of) a camelCase MongoDB document."""

    model_config = ConfigDict(
        # Documents are camelCase, Python attributes snake_case
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        # Defaults go through validation so enum defaults are stored as values
        validate_default=True,
        arbitrary_types_allowed=True
    )


class BaseEntity(DocumentModel):
    """Base entity with common fields for all persisted records."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    created_by: Optional[str] = Field(None, description="User ID who created this entity")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a MongoDB document keyed by ``_id``."""
        document = self.model_dump(by_alias=True, exclude={"id"})
        document["_id"] = ObjectId(self.id)
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Build an entity from a stored document (``_id`` or ``id``)."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation for API responses."""
        return self.model_dump(mode="json", by_alias=True)
