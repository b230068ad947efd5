"""
Base model for records kept in the persistent store.
"""

from typing import Any, Dict
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class StoredModel(BaseModel):
    """A record with a stable id and an optimistic-concurrency version."""
    id: UUID = Field(default_factory=uuid4)
    version: int = 0

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump()
