"""Operations produced by the snapshot differ.

The publication layer applies these to the subscription sink in order.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OperationKind(StrEnum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class SinkOperation(BaseModel):
    """One added/changed/removed call to make on the sink."""

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    collection: str = Field(..., description="Client-side collection name")
    id: Any = Field(..., description="Document identity (or subscription id for extras)")
    document: dict[str, Any] | None = Field(
        default=None,
        description="Full replacement document; None for removals",
    )

    @field_validator("collection")
    @classmethod
    def _non_empty_collection(cls, value: str) -> str:
        if not value:
            raise ValueError("collection must be non-empty")
        return value

    @property
    def is_removal(self) -> bool:
        return self.kind == OperationKind.REMOVED
