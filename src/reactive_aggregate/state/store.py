"""Per-publication state owned by the snapshot differ."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionState(BaseModel):
    """Identity map and iteration counter for one publication.

    ``ids`` maps every identity published by the latest successful recompute
    to the iteration that last saw it. ``iteration`` is pre-incremented by
    each recompute, so the first one stamps ``1``.
    """

    model_config = ConfigDict(extra="forbid")

    ids: dict[Any, int] = Field(default_factory=dict)
    iteration: int = 0
    extras_published: bool = False

    @property
    def published_ids(self) -> set[Any]:
        return set(self.ids)
