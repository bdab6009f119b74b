from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FindOrCreateStatus(BaseModel):
    """Outcome of a find-or-create call: the document plus what happened to it."""

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        frozen=True,
    )

    result: Any = None
    was_updated: bool = Field(default=False, alias="wasUpdated")
    is_new: bool = Field(default=False, alias="isNew")
