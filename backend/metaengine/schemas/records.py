"""
Pydantic v2 schemas for the per-entity record endpoints.

Field values travel as a plain JSON object keyed by attribute key.
Dates may be sent as ISO strings; the data access layer validates
every value against the attribute type.
"""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RecordCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    values: dict[str, Any] = Field(
        default_factory=dict,
        examples=[{"full_name": "Jane Doe"}],
    )


class RecordCreated(BaseModel):
    id: int


class RecordOut(BaseModel):
    """
    One stored record.

    values holds raw stored values (relation values are ids);
    labels maps each relation key to the resolved display label.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime.datetime | None
    state_key: str | None
    values: dict[str, Any]
    labels: dict[str, str | None] = Field(default_factory=dict)


class TransitionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_state_key: str = Field(..., min_length=1, examples=["paid"])


class TransitionOptionsOut(BaseModel):
    policy: str
    current_state_key: str | None
    available: list[str]


class RelationOptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    label: str
