"""
Pydantic v2 schemas for the metamodel editing endpoints.

Separation:
  • *Create / *Update — what the CLIENT sends (names and labels only;
    slugs and keys are derived server-side and never accepted).
  • *Out — what the SERVER returns, read straight off the ORM objects.

extra="forbid" rejects unknown fields (e.g. a hand-picked slug) with 422.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from metaengine.models.attribute import AttributeType


# ── Request schemas ─────────────────────────────────────────
class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200, examples=["Payroll"])
    description: str | None = Field(default=None, max_length=2000)


class EntityCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=58, examples=["Employee"])
    is_process: bool = Field(
        default=False,
        description="Process entities carry a workflow state.",
    )


class AttributeCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = Field(..., min_length=1, max_length=200, examples=["Full Name"])
    type: AttributeType = Field(..., examples=["text"])
    related_entity_id: int | None = Field(
        default=None,
        description="Target entity; required for type 'relation' only.",
    )
    required: bool = False


class AttributeUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = Field(..., min_length=1, max_length=200)
    type: AttributeType
    related_entity_id: int | None = None


class WorkflowStateCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    state_name: str = Field(..., min_length=1, max_length=200, examples=["Draft"])
    is_initial: bool = False


class DisplayAttributeUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    attribute_key: str | None = Field(
        default=None,
        description="Text attribute used as record label; null clears it.",
    )


# ── Response schemas ────────────────────────────────────────
class AttributeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_id: int
    key: str
    label: str
    type: str
    related_entity_id: int | None
    required: bool
    display_order: int


class WorkflowStateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_id: int
    state_name: str
    state_key: str
    is_initial: bool


class EntityOut(BaseModel):
    """Entity with its full definition (attributes + states)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    name: str
    slug: str
    is_process: bool
    display_attribute_key: str | None
    table_name: str
    attributes: list[AttributeOut]
    states: list[WorkflowStateOut]


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    description: str | None
    entities: list[EntityOut]


class TableShapeOut(BaseModel):
    """Physical record table compared with current metadata."""

    model_config = ConfigDict(from_attributes=True)

    table_name: str
    exists: bool
    in_sync: bool
    columns: list[str]
    missing_columns: list[str]


class MigrationOut(BaseModel):
    table_name: str
    added_columns: list[str]
