"""
Attribute model — one typed field of an entity.

key is the storage column name, derived from the label once at creation
and unique within the entity. Editing an attribute changes its label and
type only; the column it maps to stays the same.

related_entity_id is set only for type "relation". It is nulled by the
database if the target entity is deleted, leaving a relation without a
target (the resolver then offers no options).
"""

from typing import Literal, get_args

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column

from metaengine.core.database import Base

AttributeType = Literal["text", "number", "date", "boolean", "relation"]
ATTRIBUTE_TYPES: tuple[str, ...] = get_args(AttributeType)


class Attribute(Base):
    """One field definition; maps to one column of the record table."""

    __tablename__ = "attributes"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    entity_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key: Mapped[str] = mapped_column(String(63), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    related_entity_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("entities.id", ondelete="SET NULL"),
        nullable=True,
    )
    required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    display_order: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0",
    )

    __table_args__ = (
        UniqueConstraint("entity_id", "key", name="uq_attributes_entity_key"),
        CheckConstraint(
            "type IN ('text', 'number', 'date', 'boolean', 'relation')",
            name="ck_attributes_type_valid",
        ),
    )

    @property
    def is_relation(self) -> bool:
        return self.type == "relation"

    def __repr__(self) -> str:
        return f"<Attribute id={self.id} key={self.key!r} type={self.type}>"
