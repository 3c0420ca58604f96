"""
Project model — top-level namespace grouping a set of entities.

A project owns its entities; deleting it cascades to them (and, through
them, to attributes and workflow states). Record tables are dropped by
the metamodel service, not by the ORM.
"""

import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from metaengine.core.database import Base
from metaengine.models.entity import Entity


class Project(Base):
    """One namespace of user-defined entities."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    name: Mapped[str] = mapped_column(
        Text, nullable=False,
    )
    slug: Mapped[str] = mapped_column(
        String(63), nullable=False, unique=True,
    )
    description: Mapped[str | None] = mapped_column(
        Text, nullable=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Newest first, as listed in the architect overview
    entities: Mapped[list[Entity]] = relationship(
        Entity,
        order_by=Entity.id.desc(),
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} slug={self.slug!r}>"
