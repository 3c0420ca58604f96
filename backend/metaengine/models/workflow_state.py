"""
WorkflowState model — one named status of a process entity.

At most one state per entity is initial. This is checked by the
metamodel service before insert, since a partial unique index is not
portable across the supported engines.
"""

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column

from metaengine.core.database import Base


class WorkflowState(Base):
    """A state records of a process entity can be in."""

    __tablename__ = "workflow_states"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    entity_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    state_name: Mapped[str] = mapped_column(Text, nullable=False)
    state_key: Mapped[str] = mapped_column(String(63), nullable=False)
    is_initial: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    __table_args__ = (
        UniqueConstraint("entity_id", "state_key", name="uq_workflow_states_entity_key"),
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowState id={self.id} key={self.state_key!r} "
            f"initial={self.is_initial}>"
        )
