"""
Entity model — a user-defined business object type.

is_process selects between a plain data record and a workflow-bearing
record. The slug is the storage namespace key: the record table name is
derived from it (see core.identifiers.record_table_name), so it is unique
across all projects and never changes after creation.

display_attribute_key optionally names the text attribute used as the
human-readable label when another entity relates to this one.
"""

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from metaengine.core.database import Base
from metaengine.core.identifiers import record_table_name
from metaengine.models.attribute import Attribute
from metaengine.models.workflow_state import WorkflowState


class Entity(Base):
    """Definition of one record type and its workflow."""

    __tablename__ = "entities"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True,
    )
    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(
        String(63), nullable=False, unique=True,
    )
    is_process: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    display_attribute_key: Mapped[str | None] = mapped_column(
        String(63), nullable=True,
    )

    attributes: Mapped[list[Attribute]] = relationship(
        Attribute,
        foreign_keys=[Attribute.entity_id],
        order_by=[Attribute.display_order, Attribute.id],
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    # Creation order — display only, not transition legality
    states: Mapped[list[WorkflowState]] = relationship(
        WorkflowState,
        order_by=WorkflowState.id,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def table_name(self) -> str:
        return record_table_name(self.slug)

    @property
    def initial_state(self) -> WorkflowState | None:
        for state in self.states:
            if state.is_initial:
                return state
        return None

    def state_by_key(self, state_key: str) -> WorkflowState | None:
        for state in self.states:
            if state.state_key == state_key:
                return state
        return None

    def attribute_by_key(self, key: str) -> Attribute | None:
        for attribute in self.attributes:
            if attribute.key == key:
                return attribute
        return None

    def __repr__(self) -> str:
        return (
            f"<Entity id={self.id} slug={self.slug!r} "
            f"process={self.is_process}>"
        )
