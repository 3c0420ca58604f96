"""
Workflow engine — state machine of process entities.

States are the entity's WorkflowState rows. Which moves are legal is
decided by a TransitionPolicy. The only policy shipped is AnyToAnyPolicy
("anyToAny"): every state can move to every other state, and a record
with no state yet can move to any state. A constrained graph can be
plugged in later through the same interface.

The engine validates; the write itself goes through records.update_state.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from metaengine.core.errors import ValidationError
from metaengine.models.entity import Entity
from metaengine.models.workflow_state import WorkflowState
from metaengine.services.records import Record, get_record, update_state

logger = logging.getLogger(__name__)


class TransitionPolicy(Protocol):
    """Decides whether a record may move from one state to another."""

    name: str

    def allows(self, current_state_key: str | None, target_state_key: str) -> bool:
        ...


class AnyToAnyPolicy:
    """Fully connected graph: any state → any other state."""

    name = "anyToAny"

    def allows(self, current_state_key: str | None, target_state_key: str) -> bool:
        return target_state_key != current_state_key


ANY_TO_ANY = AnyToAnyPolicy()


def _require_process(entity: Entity) -> None:
    if not entity.is_process:
        raise ValidationError(f"{entity.name} is not a process entity")


def initial_state(entity: Entity) -> str | None:
    """Key of the initial state, or None if no initial state is defined."""
    if not entity.is_process:
        return None
    state = entity.initial_state
    return state.state_key if state is not None else None


def available_transitions(
    entity: Entity,
    current_state_key: str | None,
    policy: TransitionPolicy = ANY_TO_ANY,
) -> list[WorkflowState]:
    """States a record in `current_state_key` may move to, in creation order."""
    _require_process(entity)
    return [
        state
        for state in entity.states
        if policy.allows(current_state_key, state.state_key)
    ]


async def apply_transition(
    session: AsyncSession,
    entity: Entity,
    record_id: int,
    target_state_key: str,
    policy: TransitionPolicy = ANY_TO_ANY,
) -> Record:
    """
    Move one record to `target_state_key` and return it updated.

    Raises ValidationError for a non-process entity, a target that is not
    one of the entity's states, or a move the policy forbids.
    Raises NotFoundError if the record does not exist.
    """
    _require_process(entity)
    if entity.state_by_key(target_state_key) is None:
        raise ValidationError(
            f"{target_state_key!r} is not a state of {entity.name}"
        )

    record = await get_record(session, entity, record_id)
    if not policy.allows(record.state_key, target_state_key):
        raise ValidationError(
            f"{entity.name} record {record_id} cannot move from "
            f"{record.state_key!r} to {target_state_key!r} ({policy.name})"
        )

    await update_state(session, entity, record_id, target_state_key)
    logger.info(
        "Transition %s #%s: %s → %s",
        entity.slug,
        record_id,
        record.state_key,
        target_state_key,
    )
    return await get_record(session, entity, record_id)
