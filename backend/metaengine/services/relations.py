"""
Relation resolver — candidate targets and labels for relation attributes.

A relation attribute stores the integer id of a record of its target
entity. This module turns ids back into something a person can read:

  1. If the target entity declares a display attribute, its value.
  2. Otherwise the first column (storage order) whose value is text,
     skipping id / created_at / state_key.
  3. Otherwise "(ID:<id>)".

A target whose record table does not exist yet simply has no options.
That is the only "empty instead of error" case: other storage failures
propagate as StorageError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Table, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from metaengine.core.errors import StorageError
from metaengine.core.identifiers import RESERVED_COLUMNS
from metaengine.models.attribute import Attribute
from metaengine.models.entity import Entity
from metaengine.services.schema_compiler import reflect_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RelationOption:
    """One selectable target record."""

    id: int
    label: str


def fallback_label(record_id: Any) -> str:
    return f"(ID:{record_id})"


def derive_label(row: Mapping[str, Any], display_key: str | None = None) -> str:
    """Human-readable label for one raw target row."""
    if display_key is not None:
        value = row.get(display_key)
        if isinstance(value, str) and value:
            return value
        return fallback_label(row["id"])

    for column, value in row.items():
        if column in RESERVED_COLUMNS:
            continue
        if isinstance(value, str):
            return value or fallback_label(row["id"])
    return fallback_label(row["id"])


async def target_entity(session: AsyncSession, attribute: Attribute) -> Entity | None:
    """Entity a relation attribute points at, or None if it has no target."""
    if not attribute.is_relation or attribute.related_entity_id is None:
        return None
    return await session.get(Entity, attribute.related_entity_id)


async def _target_table(
    session: AsyncSession,
    attribute: Attribute,
) -> tuple[Entity, Table] | None:
    entity = await target_entity(session, attribute)
    if entity is None:
        return None
    table = await reflect_table(session, entity.table_name)
    if table is None:
        # Target not provisioned yet: no records to offer.
        return None
    return entity, table


async def resolve_options(
    session: AsyncSession,
    attribute: Attribute,
) -> list[RelationOption]:
    """All records of the target entity as (id, label), in id order."""
    target = await _target_table(session, attribute)
    if target is None:
        return []
    entity, table = target

    try:
        rows = (await session.execute(select(table).order_by(table.c.id))).mappings().all()
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read {table.name}") from exc

    return [
        RelationOption(id=row["id"], label=derive_label(row, entity.display_attribute_key))
        for row in rows
    ]


async def resolve_label(
    session: AsyncSession,
    attribute: Attribute,
    foreign_id: Any,
) -> str | None:
    """Label for a stored relation value; None if the value is unset."""
    if foreign_id is None:
        return None
    labels = await resolve_labels(session, attribute, [foreign_id])
    return labels[foreign_id]


def _as_id(value: Any) -> int | None:
    """Stored relation value as an int id; '7' and 7.0 count as 7."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else None


async def resolve_labels(
    session: AsyncSession,
    attribute: Attribute,
    foreign_ids: Iterable[Any],
) -> dict[Any, str]:
    """
    Labels for many stored values of one attribute, in one query.

    Keyed by the values as given. A value that is not an id gets the
    fallback label.
    """
    given = {foreign_id for foreign_id in foreign_ids if foreign_id is not None}
    labels = {foreign_id: fallback_label(foreign_id) for foreign_id in given}
    ids = {foreign_id: _as_id(foreign_id) for foreign_id in given}
    wanted = {record_id for record_id in ids.values() if record_id is not None}
    if not wanted:
        return labels

    target = await _target_table(session, attribute)
    if target is None:
        return labels
    entity, table = target

    try:
        rows = (
            await session.execute(select(table).where(table.c.id.in_(wanted)))
        ).mappings().all()
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read {table.name}") from exc

    found = {
        row["id"]: derive_label(row, entity.display_attribute_key) for row in rows
    }
    for foreign_id, record_id in ids.items():
        if record_id in found:
            labels[foreign_id] = found[record_id]
    return labels


async def record_exists(session: AsyncSession, entity: Entity, record_id: int) -> bool:
    """True if `entity` has a record with this id."""
    table = await reflect_table(session, entity.table_name)
    if table is None:
        return False
    try:
        found = await session.scalar(select(table.c.id).where(table.c.id == record_id))
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read {table.name}") from exc
    return found is not None
