"""
Data access layer — CRUD against the generated record tables.

Every call reflects the physical table first and refuses to run against
a table that was never compiled or that has drifted from the metadata
(TableNotProvisionedError / SchemaDriftError). Callers compile through
services.schema_compiler before the first read or write.

Values are validated and converted before anything is written:
  text     → str
  number   → int | float (stored as REAL)
  date     → datetime.date or ISO-8601 string (stored as ISO text)
  boolean  → bool (stored as 0/1)
  relation → int, must be the id of an existing target record

Reads convert back: REAL → float, 0/1 → bool, ISO text → datetime.date.
Relation values are returned as raw ids; labels are the resolver's job.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Table, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from metaengine.core.errors import NotFoundError, StorageError, ValidationError
from metaengine.models.attribute import Attribute
from metaengine.models.entity import Entity
from metaengine.services import relations
from metaengine.services.schema_compiler import load_record_table, reflect_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Record:
    """One stored instance of an entity."""

    id: int
    created_at: datetime.datetime | None
    state_key: str | None = None
    values: dict[str, Any] = field(default_factory=dict)


# ── Value conversion ────────────────────────────────────────
def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_storage(attribute: Attribute, value: Any) -> Any:
    """Validate one input value and convert it to its column form."""
    if value is None:
        return None

    kind = attribute.type
    if kind == "text":
        if not isinstance(value, str):
            raise ValidationError(f"{attribute.label!r} must be text")
        return value

    if kind == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{attribute.label!r} must be a number")
        return float(value)

    if kind == "date":
        if isinstance(value, datetime.datetime):
            return value.date().isoformat()
        if isinstance(value, datetime.date):
            return value.isoformat()
        if isinstance(value, str):
            try:
                return datetime.date.fromisoformat(value).isoformat()
            except ValueError as exc:
                raise ValidationError(
                    f"{attribute.label!r} must be an ISO date (YYYY-MM-DD)"
                ) from exc
        raise ValidationError(f"{attribute.label!r} must be a date")

    if kind == "boolean":
        if not isinstance(value, bool):
            raise ValidationError(f"{attribute.label!r} must be true or false")
        return int(value)

    # relation
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{attribute.label!r} must be a record id")
    return value


def _from_storage(attribute: Attribute | None, value: Any) -> Any:
    """
    Convert a column value back to the attribute's current type.

    An attribute whose type was edited keeps its original column, and the
    column's affinity can hand values back as text ('5.0', '1') or as a
    float. Values that do not parse as the new type are returned as stored.
    """
    if value is None or attribute is None:
        return value

    kind = attribute.type
    if kind == "number":
        if isinstance(value, bool):
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            return value

    if kind in ("relation", "boolean"):
        number = value
        if isinstance(value, str):
            try:
                number = float(value)
            except ValueError:
                return value
        if isinstance(number, float):
            if not number.is_integer():
                return value
            number = int(number)
        if not isinstance(number, int):
            return value
        return bool(number) if kind == "boolean" else number

    if kind == "date" and isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value)
        except ValueError:
            return value
    return value


def _to_record(entity: Entity, row: Mapping[str, Any]) -> Record:
    values = {
        attribute.key: _from_storage(attribute, row.get(attribute.key))
        for attribute in entity.attributes
    }
    return Record(
        id=row["id"],
        created_at=row.get("created_at"),
        state_key=row.get("state_key"),
        values=values,
    )


async def _check_relation(
    session: AsyncSession,
    attribute: Attribute,
    record_id: int,
) -> None:
    target = await relations.target_entity(session, attribute)
    if target is None:
        raise ValidationError(f"{attribute.label!r} has no target entity")
    if not await relations.record_exists(session, target, record_id):
        raise ValidationError(
            f"{attribute.label!r}: {target.name} record {record_id} does not exist"
        )


async def _prepare_row(
    session: AsyncSession,
    entity: Entity,
    field_values: Mapping[str, Any],
) -> dict[str, Any]:
    known = {attribute.key for attribute in entity.attributes}
    unknown = sorted(set(field_values) - known)
    if unknown:
        raise ValidationError(
            f"Unknown fields for {entity.name}: {', '.join(unknown)}"
        )

    row: dict[str, Any] = {}
    for attribute in entity.attributes:
        value = field_values.get(attribute.key)
        if _is_missing(value):
            if attribute.required:
                raise ValidationError(f"{attribute.label!r} is required")
            if attribute.type != "text":
                value = None
        stored = _to_storage(attribute, value)
        if attribute.is_relation and stored is not None:
            await _check_relation(session, attribute, stored)
        row[attribute.key] = stored
    return row


# ── Operations ──────────────────────────────────────────────
async def insert(
    session: AsyncSession,
    entity: Entity,
    field_values: Mapping[str, Any],
) -> int:
    """
    Store one record and return its id.

    Process entities start in their initial state. Without an initial
    state the record is still created, with an empty state_key, and
    cannot be advanced until a state machine is defined.
    """
    table = await load_record_table(session, entity)
    row = await _prepare_row(session, entity, field_values)

    if entity.is_process:
        initial = entity.initial_state
        if initial is None:
            logger.warning(
                "%s has no initial state; record created without a state",
                entity.slug,
            )
        row["state_key"] = initial.state_key if initial is not None else None

    try:
        result = await session.execute(table.insert().values(**row))
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Failed to insert into %s", table.name)
        raise StorageError(f"Could not store the {entity.name} record") from exc

    record_id = result.inserted_primary_key[0]
    logger.info("Inserted %s #%s", entity.slug, record_id)
    return record_id


async def list_records(session: AsyncSession, entity: Entity) -> list[Record]:
    """All records of `entity`, newest first."""
    table = await load_record_table(session, entity)
    try:
        rows = (
            await session.execute(select(table).order_by(table.c.id.desc()))
        ).mappings().all()
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read {table.name}") from exc
    return [_to_record(entity, row) for row in rows]


async def get_record(session: AsyncSession, entity: Entity, record_id: int) -> Record:
    """One record by id; NotFoundError if absent."""
    table = await load_record_table(session, entity)
    try:
        row = (
            await session.execute(select(table).where(table.c.id == record_id))
        ).mappings().one_or_none()
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read {table.name}") from exc
    if row is None:
        raise NotFoundError(f"{entity.name} record {record_id} not found")
    return _to_record(entity, row)


async def delete_record(session: AsyncSession, entity: Entity, record_id: int) -> bool:
    """
    Delete one record by id.

    Idempotent: deleting an absent record is not an error. Returns
    whether a row was actually removed.
    """
    table = await load_record_table(session, entity)
    try:
        result = await session.execute(delete(table).where(table.c.id == record_id))
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError(f"Could not delete from {table.name}") from exc

    deleted = result.rowcount > 0
    if deleted:
        logger.info("Deleted %s #%s", entity.slug, record_id)
    return deleted


async def update_state(
    session: AsyncSession,
    entity: Entity,
    record_id: int,
    new_state_key: str,
) -> None:
    """
    Rewrite the status column of one record.

    No state-machine check happens here; services.workflow validates
    the transition and then calls this.
    """
    if not entity.is_process:
        raise ValidationError(f"{entity.name} is not a process entity")
    table = await load_record_table(session, entity)
    try:
        result = await session.execute(
            update(table).where(table.c.id == record_id).values(state_key=new_state_key)
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError(f"Could not update {table.name}") from exc

    if result.rowcount == 0:
        raise NotFoundError(f"{entity.name} record {record_id} not found")
    logger.debug("%s #%s state_key=%s", entity.slug, record_id, new_state_key)


async def count_in_state(session: AsyncSession, entity: Entity, state_key: str) -> int:
    """Number of records currently in `state_key`; 0 if nothing is stored."""
    table: Table | None = await reflect_table(session, entity.table_name)
    if table is None or "state_key" not in table.c:
        return 0
    try:
        return await session.scalar(
            select(func.count()).select_from(table).where(table.c.state_key == state_key)
        )
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not read {table.name}") from exc
