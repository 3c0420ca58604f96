"""
Schema compiler — derives the physical record table of an entity.

Table shape:
  id          INTEGER  identity
  state_key   TEXT     process entities only
  created_at  DATETIME server-side timestamp
  <key>       one column per attribute:
                text/date → TEXT, number → REAL, boolean/relation → INTEGER

ADDITIVE ONLY:
  compile_entity() creates the table on first access and never drops or
  alters existing columns. Attributes added after the table exists are
  reported as drift; they get columns only through migrate() or when the
  caller opts into auto_migrate. Columns of deleted attributes stay.

CONCURRENCY:
  Creation uses CREATE TABLE IF NOT EXISTS, so two callers racing on the
  first compile cannot fail on the check-then-act window. The storage
  engine serializes the writers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import (
    INTEGER,
    REAL,
    TEXT,
    Column,
    DateTime,
    MetaData,
    Table,
    inspect,
)
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.schema import CreateTable, DropTable
from sqlalchemy.sql import func

from metaengine.core.errors import (
    SchemaDriftError,
    StorageError,
    TableNotProvisionedError,
)
from metaengine.models.attribute import Attribute
from metaengine.models.entity import Entity

logger = logging.getLogger(__name__)

# ── Attribute type → column type ────────────────────────────
COLUMN_TYPES = {
    "text": TEXT,
    "date": TEXT,  # ISO-8601 text
    "number": REAL,
    "boolean": INTEGER,  # 0 / 1
    "relation": INTEGER,  # id of a record of the target entity
}


@dataclass(frozen=True, slots=True)
class TableShape:
    """Physical state of a record table compared to its entity's metadata."""

    table_name: str
    exists: bool
    columns: tuple[str, ...]
    missing_columns: tuple[str, ...]

    @property
    def in_sync(self) -> bool:
        return self.exists and not self.missing_columns


# ── Declared shape ──────────────────────────────────────────
def _reserved_columns(entity: Entity) -> list[Column]:
    columns = [Column("id", INTEGER, primary_key=True, autoincrement=True)]
    if entity.is_process:
        columns.append(Column("state_key", TEXT, nullable=True))
    columns.append(
        Column("created_at", DateTime, nullable=False, server_default=func.now())
    )
    return columns


def attribute_column(attribute: Attribute) -> Column:
    """A fresh, unattached column for one attribute."""
    return Column(attribute.key, COLUMN_TYPES[attribute.type], nullable=True)


def expected_columns(entity: Entity) -> list[str]:
    """Column names the current metadata requires, in table order."""
    names = [column.name for column in _reserved_columns(entity)]
    names.extend(attribute.key for attribute in entity.attributes)
    return names


def build_table(entity: Entity) -> Table:
    """Declared record table, bound to a throwaway MetaData."""
    return Table(
        entity.table_name,
        MetaData(),
        *_reserved_columns(entity),
        *(attribute_column(attribute) for attribute in entity.attributes),
    )


# ── Physical inspection ─────────────────────────────────────
def _physical_columns(sync_conn: Connection, table_name: str) -> tuple[str, ...] | None:
    inspector = inspect(sync_conn)
    if not inspector.has_table(table_name):
        return None
    return tuple(column["name"] for column in inspector.get_columns(table_name))


def _shape(entity: Entity, physical: tuple[str, ...] | None) -> TableShape:
    if physical is None:
        return TableShape(
            table_name=entity.table_name,
            exists=False,
            columns=(),
            missing_columns=tuple(expected_columns(entity)),
        )
    present = set(physical)
    return TableShape(
        table_name=entity.table_name,
        exists=True,
        columns=physical,
        missing_columns=tuple(
            name for name in expected_columns(entity) if name not in present
        ),
    )


async def table_exists(session: AsyncSession, table_name: str) -> bool:
    """True if the physical table is present."""
    conn = await session.connection()
    return await conn.run_sync(lambda c: inspect(c).has_table(table_name))


async def inspect_drift(session: AsyncSession, entity: Entity) -> TableShape:
    """Compare the entity's metadata with its physical table. Read-only."""
    conn = await session.connection()
    physical = await conn.run_sync(_physical_columns, entity.table_name)
    return _shape(entity, physical)


# ── Compile / migrate ───────────────────────────────────────
def _add_columns(sync_conn: Connection, table_name: str, columns: list[Column]) -> None:
    operations = Operations(MigrationContext.configure(sync_conn))
    for column in columns:
        operations.add_column(table_name, column)


async def compile_entity(
    session: AsyncSession,
    entity: Entity,
    *,
    auto_migrate: bool = False,
) -> TableShape:
    """
    Guarantee the record table of `entity` exists.

    Idempotent: with an unchanged attribute set a second call changes
    nothing. If the table exists but lacks attribute columns, the drift is
    logged and returned (or repaired when auto_migrate is set); it is
    never silently ignored by the read/write paths, which raise
    SchemaDriftError on a drifted table.
    """
    conn = await session.connection()
    try:
        physical = await conn.run_sync(_physical_columns, entity.table_name)
        if physical is None:
            await conn.execute(CreateTable(build_table(entity), if_not_exists=True))
            await session.commit()
            logger.info(
                "Provisioned record table %s (%d attribute columns)",
                entity.table_name,
                len(entity.attributes),
            )
            conn = await session.connection()
            physical = await conn.run_sync(_physical_columns, entity.table_name)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError(f"Could not provision {entity.table_name}") from exc

    shape = _shape(entity, physical)
    if shape.missing_columns:
        if auto_migrate:
            await migrate(session, entity)
            return await inspect_drift(session, entity)
        logger.warning(
            "Schema drift on %s: missing %s",
            entity.table_name,
            ", ".join(shape.missing_columns),
        )
    return shape


async def migrate(session: AsyncSession, entity: Entity) -> list[str]:
    """
    Add the columns current metadata expects but the table lacks.

    Returns the names of the columns added. Existing columns are never
    altered or dropped. The table must already exist.
    """
    shape = await inspect_drift(session, entity)
    if not shape.exists:
        raise TableNotProvisionedError(entity.table_name, shape.missing_columns)
    if not shape.missing_columns:
        return []

    missing = set(shape.missing_columns)
    columns = [
        attribute_column(attribute)
        for attribute in entity.attributes
        if attribute.key in missing
    ]
    if "state_key" in missing:
        columns.insert(0, Column("state_key", TEXT, nullable=True))

    conn = await session.connection()
    try:
        await conn.run_sync(_add_columns, entity.table_name, columns)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError(f"Could not migrate {entity.table_name}") from exc

    added = [column.name for column in columns]
    logger.info("Migrated %s: added %s", entity.table_name, ", ".join(added))
    return added


async def load_record_table(session: AsyncSession, entity: Entity) -> Table:
    """
    Reflect the physical record table for a read or write.

    Raises TableNotProvisionedError if it was never compiled and
    SchemaDriftError if it lacks columns the metadata expects.
    """
    table = await reflect_table(session, entity.table_name)
    if table is None:
        raise TableNotProvisionedError(entity.table_name, expected_columns(entity))

    shape = _shape(entity, tuple(table.columns.keys()))
    if shape.missing_columns:
        raise SchemaDriftError(entity.table_name, shape.missing_columns)
    return table


async def reflect_table(session: AsyncSession, table_name: str) -> Table | None:
    """Reflect any record table as it physically is, or None if absent."""
    conn = await session.connection()

    def _reflect(sync_conn: Connection) -> Table | None:
        if not inspect(sync_conn).has_table(table_name):
            return None
        return Table(table_name, MetaData(), autoload_with=sync_conn)

    return await conn.run_sync(_reflect)


async def drop_record_table(session: AsyncSession, table_name: str) -> None:
    """
    Drop a record table if present. Does not commit.

    Called by the metamodel service inside the same transaction that
    deletes the owning entity.
    """
    conn = await session.connection()
    await conn.execute(DropTable(Table(table_name, MetaData()), if_exists=True))
    logger.info("Dropped record table %s", table_name)
