"""
Metamodel store — projects, entities, attributes and workflow states.

Every mutation is single-purpose and commits on its own. All checks run
before the first write, so a rejected call leaves nothing behind.

CASCADES:
  project → entities → attributes, workflow states (ORM delete-orphan,
  mirrored by ON DELETE CASCADE in the schema). Deleting an entity also
  drops its record table and unlinks relation attributes of other
  entities that pointed at it.

Only attribute label/type can be edited; everything else is create or
delete. Keys and slugs never change after creation because the physical
table and column names derive from them.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from metaengine.core import identifiers
from metaengine.core.errors import NotFoundError, StorageError, ValidationError
from metaengine.models.attribute import ATTRIBUTE_TYPES, Attribute
from metaengine.models.entity import Entity
from metaengine.models.project import Project
from metaengine.models.workflow_state import WorkflowState
from metaengine.services import records
from metaengine.services.schema_compiler import drop_record_table

logger = logging.getLogger(__name__)


async def _commit(session: AsyncSession, action: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Metamodel write failed: %s", action)
        raise StorageError(f"Could not {action}") from exc


def _require_label(value: str | None, what: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{what} is required")
    return value.strip()


# ── Lookups ─────────────────────────────────────────────────
async def get_project(session: AsyncSession, project_id: int) -> Project:
    project = await session.get(Project, project_id, populate_existing=True)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    return project


async def get_entity(session: AsyncSession, entity_id: int) -> Entity:
    entity = await session.get(Entity, entity_id, populate_existing=True)
    if entity is None:
        raise NotFoundError(f"Entity {entity_id} not found")
    return entity


async def get_attribute(session: AsyncSession, attribute_id: int) -> Attribute:
    attribute = await session.get(Attribute, attribute_id, populate_existing=True)
    if attribute is None:
        raise NotFoundError(f"Attribute {attribute_id} not found")
    return attribute


async def get_workflow_state(session: AsyncSession, state_id: int) -> WorkflowState:
    state = await session.get(WorkflowState, state_id, populate_existing=True)
    if state is None:
        raise NotFoundError(f"Workflow state {state_id} not found")
    return state


async def get_definition(session: AsyncSession, entity_slug: str) -> Entity:
    """
    Entity with its attributes and workflow states, looked up by slug.

    Raises NotFoundError for an unknown slug.
    """
    stmt = (
        select(Entity)
        .where(Entity.slug == entity_slug)
        .execution_options(populate_existing=True)
    )
    entity = (await session.execute(stmt)).scalar_one_or_none()
    if entity is None:
        raise NotFoundError(f"Entity {entity_slug!r} not found")
    return entity


async def list_projects(session: AsyncSession) -> list[Project]:
    """All projects, newest first, with their entities loaded."""
    stmt = (
        select(Project)
        .order_by(Project.id.desc())
        .execution_options(populate_existing=True)
    )
    return list((await session.execute(stmt)).scalars().all())


# ── Projects ────────────────────────────────────────────────
async def create_project(
    session: AsyncSession,
    name: str,
    description: str | None = None,
) -> Project:
    name = _require_label(name, "Project name")
    slug = identifiers.project_slug(name)
    taken = await session.scalar(select(Project.id).where(Project.slug == slug))
    if taken is not None:
        raise ValidationError(f"A project with slug {slug!r} already exists")

    project = Project(name=name, slug=slug, description=description, entities=[])
    session.add(project)
    await _commit(session, "create project")
    logger.info("Created project %s (#%s)", slug, project.id)
    return project


async def delete_project(session: AsyncSession, project_id: int) -> None:
    project = await get_project(session, project_id)
    entity_count = len(project.entities)
    for entity in project.entities:
        await _unlink_entity(session, entity)
    await session.delete(project)
    await _commit(session, "delete project")
    logger.info("Deleted project %s with %d entities", project.slug, entity_count)


# ── Entities ────────────────────────────────────────────────
async def create_entity(
    session: AsyncSession,
    project_id: int,
    name: str,
    is_process: bool = False,
) -> Entity:
    project = await get_project(session, project_id)
    name = _require_label(name, "Entity name")
    slug = identifiers.entity_slug(name)
    table_name = identifiers.record_table_name(slug)
    # Stored slugs may still carry hyphens; compare physical names.
    for existing in (await session.scalars(select(Entity.slug))).all():
        if identifiers.record_table_name(existing) == table_name:
            raise ValidationError(
                f"An entity with slug {slug!r} already exists "
                f"(record table {table_name})"
            )

    entity = Entity(
        name=name,
        slug=slug,
        is_process=is_process,
        attributes=[],
        states=[],
    )
    project.entities.insert(0, entity)
    await _commit(session, "create entity")
    logger.info(
        "Created %s entity %s (#%s) in %s",
        "process" if is_process else "data",
        slug,
        entity.id,
        project.slug,
    )
    return entity


async def _unlink_entity(session: AsyncSession, entity: Entity) -> None:
    """Drop the record table and detach relations targeting `entity`."""
    await drop_record_table(session, entity.table_name)
    await session.execute(
        update(Attribute)
        .where(Attribute.related_entity_id == entity.id)
        .values(related_entity_id=None)
    )


async def delete_entity(session: AsyncSession, entity_id: int) -> None:
    entity = await get_entity(session, entity_id)
    project = await get_project(session, entity.project_id)
    await _unlink_entity(session, entity)
    project.entities.remove(entity)
    await _commit(session, "delete entity")
    logger.info("Deleted entity %s (#%s)", entity.slug, entity_id)


async def set_display_attribute(
    session: AsyncSession,
    entity_id: int,
    attribute_key: str | None,
) -> Entity:
    """Declare which text attribute labels this entity's records."""
    entity = await get_entity(session, entity_id)
    if attribute_key is not None:
        attribute = entity.attribute_by_key(attribute_key)
        if attribute is None:
            raise ValidationError(f"{entity.name} has no attribute {attribute_key!r}")
        if attribute.type != "text":
            raise ValidationError("Only text attributes can label records")
    entity.display_attribute_key = attribute_key
    await _commit(session, "set display attribute")
    return entity


# ── Attributes ──────────────────────────────────────────────
async def _validate_relation_target(
    session: AsyncSession,
    entity_id: int,
    attribute_type: str,
    related_entity_id: int | None,
) -> int | None:
    if attribute_type not in ATTRIBUTE_TYPES:
        raise ValidationError(
            f"Unknown attribute type {attribute_type!r} "
            f"(expected one of: {', '.join(ATTRIBUTE_TYPES)})"
        )
    if attribute_type != "relation":
        if related_entity_id is not None:
            raise ValidationError("Only relation attributes take a related entity")
        return None

    if related_entity_id is None:
        raise ValidationError("A relation attribute needs a related entity")
    if related_entity_id == entity_id:
        raise ValidationError("An entity cannot relate to itself")
    if await session.get(Entity, related_entity_id) is None:
        raise ValidationError(f"Related entity {related_entity_id} does not exist")
    return related_entity_id


async def create_attribute(
    session: AsyncSession,
    entity_id: int,
    label: str,
    attribute_type: str,
    related_entity_id: int | None = None,
    required: bool = False,
) -> Attribute:
    entity = await get_entity(session, entity_id)
    label = _require_label(label, "Attribute label")
    key = identifiers.attribute_key(label)
    if entity.attribute_by_key(key) is not None:
        raise ValidationError(f"{entity.name} already has an attribute with key {key!r}")
    related_entity_id = await _validate_relation_target(
        session, entity.id, attribute_type, related_entity_id,
    )

    attribute = Attribute(
        key=key,
        label=label,
        type=attribute_type,
        related_entity_id=related_entity_id,
        required=required,
        display_order=max((a.display_order for a in entity.attributes), default=-1) + 1,
    )
    entity.attributes.append(attribute)
    await _commit(session, "create attribute")
    logger.info("Added %s attribute %s.%s", attribute_type, entity.slug, key)
    return attribute


async def update_attribute(
    session: AsyncSession,
    attribute_id: int,
    label: str,
    attribute_type: str,
    related_entity_id: int | None = None,
) -> Attribute:
    """
    Change the label and type of an attribute.

    The key (and so the column) stays. A relation keeps its current target
    unless a new one is given.
    """
    attribute = await get_attribute(session, attribute_id)
    entity = await get_entity(session, attribute.entity_id)
    label = _require_label(label, "Attribute label")
    if attribute_type == "relation" and related_entity_id is None:
        related_entity_id = attribute.related_entity_id
    related_entity_id = await _validate_relation_target(
        session, entity.id, attribute_type, related_entity_id,
    )

    attribute.label = label
    attribute.type = attribute_type
    attribute.related_entity_id = related_entity_id
    if entity.display_attribute_key == attribute.key and attribute_type != "text":
        entity.display_attribute_key = None
    await _commit(session, "update attribute")
    logger.info("Updated attribute %s.%s (%s)", entity.slug, attribute.key, attribute_type)
    return attribute


async def delete_attribute(session: AsyncSession, attribute_id: int) -> None:
    """Remove an attribute. Its column stays in the record table."""
    attribute = await get_attribute(session, attribute_id)
    entity = await get_entity(session, attribute.entity_id)
    if entity.display_attribute_key == attribute.key:
        entity.display_attribute_key = None
    entity.attributes.remove(attribute)
    await _commit(session, "delete attribute")
    logger.info("Deleted attribute %s.%s", entity.slug, attribute.key)


# ── Workflow states ─────────────────────────────────────────
async def create_workflow_state(
    session: AsyncSession,
    entity_id: int,
    state_name: str,
    is_initial: bool = False,
) -> WorkflowState:
    entity = await get_entity(session, entity_id)
    if not entity.is_process:
        raise ValidationError(f"{entity.name} is not a process entity")
    state_name = _require_label(state_name, "State name")
    key = identifiers.state_key(state_name)
    if entity.state_by_key(key) is not None:
        raise ValidationError(f"{entity.name} already has a state {key!r}")
    if is_initial and entity.initial_state is not None:
        raise ValidationError(
            f"{entity.name} already has an initial state "
            f"({entity.initial_state.state_key!r})"
        )

    state = WorkflowState(state_name=state_name, state_key=key, is_initial=is_initial)
    entity.states.append(state)
    await _commit(session, "create workflow state")
    logger.info(
        "Added state %s.%s%s", entity.slug, key, " (initial)" if is_initial else "",
    )
    return state


async def delete_workflow_state(session: AsyncSession, state_id: int) -> None:
    """Remove a state no record currently sits in."""
    state = await get_workflow_state(session, state_id)
    entity = await get_entity(session, state.entity_id)
    in_use = await records.count_in_state(session, entity, state.state_key)
    if in_use:
        raise ValidationError(
            f"{in_use} {entity.name} record(s) are in state {state.state_key!r}"
        )
    entity.states.remove(state)
    await _commit(session, "delete workflow state")
    logger.info("Deleted state %s.%s", entity.slug, state.state_key)
