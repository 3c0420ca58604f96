"""
Runner router — records of one entity, addressed by slug.

GET /run/{slug} compiles the record table (creating it on first access),
so a client that loads the definition before working with records never
hits an unprovisioned table. Record endpoints do not compile; they fail
with 409 if the table is missing or has drifted.

Endpoints:
  GET    /run/{slug}                              — definition
  GET    /run/{slug}/records                      — newest first + labels
  POST   /run/{slug}/records                      — insert
  DELETE /run/{slug}/records/{record_id}          — idempotent delete
  GET    /run/{slug}/records/{record_id}/transitions
  POST   /run/{slug}/records/{record_id}/transition
  GET    /run/{slug}/relations/{attribute_key}/options
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from metaengine.core.config import Settings, get_settings
from metaengine.core.database import get_db_session
from metaengine.core.errors import NotFoundError, ValidationError
from metaengine.models.entity import Entity
from metaengine.schemas.metamodel import EntityOut
from metaengine.schemas.records import (
    RecordCreate,
    RecordCreated,
    RecordOut,
    RelationOptionOut,
    TransitionOptionsOut,
    TransitionRequest,
)
from metaengine.services import metamodel, records, relations, schema_compiler, workflow
from metaengine.services.records import Record
from metaengine.services.relations import RelationOption

router = APIRouter(tags=["Runner"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_settings)]


async def _with_labels(
    session: AsyncSession,
    entity: Entity,
    rows: list[Record],
) -> list[RecordOut]:
    """Attach relation labels to raw records (one query per relation)."""
    labels: dict[int, dict[str, str | None]] = {row.id: {} for row in rows}
    for attribute in entity.attributes:
        if not attribute.is_relation:
            continue
        resolved = await relations.resolve_labels(
            session, attribute, (row.values.get(attribute.key) for row in rows),
        )
        for row in rows:
            foreign_id = row.values.get(attribute.key)
            labels[row.id][attribute.key] = (
                resolved.get(foreign_id) if foreign_id is not None else None
            )

    return [
        RecordOut(
            id=row.id,
            created_at=row.created_at,
            state_key=row.state_key,
            values=row.values,
            labels=labels[row.id],
        )
        for row in rows
    ]


# ── Definition ──────────────────────────────────────────────
@router.get(
    "/{slug}",
    response_model=EntityOut,
    summary="Entity definition; provisions its record table",
)
async def get_definition(slug: str, session: DbSession, settings: AppSettings) -> Entity:
    entity = await metamodel.get_definition(session, slug)
    await schema_compiler.compile_entity(
        session, entity, auto_migrate=settings.AUTO_MIGRATE_SCHEMA,
    )
    return entity


# ── Records ─────────────────────────────────────────────────
@router.get(
    "/{slug}/records",
    response_model=list[RecordOut],
    summary="All records, newest first, with relation labels",
)
async def list_records(slug: str, session: DbSession) -> list[RecordOut]:
    entity = await metamodel.get_definition(session, slug)
    rows = await records.list_records(session, entity)
    return await _with_labels(session, entity, rows)


@router.post(
    "/{slug}/records",
    response_model=RecordCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Insert a record",
)
async def insert_record(
    slug: str,
    payload: RecordCreate,
    session: DbSession,
) -> RecordCreated:
    entity = await metamodel.get_definition(session, slug)
    record_id = await records.insert(session, entity, payload.values)
    return RecordCreated(id=record_id)


@router.delete(
    "/{slug}/records/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a record (no error if already gone)",
)
async def delete_record(slug: str, record_id: int, session: DbSession) -> Response:
    entity = await metamodel.get_definition(session, slug)
    await records.delete_record(session, entity, record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Workflow ────────────────────────────────────────────────
@router.get(
    "/{slug}/records/{record_id}/transitions",
    response_model=TransitionOptionsOut,
    summary="States the record can move to",
)
async def list_transitions(
    slug: str,
    record_id: int,
    session: DbSession,
) -> TransitionOptionsOut:
    entity = await metamodel.get_definition(session, slug)
    record = await records.get_record(session, entity, record_id)
    available = workflow.available_transitions(entity, record.state_key)
    return TransitionOptionsOut(
        policy=workflow.ANY_TO_ANY.name,
        current_state_key=record.state_key,
        available=[state.state_key for state in available],
    )


@router.post(
    "/{slug}/records/{record_id}/transition",
    response_model=RecordOut,
    summary="Move the record to another workflow state",
)
async def transition_record(
    slug: str,
    record_id: int,
    payload: TransitionRequest,
    session: DbSession,
) -> RecordOut:
    entity = await metamodel.get_definition(session, slug)
    record = await workflow.apply_transition(
        session, entity, record_id, payload.target_state_key,
    )
    return (await _with_labels(session, entity, [record]))[0]


# ── Relations ───────────────────────────────────────────────
@router.get(
    "/{slug}/relations/{attribute_key}/options",
    response_model=list[RelationOptionOut],
    summary="Candidate target records for a relation attribute",
)
async def relation_options(
    slug: str,
    attribute_key: str,
    session: DbSession,
) -> list[RelationOption]:
    entity = await metamodel.get_definition(session, slug)
    attribute = entity.attribute_by_key(attribute_key)
    if attribute is None:
        raise NotFoundError(f"{entity.name} has no attribute {attribute_key!r}")
    if not attribute.is_relation:
        raise ValidationError(f"{attribute.label!r} is not a relation")
    return await relations.resolve_options(session, attribute)
