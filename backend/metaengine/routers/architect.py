"""
Architect router — metamodel editing.

Each endpoint is one single-purpose mutation (or read) of the metamodel
store. Engine errors are mapped to HTTP by the handlers in main.py:
NotFound → 404, ValidationError → 422, SchemaDrift → 409.

Endpoints:
  GET    /architect/projects
  POST   /architect/projects
  DELETE /architect/projects/{project_id}
  POST   /architect/projects/{project_id}/entities
  DELETE /architect/entities/{entity_id}
  PUT    /architect/entities/{entity_id}/display-attribute
  GET    /architect/entities/{entity_id}/drift
  POST   /architect/entities/{entity_id}/migrate
  POST   /architect/entities/{entity_id}/attributes
  PATCH  /architect/attributes/{attribute_id}
  DELETE /architect/attributes/{attribute_id}
  POST   /architect/entities/{entity_id}/states
  DELETE /architect/states/{state_id}
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from metaengine.core.database import get_db_session
from metaengine.models.attribute import Attribute
from metaengine.models.entity import Entity
from metaengine.models.project import Project
from metaengine.models.workflow_state import WorkflowState
from metaengine.schemas.metamodel import (
    AttributeCreate,
    AttributeOut,
    AttributeUpdate,
    DisplayAttributeUpdate,
    EntityCreate,
    EntityOut,
    MigrationOut,
    ProjectCreate,
    ProjectOut,
    TableShapeOut,
    WorkflowStateCreate,
    WorkflowStateOut,
)
from metaengine.services import metamodel, schema_compiler

router = APIRouter(tags=["Architect"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


# ── Projects ────────────────────────────────────────────────
@router.get(
    "/projects",
    response_model=list[ProjectOut],
    summary="All projects with their entity definitions",
)
async def list_projects(session: DbSession) -> list[Project]:
    return await metamodel.list_projects(session)


@router.post(
    "/projects",
    response_model=ProjectOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
)
async def create_project(payload: ProjectCreate, session: DbSession) -> Project:
    return await metamodel.create_project(session, payload.name, payload.description)


@router.delete(
    "/projects/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project, its entities and their record tables",
)
async def delete_project(project_id: int, session: DbSession) -> Response:
    await metamodel.delete_project(session, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Entities ────────────────────────────────────────────────
@router.post(
    "/projects/{project_id}/entities",
    response_model=EntityOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an entity in a project",
)
async def create_entity(
    project_id: int,
    payload: EntityCreate,
    session: DbSession,
) -> Entity:
    return await metamodel.create_entity(
        session, project_id, payload.name, payload.is_process,
    )


@router.delete(
    "/entities/{entity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an entity, its definition and its record table",
)
async def delete_entity(entity_id: int, session: DbSession) -> Response:
    await metamodel.delete_entity(session, entity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/entities/{entity_id}/display-attribute",
    response_model=EntityOut,
    summary="Choose the text attribute that labels this entity's records",
)
async def set_display_attribute(
    entity_id: int,
    payload: DisplayAttributeUpdate,
    session: DbSession,
) -> Entity:
    return await metamodel.set_display_attribute(session, entity_id, payload.attribute_key)


@router.get(
    "/entities/{entity_id}/drift",
    response_model=TableShapeOut,
    summary="Compare the record table with the current attribute list",
)
async def inspect_drift(entity_id: int, session: DbSession) -> TableShapeOut:
    entity = await metamodel.get_entity(session, entity_id)
    shape = await schema_compiler.inspect_drift(session, entity)
    return TableShapeOut.model_validate(shape)


@router.post(
    "/entities/{entity_id}/migrate",
    response_model=MigrationOut,
    summary="Add record-table columns for attributes created after provisioning",
)
async def migrate_entity(entity_id: int, session: DbSession) -> MigrationOut:
    entity = await metamodel.get_entity(session, entity_id)
    added = await schema_compiler.migrate(session, entity)
    return MigrationOut(table_name=entity.table_name, added_columns=added)


# ── Attributes ──────────────────────────────────────────────
@router.post(
    "/entities/{entity_id}/attributes",
    response_model=AttributeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add an attribute to an entity",
)
async def create_attribute(
    entity_id: int,
    payload: AttributeCreate,
    session: DbSession,
) -> Attribute:
    return await metamodel.create_attribute(
        session,
        entity_id,
        payload.label,
        payload.type,
        related_entity_id=payload.related_entity_id,
        required=payload.required,
    )


@router.patch(
    "/attributes/{attribute_id}",
    response_model=AttributeOut,
    summary="Edit an attribute's label and type (its key never changes)",
)
async def update_attribute(
    attribute_id: int,
    payload: AttributeUpdate,
    session: DbSession,
) -> Attribute:
    return await metamodel.update_attribute(
        session,
        attribute_id,
        payload.label,
        payload.type,
        related_entity_id=payload.related_entity_id,
    )


@router.delete(
    "/attributes/{attribute_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an attribute (its column is kept)",
)
async def delete_attribute(attribute_id: int, session: DbSession) -> Response:
    await metamodel.delete_attribute(session, attribute_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Workflow states ─────────────────────────────────────────
@router.post(
    "/entities/{entity_id}/states",
    response_model=WorkflowStateOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add a workflow state to a process entity",
)
async def create_workflow_state(
    entity_id: int,
    payload: WorkflowStateCreate,
    session: DbSession,
) -> WorkflowState:
    return await metamodel.create_workflow_state(
        session, entity_id, payload.state_name, payload.is_initial,
    )


@router.delete(
    "/states/{state_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a workflow state no record is in",
)
async def delete_workflow_state(state_id: int, session: DbSession) -> Response:
    await metamodel.delete_workflow_state(session, state_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
