"""
Tests for the metamodel store: creation rules, validation before write,
and the project → entity → attribute/state cascade.
"""

import pytest
from sqlalchemy import func, select

from metaengine.core.errors import NotFoundError, ValidationError
from metaengine.models.attribute import Attribute
from metaengine.models.entity import Entity
from metaengine.models.workflow_state import WorkflowState
from metaengine.services import metamodel, records, schema_compiler


async def _count(session, model, **criteria) -> int:
    stmt = select(func.count()).select_from(model).filter_by(**criteria)
    return await session.scalar(stmt)


class TestProjects:

    async def test_create_project_derives_slug(self, session):
        project = await metamodel.create_project(session, "Human Resources", "HR stuff")
        assert project.slug == "human-resources"
        assert project.description == "HR stuff"
        assert project.entities == []

    async def test_duplicate_project_slug_rejected(self, session, payroll):
        with pytest.raises(ValidationError):
            await metamodel.create_project(session, "payroll")

    async def test_empty_name_rejected(self, session):
        with pytest.raises(ValidationError):
            await metamodel.create_project(session, "  ")

    async def test_list_projects_newest_first(self, session, payroll):
        other = await metamodel.create_project(session, "Sales")
        projects = await metamodel.list_projects(session)
        assert [p.id for p in projects] == [other.id, payroll.id]

    async def test_delete_project_cascades(self, session, payroll, employee, invoice):
        await metamodel.delete_project(session, payroll.id)

        assert await _count(session, Entity) == 0
        assert await _count(session, Attribute) == 0
        assert await _count(session, WorkflowState) == 0
        assert not await schema_compiler.table_exists(session, "data_employee")
        assert not await schema_compiler.table_exists(session, "data_invoice")

    async def test_delete_missing_project(self, session):
        with pytest.raises(NotFoundError):
            await metamodel.delete_project(session, 999)


class TestEntities:

    async def test_create_entity(self, session, payroll):
        entity = await metamodel.create_entity(session, payroll.id, "Purchase Order", is_process=True)
        assert entity.slug == "purchase_order"
        assert entity.is_process is True
        assert entity.table_name == "data_purchase_order"

    async def test_unknown_project(self, session):
        with pytest.raises(NotFoundError):
            await metamodel.create_entity(session, 42, "Employee")

    async def test_slug_unique_across_projects(self, session, payroll, employee):
        other = await metamodel.create_project(session, "Sales")
        with pytest.raises(ValidationError):
            await metamodel.create_entity(session, other.id, "employee")

    async def test_hyphen_and_space_names_share_no_table(self, session, payroll):
        first = await metamodel.create_entity(session, payroll.id, "Foo-Bar")
        assert first.slug == "foo_bar"

        with pytest.raises(ValidationError, match="data_foo_bar"):
            await metamodel.create_entity(session, payroll.id, "Foo Bar")
        assert await _count(session, Entity) == 1

    async def test_stored_hyphen_slug_blocks_same_table(self, session, payroll):
        session.add(Entity(project_id=payroll.id, name="Legacy", slug="foo-bar"))
        await session.commit()

        with pytest.raises(ValidationError, match="data_foo_bar"):
            await metamodel.create_entity(session, payroll.id, "Foo Bar")

    async def test_get_definition(self, session, invoice):
        entity = await metamodel.get_definition(session, "invoice")
        assert [a.key for a in entity.attributes] == ["amount"]
        assert [s.state_key for s in entity.states] == ["draft", "paid"]

    async def test_get_definition_unknown_slug(self, session):
        with pytest.raises(NotFoundError):
            await metamodel.get_definition(session, "nope")

    async def test_delete_entity_cascades(self, session, invoice):
        entity_id = invoice.id
        await metamodel.delete_entity(session, entity_id)

        assert await _count(session, Attribute, entity_id=entity_id) == 0
        assert await _count(session, WorkflowState, entity_id=entity_id) == 0
        assert not await schema_compiler.table_exists(session, "data_invoice")
        with pytest.raises(NotFoundError):
            await metamodel.get_definition(session, "invoice")

    async def test_delete_relation_target_unlinks_relation(self, session, payroll, employee, invoice):
        owner = await metamodel.create_attribute(
            session, invoice.id, "Owner", "relation", related_entity_id=employee.id,
        )
        await metamodel.delete_entity(session, employee.id)

        refreshed = await metamodel.get_attribute(session, owner.id)
        assert refreshed.related_entity_id is None


class TestAttributes:

    async def test_key_and_order(self, session, employee):
        salary = await metamodel.create_attribute(session, employee.id, "Monthly Salary", "number")
        assert salary.key == "monthly_salary"
        assert salary.display_order == 1
        assert salary.required is False

    async def test_duplicate_key_rejected(self, session, employee):
        with pytest.raises(ValidationError, match="full_name"):
            await metamodel.create_attribute(session, employee.id, "full name", "text")

    async def test_unknown_type_rejected(self, session, employee):
        with pytest.raises(ValidationError):
            await metamodel.create_attribute(session, employee.id, "Photo", "blob")

    async def test_relation_needs_existing_target(self, session, employee):
        with pytest.raises(ValidationError):
            await metamodel.create_attribute(session, employee.id, "Manager", "relation")
        with pytest.raises(ValidationError):
            await metamodel.create_attribute(
                session, employee.id, "Manager", "relation", related_entity_id=999,
            )

    async def test_relation_to_self_rejected(self, session, employee):
        with pytest.raises(ValidationError, match="itself"):
            await metamodel.create_attribute(
                session, employee.id, "Manager", "relation", related_entity_id=employee.id,
            )

    async def test_target_only_for_relations(self, session, employee, invoice):
        with pytest.raises(ValidationError):
            await metamodel.create_attribute(
                session, employee.id, "Note", "text", related_entity_id=invoice.id,
            )

    async def test_rejected_attribute_not_stored(self, session, employee):
        with pytest.raises(ValidationError):
            await metamodel.create_attribute(session, employee.id, "Manager", "relation")
        assert await _count(session, Attribute, entity_id=employee.id) == 1

    async def test_update_keeps_key(self, session, employee):
        attribute = employee.attribute_by_key("full_name")
        updated = await metamodel.update_attribute(session, attribute.id, "Legal Name", "text")
        assert updated.label == "Legal Name"
        assert updated.key == "full_name"

    async def test_update_to_relation(self, session, employee, invoice):
        amount = invoice.attribute_by_key("amount")
        with pytest.raises(ValidationError):
            await metamodel.update_attribute(session, amount.id, "Amount", "relation")

        updated = await metamodel.update_attribute(
            session, amount.id, "Payee", "relation", related_entity_id=employee.id,
        )
        assert updated.related_entity_id == employee.id

        back = await metamodel.update_attribute(session, amount.id, "Amount", "number")
        assert back.related_entity_id is None

    async def test_delete_attribute_keeps_column(self, session, employee):
        salary = await metamodel.create_attribute(session, employee.id, "Salary", "number")
        await schema_compiler.migrate(session, employee)
        await metamodel.delete_attribute(session, salary.id)

        shape = await schema_compiler.inspect_drift(session, employee)
        assert "salary" in shape.columns
        assert shape.in_sync

    async def test_delete_missing_attribute(self, session):
        with pytest.raises(NotFoundError):
            await metamodel.delete_attribute(session, 31337)


class TestDisplayAttribute:

    async def test_set_and_clear(self, session, employee):
        entity = await metamodel.set_display_attribute(session, employee.id, "full_name")
        assert entity.display_attribute_key == "full_name"

        entity = await metamodel.set_display_attribute(session, employee.id, None)
        assert entity.display_attribute_key is None

    async def test_must_be_text_attribute(self, session, employee, invoice):
        with pytest.raises(ValidationError):
            await metamodel.set_display_attribute(session, employee.id, "salary")
        with pytest.raises(ValidationError):
            await metamodel.set_display_attribute(session, invoice.id, "amount")

    async def test_deleting_attribute_clears_declaration(self, session, employee):
        await metamodel.set_display_attribute(session, employee.id, "full_name")
        await metamodel.delete_attribute(session, employee.attribute_by_key("full_name").id)

        entity = await metamodel.get_entity(session, employee.id)
        assert entity.display_attribute_key is None


class TestWorkflowStates:

    async def test_states_in_creation_order(self, session, invoice):
        await metamodel.create_workflow_state(session, invoice.id, "Archived")
        entity = await metamodel.get_entity(session, invoice.id)
        assert [s.state_key for s in entity.states] == ["draft", "paid", "archived"]

    async def test_only_process_entities(self, session, employee):
        with pytest.raises(ValidationError, match="process"):
            await metamodel.create_workflow_state(session, employee.id, "Draft")

    async def test_single_initial_state(self, session, invoice):
        with pytest.raises(ValidationError, match="initial"):
            await metamodel.create_workflow_state(session, invoice.id, "New", is_initial=True)
        entity = await metamodel.get_entity(session, invoice.id)
        assert sum(s.is_initial for s in entity.states) == 1

    async def test_duplicate_state_key(self, session, invoice):
        with pytest.raises(ValidationError):
            await metamodel.create_workflow_state(session, invoice.id, "PAID")

    async def test_delete_unused_state(self, session, invoice):
        paid = invoice.state_by_key("paid")
        await metamodel.delete_workflow_state(session, paid.id)
        entity = await metamodel.get_entity(session, invoice.id)
        assert [s.state_key for s in entity.states] == ["draft"]

    async def test_delete_state_in_use_rejected(self, session, invoice):
        await records.insert(session, invoice, {"amount": 10})
        draft = invoice.state_by_key("draft")
        with pytest.raises(ValidationError, match="draft"):
            await metamodel.delete_workflow_state(session, draft.id)
