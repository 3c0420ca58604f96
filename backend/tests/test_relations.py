"""
Tests for the relation resolver: label derivation, options listing and
the write-time integrity check on relation values.
"""

import datetime

import pytest
import pytest_asyncio

from metaengine.core.errors import ValidationError
from metaengine.services import metamodel, records, relations, schema_compiler


@pytest_asyncio.fixture()
async def owner(session, employee, invoice):
    """Invoice.owner → Employee, with the invoice table migrated."""
    attribute = await metamodel.create_attribute(
        session, invoice.id, "Owner", "relation", related_entity_id=employee.id,
    )
    await schema_compiler.migrate(session, invoice)
    return attribute


class TestDeriveLabel:

    def test_first_text_column(self):
        row = {"id": 7, "created_at": datetime.datetime(2026, 1, 1), "name": "Acme"}
        assert relations.derive_label(row) == "Acme"

    def test_no_text_column(self):
        row = {"id": 7, "amount": 12.5, "active": 1}
        assert relations.derive_label(row) == "(ID:7)"

    def test_skips_reserved_and_non_text_columns(self):
        row = {"id": 3, "state_key": "draft", "amount": 4.0, "code": "INV-3"}
        assert relations.derive_label(row) == "INV-3"

    def test_empty_text_falls_back(self):
        assert relations.derive_label({"id": 9, "name": ""}) == "(ID:9)"

    def test_declared_display_key(self):
        row = {"id": 2, "name": "Acme Ltd", "short": "Acme"}
        assert relations.derive_label(row, "short") == "Acme"
        assert relations.derive_label({"id": 2, "short": None}, "short") == "(ID:2)"


class TestResolveOptions:

    async def test_options_in_id_order(self, session, employee, owner):
        jane = await records.insert(session, employee, {"full_name": "Jane"})
        john = await records.insert(session, employee, {"full_name": "John"})

        options = await relations.resolve_options(session, owner)

        assert options == [
            relations.RelationOption(id=jane, label="Jane"),
            relations.RelationOption(id=john, label="John"),
        ]

    async def test_declared_display_attribute_wins(self, session, employee, owner):
        await metamodel.create_attribute(session, employee.id, "Nickname", "text")
        await schema_compiler.migrate(session, employee)
        await metamodel.set_display_attribute(session, employee.id, "nickname")
        record_id = await records.insert(
            session, employee, {"full_name": "Jane Doe", "nickname": "JD"},
        )

        options = await relations.resolve_options(session, owner)

        assert options == [relations.RelationOption(id=record_id, label="JD")]

    async def test_unprovisioned_target_has_no_options(self, session, payroll, invoice):
        vendor = await metamodel.create_entity(session, payroll.id, "Vendor")
        attribute = await metamodel.create_attribute(
            session, invoice.id, "Vendor", "relation", related_entity_id=vendor.id,
        )

        assert await relations.resolve_options(session, attribute) == []
        assert await relations.resolve_label(session, attribute, 3) == "(ID:3)"

    async def test_non_relation_attribute(self, session, invoice):
        amount = invoice.attribute_by_key("amount")
        assert await relations.resolve_options(session, amount) == []


class TestResolveLabel:

    async def test_label_of_stored_value(self, session, employee, invoice, owner):
        jane = await records.insert(session, employee, {"full_name": "Jane"})
        invoice_id = await records.insert(session, invoice, {"amount": 10, "owner": jane})

        record = await records.get_record(session, invoice, invoice_id)
        assert record.values["owner"] == jane
        assert await relations.resolve_label(session, owner, jane) == "Jane"

    async def test_unset_value(self, session, owner):
        assert await relations.resolve_label(session, owner, None) is None

    async def test_dangling_reference_falls_back(self, session, employee, invoice, owner):
        jane = await records.insert(session, employee, {"full_name": "Jane"})
        await records.insert(session, invoice, {"owner": jane})
        await records.delete_record(session, employee, jane)

        assert await relations.resolve_label(session, owner, jane) == f"(ID:{jane})"

    async def test_batch_labels(self, session, employee, owner):
        jane = await records.insert(session, employee, {"full_name": "Jane"})
        labels = await relations.resolve_labels(session, owner, [jane, 999, None])
        assert labels == {jane: "Jane", 999: "(ID:999)"}

    async def test_ids_stored_as_text_or_float(self, session, employee, owner):
        jane = await records.insert(session, employee, {"full_name": "Jane"})

        labels = await relations.resolve_labels(
            session, owner, [str(jane), float(jane), "not-an-id"],
        )

        assert labels[str(jane)] == "Jane"
        assert labels[float(jane)] == "Jane"
        assert labels["not-an-id"] == "(ID:not-an-id)"
        assert await relations.resolve_label(session, owner, str(jane)) == "Jane"


class TestWriteIntegrity:

    async def test_missing_target_record_rejected(self, session, invoice, owner):
        with pytest.raises(ValidationError, match="does not exist"):
            await records.insert(session, invoice, {"owner": 12345})

    async def test_relation_value_must_be_an_id(self, session, invoice, owner):
        with pytest.raises(ValidationError):
            await records.insert(session, invoice, {"owner": "Jane"})

    async def test_relation_without_target_rejected(self, session, employee, invoice, owner):
        jane = await records.insert(session, employee, {"full_name": "Jane"})
        await metamodel.delete_entity(session, employee.id)
        invoice = await metamodel.get_definition(session, "invoice")

        with pytest.raises(ValidationError, match="no target"):
            await records.insert(session, invoice, {"owner": jane})
