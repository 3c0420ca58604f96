"""
Dev bootstrap script — seed a demo project for local development.

Usage:
    python -m scripts.bootstrap_dev

This will:
  1. Create the metamodel tables if they are missing
  2. Create project "Payroll" with a plain "Employee" entity
  3. Create a process entity "Invoice" (Draft → Paid) that relates
     to Employee, and provision both record tables
  4. Store one employee and one invoice

Run it against an empty database; it stops if "Payroll" already exists.
"""

import asyncio
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from metaengine.core.config import settings
from metaengine.core.database import Base, build_engine, build_session_factory
from metaengine.core.errors import ValidationError
from metaengine.models.project import Project  # noqa: F401  (populates Base.metadata)
from metaengine.services import metamodel, records, schema_compiler


async def main() -> None:
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        # ── Metamodel ───────────────────────────────────────
        try:
            project = await metamodel.create_project(session, "Payroll")
        except ValidationError as exc:
            print(f"  Skipped: {exc}")
            await engine.dispose()
            return

        employee = await metamodel.create_entity(session, project.id, "Employee")
        await metamodel.create_attribute(
            session, employee.id, "Full Name", "text", required=True,
        )
        await metamodel.create_attribute(session, employee.id, "Salary", "number")
        await metamodel.set_display_attribute(session, employee.id, "full_name")

        invoice = await metamodel.create_entity(
            session, project.id, "Invoice", is_process=True,
        )
        await metamodel.create_attribute(session, invoice.id, "Amount", "number")
        await metamodel.create_attribute(session, invoice.id, "Due Date", "date")
        await metamodel.create_attribute(
            session, invoice.id, "Owner", "relation", related_entity_id=employee.id,
        )
        await metamodel.create_workflow_state(session, invoice.id, "Draft", is_initial=True)
        await metamodel.create_workflow_state(session, invoice.id, "Paid")

        # ── Storage ─────────────────────────────────────────
        await schema_compiler.compile_entity(session, employee)
        await schema_compiler.compile_entity(session, invoice)

        jane = await records.insert(
            session, employee, {"full_name": "Jane Doe", "salary": 5200},
        )
        invoice_id = await records.insert(
            session,
            invoice,
            {"amount": 199.9, "due_date": "2026-11-01", "owner": jane},
        )

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  Project:   {project.name} ({project.slug})")
    print(f"  Entities:  /run/{employee.slug}, /run/{invoice.slug}")
    print(f"  Records:   employee #{jane}, invoice #{invoice_id} (draft)")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
