"""create metamodel tables

Revision ID: 0001
Revises: 
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.String(63), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "entities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.String(63), nullable=False),
        sa.Column("is_process", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("display_attribute_key", sa.String(63), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_entities_project_id", "entities", ["project_id"])

    op.create_table(
        "attributes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(63), nullable=False),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("related_entity_id", sa.Integer(), nullable=True),
        sa.Column("required", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("display_order", sa.Integer(), server_default="0", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["related_entity_id"], ["entities.id"], ondelete="SET NULL"
        ),
        sa.UniqueConstraint("entity_id", "key", name="uq_attributes_entity_key"),
        sa.CheckConstraint(
            "type IN ('text', 'number', 'date', 'boolean', 'relation')",
            name="ck_attributes_type_valid",
        ),
    )
    op.create_index("ix_attributes_entity_id", "attributes", ["entity_id"])

    op.create_table(
        "workflow_states",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("state_name", sa.Text(), nullable=False),
        sa.Column("state_key", sa.String(63), nullable=False),
        sa.Column("is_initial", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "entity_id", "state_key", name="uq_workflow_states_entity_key"
        ),
    )
    op.create_index("ix_workflow_states_entity_id", "workflow_states", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_workflow_states_entity_id", table_name="workflow_states")
    op.drop_table("workflow_states")
    op.drop_index("ix_attributes_entity_id", table_name="attributes")
    op.drop_table("attributes")
    op.drop_index("ix_entities_project_id", table_name="entities")
    op.drop_table("entities")
    op.drop_table("projects")
