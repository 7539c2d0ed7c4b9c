"""custom field definitions and values

Revision ID: 0001_custom_fields
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision = "0001_custom_fields"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "custom_field_definitions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("section", sa.String(length=80), nullable=False),
        sa.Column("label", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("placeholder", sa.String(length=200), nullable=True),
        sa.Column("field_type", sa.String(length=30), nullable=False, server_default="text"),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("default_value", sa.Text(), nullable=True),
        sa.Column("validation", sa.Text(), nullable=True),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(op.f("ix_custom_field_definitions_section"), "custom_field_definitions", ["section"], unique=False)

    op.create_table(
        "custom_field_values",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("field_definition_id", sa.Integer(), sa.ForeignKey("custom_field_definitions.id"), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "field_definition_id",
            "entity_type",
            "entity_id",
            name="uq_custom_field_values_field_entity",
        ),
    )
    op.create_index(op.f("ix_custom_field_values_field_definition_id"), "custom_field_values", ["field_definition_id"], unique=False)
    op.create_index(op.f("ix_custom_field_values_entity_type"), "custom_field_values", ["entity_type"], unique=False)
    op.create_index(op.f("ix_custom_field_values_entity_id"), "custom_field_values", ["entity_id"], unique=False)

    op.alter_column("custom_field_definitions", "field_type", server_default=None)
    op.alter_column("custom_field_definitions", "is_required", server_default=None)
    op.alter_column("custom_field_definitions", "is_active", server_default=None)
    op.alter_column("custom_field_definitions", "display_order", server_default=None)


def downgrade() -> None:
    op.drop_index(op.f("ix_custom_field_values_entity_id"), table_name="custom_field_values")
    op.drop_index(op.f("ix_custom_field_values_entity_type"), table_name="custom_field_values")
    op.drop_index(op.f("ix_custom_field_values_field_definition_id"), table_name="custom_field_values")
    op.drop_table("custom_field_values")
    op.drop_index(op.f("ix_custom_field_definitions_section"), table_name="custom_field_definitions")
    op.drop_table("custom_field_definitions")
