"""flags, environments, api keys and webhooks

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.create_table(
        "flags",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("description", sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_flags_name", "flags", ["name"], unique=True)

    op.create_table(
        "environments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_environments_name", "environments", ["name"], unique=True)
    op.create_index("ix_environments_sort_order", "environments", ["sort_order"], unique=False)

    op.create_table(
        "environment_values",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("flag_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("environment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("value", sa.String(length=255), nullable=True),
        sa.Column("start_datetime", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_datetime", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["flag_id"], ["flags.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["environment_id"], ["environments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("flag_id", "environment_id", name="uq_environment_values_flag_environment"),
    )
    op.create_index("ix_environment_values_flag_id", "environment_values", ["flag_id"], unique=False)
    op.create_index("ix_environment_values_environment_id", "environment_values", ["environment_id"], unique=False)

    op.create_table(
        "api_keys",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("description", name="uq_api_keys_description"),
    )
    op.create_index("ix_api_keys_token", "api_keys", ["token"], unique=True)

    op.create_table(
        "api_key_environments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("api_key_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("environment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["api_key_id"], ["api_keys.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["environment_id"], ["environments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("api_key_id", "environment_id", name="uq_api_key_environments_pair"),
    )
    op.create_index("ix_api_key_environments_api_key_id", "api_key_environments", ["api_key_id"], unique=False)
    op.create_index("ix_api_key_environments_environment_id", "api_key_environments", ["environment_id"], unique=False)

    op.create_table(
        "webhooks",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "headers",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("payload_template", sa.Text(), nullable=True),
        sa.Column(
            "event_types",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("include_environment_changes", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_webhooks_name", "webhooks", ["name"], unique=True)
    op.create_index("ix_webhooks_is_active", "webhooks", ["is_active"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_webhooks_is_active", table_name="webhooks")
    op.drop_index("ix_webhooks_name", table_name="webhooks")
    op.drop_table("webhooks")

    op.drop_index("ix_api_key_environments_environment_id", table_name="api_key_environments")
    op.drop_index("ix_api_key_environments_api_key_id", table_name="api_key_environments")
    op.drop_table("api_key_environments")

    op.drop_index("ix_api_keys_token", table_name="api_keys")
    op.drop_table("api_keys")

    op.drop_index("ix_environment_values_environment_id", table_name="environment_values")
    op.drop_index("ix_environment_values_flag_id", table_name="environment_values")
    op.drop_table("environment_values")

    op.drop_index("ix_environments_sort_order", table_name="environments")
    op.drop_index("ix_environments_name", table_name="environments")
    op.drop_table("environments")

    op.drop_index("ix_flags_name", table_name="flags")
    op.drop_table("flags")
