"""create roles, users, audit and access control tables

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-18 09:12:41.204117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create roles, users, audit_events, modules, tabs, module_grants and tab_grants."""
    # Check if tables already exist (idempotent)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(128), nullable=False, unique=True),
            sa.Column("abbreviation", sa.String(16), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        )

    if "modules" not in existing_tables:
        op.create_table(
            "modules",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(50), nullable=False, unique=True),
            sa.Column("icon", sa.String(50), nullable=False),
            sa.Column("route", sa.String(255), nullable=False, unique=True),
            sa.Column("is_parent", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("parent_id", sa.Integer(), sa.ForeignKey("modules.id", ondelete="SET NULL"), nullable=True),
            sa.Column("extra_permissions", sa.Text(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_modules_parent_id", "modules", ["parent_id"])

    if "tabs" not in existing_tables:
        op.create_table(
            "tabs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("module_id", sa.Integer(), sa.ForeignKey("modules.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(50), nullable=False),
            sa.Column("route", sa.String(255), nullable=False),
            sa.Column("extra_permissions", sa.Text(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("module_id", "name", name="uq_tabs_module_name"),
            sa.UniqueConstraint("module_id", "route", name="uq_tabs_module_route"),
        )

    if "module_grants" not in existing_tables:
        op.create_table(
            "module_grants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
            sa.Column("module_id", sa.Integer(), sa.ForeignKey("modules.id", ondelete="CASCADE"), nullable=False),
            sa.Column("permissions", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("role_id", "module_id", name="uq_module_grants_role_module"),
        )
        op.create_index("idx_module_grants_module_id", "module_grants", ["module_id"])

    if "tab_grants" not in existing_tables:
        op.create_table(
            "tab_grants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
            sa.Column("tab_id", sa.Integer(), sa.ForeignKey("tabs.id", ondelete="CASCADE"), nullable=False),
            sa.Column("permissions", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("role_id", "tab_id", name="uq_tab_grants_role_tab"),
        )
        op.create_index("idx_tab_grants_tab_id", "tab_grants", ["tab_id"])


def downgrade() -> None:
    """Drop access control tables (reverse order)."""
    op.drop_index("idx_tab_grants_tab_id", table_name="tab_grants")
    op.drop_table("tab_grants")
    op.drop_index("idx_module_grants_module_id", table_name="module_grants")
    op.drop_table("module_grants")
    op.drop_table("tabs")
    op.drop_index("idx_modules_parent_id", table_name="modules")
    op.drop_table("modules")
    op.drop_table("audit_events")
    op.drop_table("users")
    op.drop_table("roles")
