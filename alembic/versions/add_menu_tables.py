"""add roles, users, daily menus, items and selections

Revision ID: add_menu_tables
Revises:
Create Date: 2025-05-27
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "add_menu_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CATEGORY = sa.Enum("CLASICA", "EXPRESS", "VEGGIE", "ESPECIAL", name="menucategory", native_enum=False, length=32)


def upgrade() -> None:
    from sqlalchemy import inspect

    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=64), nullable=False),
            sa.UniqueConstraint("name", name="uq_roles_name"),
        )
        op.bulk_insert(
            sa.table("roles", sa.column("id", sa.Integer), sa.column("name", sa.String)),
            [{"id": 1, "name": "Admin"}, {"id": 2, "name": "User"}, {"id": 3, "name": "Viewer"}],
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("username", sa.String(length=64), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("email_address", sa.String(length=255), nullable=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id"), nullable=False),
            sa.UniqueConstraint("username", name="uq_users_username"),
        )

    if "daily_menus" not in existing_tables:
        op.create_table(
            "daily_menus",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("menu_date", sa.Date(), nullable=False),
            sa.UniqueConstraint("menu_date", name="uq_daily_menus_menu_date"),
        )

    if "daily_menu_items" not in existing_tables:
        op.create_table(
            "daily_menu_items",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=512), nullable=False),
            sa.Column("category", CATEGORY, nullable=False),
            sa.Column(
                "daily_menu_id",
                sa.Integer(),
                sa.ForeignKey("daily_menus.id", ondelete="CASCADE"),
                nullable=False,
            ),
        )
        op.create_index("idx_daily_menu_items_menu", "daily_menu_items", ["daily_menu_id"])

    if "user_menu_selections" not in existing_tables:
        op.create_table(
            "user_menu_selections",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("daily_menu_id", sa.Integer(), sa.ForeignKey("daily_menus.id"), nullable=False),
            sa.Column("selected_category", CATEGORY, nullable=False),
            sa.Column(
                "selected_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.text("CURRENT_TIMESTAMP"),
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("observation", sa.Text(), nullable=True),
        )
        op.create_index("idx_user_menu_selections_user", "user_menu_selections", ["user_id"])
        op.create_index("idx_user_menu_selections_menu", "user_menu_selections", ["daily_menu_id"])


def downgrade() -> None:
    op.drop_index("idx_user_menu_selections_menu", table_name="user_menu_selections")
    op.drop_index("idx_user_menu_selections_user", table_name="user_menu_selections")
    op.drop_table("user_menu_selections")
    op.drop_index("idx_daily_menu_items_menu", table_name="daily_menu_items")
    op.drop_table("daily_menu_items")
    op.drop_table("daily_menus")
    op.drop_table("users")
    op.drop_table("roles")
