"""add notification_state table

Revision ID: add_notification_state_table
Revises: add_menu_tables
Create Date: 2025-06-14
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "add_notification_state_table"
down_revision: Union[str, None] = "add_menu_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    from sqlalchemy import inspect

    conn = op.get_bind()
    if "notification_state" in inspect(conn).get_table_names():
        return

    op.create_table(
        "notification_state",
        sa.Column("notification_type", sa.String(length=32), primary_key=True, nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column(
            "fired_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )


def downgrade() -> None:
    op.drop_table("notification_state")
