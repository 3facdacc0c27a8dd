"""create_namespaces

Namespace registry table. ``version`` backs optimistic concurrency for
reclaim and rotation writes; ``expires`` and ``next_rotation`` are
indexed for the maintenance scans.

Revision ID: 3f6c2a9d1b07
Revises:
Create Date: 2026-10-18 09:12:44.218305

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f6c2a9d1b07"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the namespaces table."""
    op.create_table(
        "namespaces",
        sa.Column("namespace", sa.String(length=64), nullable=False),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires", sa.DateTime(timezone=True), nullable=False),
        sa.Column("contact", sa.Text(), nullable=False),
        sa.Column("rotation_state", sa.String(length=1), nullable=False),
        sa.Column("next_rotation", sa.DateTime(timezone=True), nullable=False),
        sa.Column("password", sa.String(length=255), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "rotation_state IN ('1', '2')",
            name="chk_namespaces_rotation_state",
        ),
        sa.PrimaryKeyConstraint("namespace"),
    )
    op.create_index(
        op.f("ix_namespaces_expires"), "namespaces", ["expires"], unique=False
    )
    op.create_index(
        op.f("ix_namespaces_next_rotation"),
        "namespaces",
        ["next_rotation"],
        unique=False,
    )


def downgrade() -> None:
    """Drop the namespaces table."""
    op.drop_index(op.f("ix_namespaces_next_rotation"), table_name="namespaces")
    op.drop_index(op.f("ix_namespaces_expires"), table_name="namespaces")
    op.drop_table("namespaces")
