"""add delivering capsule status

Revision ID: c7d2e9a4b861
Revises: 8b4e2f6a1c35
Create Date: 2026-10-18 11:02:47.660213

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'c7d2e9a4b861'
down_revision: Union[str, Sequence[str], None] = '8b4e2f6a1c35'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Allow capsules to be claimed by a delivery run before they are emailed."""
    if op.get_bind().dialect.name == 'postgresql':
        # ALTER TYPE ... ADD VALUE cannot run inside a transaction block
        with op.get_context().autocommit_block():
            op.execute("ALTER TYPE capsulestatus ADD VALUE IF NOT EXISTS 'delivering'")


def downgrade() -> None:
    """Hand claimed capsules back to the queue; the enum value itself stays."""
    op.execute(
        sa.text("UPDATE capsules SET status = 'pending' WHERE status = 'delivering'")
    )
