"""create users and capsules

Revision ID: 3f1a9c2d7e10
Revises:
Create Date: 2026-09-02 10:14:31.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users (with lockout fields) and capsules tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('role', sa.Enum('user', 'admin', name='roleenum'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('account_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('lock_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'capsules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sender_id', sa.Uuid(), nullable=False),
        sa.Column('recipient_email', sa.String(length=255), nullable=False),
        sa.Column('recipient_name', sa.String(length=100), nullable=False),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('content_type', sa.Enum('text', 'file', 'mixed', name='contenttype'), nullable=False),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.Enum('pending', 'delivered', 'failed', name='capsulestatus'), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_capsules_sender_id', 'capsules', ['sender_id'])
    op.create_index('ix_capsules_delivery_date_status', 'capsules', ['delivery_date', 'status'])


def downgrade() -> None:
    """Drop capsules and users."""
    op.drop_index('ix_capsules_delivery_date_status', table_name='capsules')
    op.drop_index('ix_capsules_sender_id', table_name='capsules')
    op.drop_table('capsules')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    sa.Enum(name='capsulestatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='contenttype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='roleenum').drop(op.get_bind(), checkfirst=True)
