"""Create users

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from conduit.kernel.timestamps import (
    drop_timestamp_function,
    install_timestamp_triggers,
    uninstall_timestamp_triggers,
)

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('email', sa.String(254), nullable=False),
        sa.Column('password', sa.Text(), nullable=False),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('image', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        # Doubles as the lookup index for both columns
        sa.UniqueConstraint('username', 'email', name='users_username_email_key'),
    )
    install_timestamp_triggers(op.get_bind(), 'users')


def downgrade() -> None:
    uninstall_timestamp_triggers(op.get_bind(), 'users')
    op.drop_table('users')
    drop_timestamp_function(op.get_bind())
