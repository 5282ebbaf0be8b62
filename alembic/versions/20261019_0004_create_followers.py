"""Create followers

Revision ID: 0004
Revises: 0003
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from conduit.kernel.timestamps import install_timestamp_triggers, uninstall_timestamp_triggers

# revision identifiers, used by Alembic.
revision: str = '0004'
down_revision: Union[str, None] = '0003'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'followers',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('follower_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'follower_id', name='followers_pkey'),
        sa.CheckConstraint('user_id <> follower_id', name='followers_not_self_check'),
    )
    # user_id lookups use the primary key
    op.create_index('followers_follower_id_idx', 'followers', ['follower_id'])
    install_timestamp_triggers(op.get_bind(), 'followers')


def downgrade() -> None:
    uninstall_timestamp_triggers(op.get_bind(), 'followers')
    op.drop_index('followers_follower_id_idx', table_name='followers')
    op.drop_table('followers')
