"""Create comments

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from conduit.kernel.timestamps import install_timestamp_triggers, uninstall_timestamp_triggers

# revision identifiers, used by Alembic.
revision: str = '0003'
down_revision: Union[str, None] = '0002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('article_id', sa.Integer(), sa.ForeignKey('articles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('comments_article_id_idx', 'comments', ['article_id'])
    op.create_index('comments_user_id_idx', 'comments', ['user_id'])
    install_timestamp_triggers(op.get_bind(), 'comments')


def downgrade() -> None:
    uninstall_timestamp_triggers(op.get_bind(), 'comments')
    op.drop_index('comments_user_id_idx', table_name='comments')
    op.drop_index('comments_article_id_idx', table_name='comments')
    op.drop_table('comments')
