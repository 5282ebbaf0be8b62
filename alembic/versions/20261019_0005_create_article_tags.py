"""Create article_tags

Revision ID: 0005
Revises: 0004
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from conduit.kernel.timestamps import install_timestamp_triggers, uninstall_timestamp_triggers

# revision identifiers, used by Alembic.
revision: str = '0005'
down_revision: Union[str, None] = '0004'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'article_tags',
        sa.Column('article_id', sa.Integer(), sa.ForeignKey('articles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tag_name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('article_id', 'tag_name', name='article_tags_pkey'),
    )
    op.create_index('article_tags_tag_name_idx', 'article_tags', ['tag_name'])
    install_timestamp_triggers(op.get_bind(), 'article_tags')


def downgrade() -> None:
    uninstall_timestamp_triggers(op.get_bind(), 'article_tags')
    op.drop_index('article_tags_tag_name_idx', table_name='article_tags')
    op.drop_table('article_tags')
