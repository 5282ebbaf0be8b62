"""Create articles and favorite_articles

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from conduit.kernel.timestamps import install_timestamp_triggers, uninstall_timestamp_triggers

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'articles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        # No separate slug index: the unique constraint provides it
        sa.UniqueConstraint('slug', name='articles_slug_key'),
    )
    op.create_index('articles_author_id_idx', 'articles', ['author_id'])
    install_timestamp_triggers(op.get_bind(), 'articles')

    op.create_table(
        'favorite_articles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('article_id', sa.Integer(), sa.ForeignKey('articles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'article_id', name='favorite_articles_pkey'),
    )
    op.create_index('favorite_articles_user_id_idx', 'favorite_articles', ['user_id'])
    op.create_index('favorite_articles_article_id_idx', 'favorite_articles', ['article_id'])
    install_timestamp_triggers(op.get_bind(), 'favorite_articles')


def downgrade() -> None:
    uninstall_timestamp_triggers(op.get_bind(), 'favorite_articles')
    op.drop_index('favorite_articles_article_id_idx', table_name='favorite_articles')
    op.drop_index('favorite_articles_user_id_idx', table_name='favorite_articles')
    op.drop_table('favorite_articles')

    uninstall_timestamp_triggers(op.get_bind(), 'articles')
    op.drop_index('articles_author_id_idx', table_name='articles')
    op.drop_table('articles')
