"""
Article model with its favorite and tag associations.

Deleting an article cascades in the database to its comments, favorites
and tags.
"""

from typing import TYPE_CHECKING, List

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from conduit.kernel.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from conduit.kernel.models.user import User
    from conduit.kernel.models.comment import Comment


class Article(Base, TimestampMixin):
    """A published article, addressed externally by its slug."""

    __tablename__ = "articles"
    __table_args__ = (
        # Also serves as the slug lookup index.
        UniqueConstraint("slug", name="articles_slug_key"),
        Index("articles_author_id_idx", "author_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    slug: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    title: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # Relationships
    author: Mapped["User"] = relationship(
        "User",
        back_populates="articles",
    )
    comments: Mapped[List["Comment"]] = relationship(
        "Comment",
        back_populates="article",
        passive_deletes=True,
    )
    favorites: Mapped[List["FavoriteArticle"]] = relationship(
        "FavoriteArticle",
        back_populates="article",
        passive_deletes=True,
    )
    tags: Mapped[List["ArticleTag"]] = relationship(
        "ArticleTag",
        back_populates="article",
        passive_deletes=True,
        order_by="ArticleTag.tag_name",
    )

    def __repr__(self) -> str:
        return f"<Article {self.slug}>"


class FavoriteArticle(Base, TimestampMixin):
    """
    A user favoriting an article.

    The composite primary key makes favoriting idempotent: a second row for
    the same pair is rejected.
    """

    __tablename__ = "favorite_articles"
    __table_args__ = (
        PrimaryKeyConstraint("user_id", "article_id", name="favorite_articles_pkey"),
        Index("favorite_articles_user_id_idx", "user_id"),
        Index("favorite_articles_article_id_idx", "article_id"),
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    article_id: Mapped[int] = mapped_column(
        ForeignKey("articles.id", ondelete="CASCADE"),
        nullable=False,
    )

    article: Mapped["Article"] = relationship(
        "Article",
        back_populates="favorites",
    )

    def __repr__(self) -> str:
        return f"<FavoriteArticle user={self.user_id} article={self.article_id}>"


class ArticleTag(Base, TimestampMixin):
    """A tag attached to an article."""

    __tablename__ = "article_tags"
    __table_args__ = (
        PrimaryKeyConstraint("article_id", "tag_name", name="article_tags_pkey"),
        Index("article_tags_tag_name_idx", "tag_name"),
    )

    article_id: Mapped[int] = mapped_column(
        ForeignKey("articles.id", ondelete="CASCADE"),
        nullable=False,
    )
    tag_name: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    article: Mapped["Article"] = relationship(
        "Article",
        back_populates="tags",
    )
