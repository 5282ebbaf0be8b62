"""
Comment model.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from conduit.kernel.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from conduit.kernel.models.article import Article
    from conduit.kernel.models.user import User


class Comment(Base, TimestampMixin):
    """A comment on an article."""

    __tablename__ = "comments"
    __table_args__ = (
        Index("comments_article_id_idx", "article_id"),
        Index("comments_user_id_idx", "user_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    article_id: Mapped[int] = mapped_column(
        ForeignKey("articles.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # Relationships
    article: Mapped["Article"] = relationship(
        "Article",
        back_populates="comments",
    )
    author: Mapped["User"] = relationship(
        "User",
        back_populates="comments",
    )

    def __repr__(self) -> str:
        return f"<Comment {self.id} article={self.article_id}>"
