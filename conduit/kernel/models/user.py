"""
User model and the follower association.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from conduit.kernel.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from conduit.kernel.models.article import Article
    from conduit.kernel.models.comment import Comment

EMAIL_MAX_LENGTH = 254


class User(Base, TimestampMixin):
    """User account model. Users are never deleted."""

    __tablename__ = "users"
    __table_args__ = (
        # Also serves as the lookup index; no separate index is created.
        UniqueConstraint("username", "email", name="users_username_email_key"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    username: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        nullable=False,
    )
    # Already hashed by the caller
    password: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    bio: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    image: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Relationships
    articles: Mapped[List["Article"]] = relationship(
        "Article",
        back_populates="author",
        passive_deletes="all",
    )
    comments: Mapped[List["Comment"]] = relationship(
        "Comment",
        back_populates="author",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class Follower(Base, TimestampMixin):
    """follower_id follows user_id."""

    __tablename__ = "followers"
    __table_args__ = (
        PrimaryKeyConstraint("user_id", "follower_id", name="followers_pkey"),
        CheckConstraint("user_id <> follower_id", name="followers_not_self_check"),
        Index("followers_follower_id_idx", "follower_id"),
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    follower_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Follower {self.follower_id} -> {self.user_id}>"
