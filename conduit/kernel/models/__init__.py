"""
Entity Schema

SQLAlchemy models for users, articles, comments and favorites, plus the
follower and tag associations. Alembic migrations in alembic/versions mirror
these definitions.
"""

from conduit.kernel.models.base import Base, TimestampMixin
from conduit.kernel.models.user import User, Follower, EMAIL_MAX_LENGTH
from conduit.kernel.models.article import Article, FavoriteArticle, ArticleTag
from conduit.kernel.models.comment import Comment

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # User
    "User",
    "Follower",
    "EMAIL_MAX_LENGTH",
    # Articles
    "Article",
    "FavoriteArticle",
    "ArticleTag",
    # Comments
    "Comment",
]
