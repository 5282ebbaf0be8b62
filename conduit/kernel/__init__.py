"""
Persistence and Policy Core

- Entity schema (users, articles, comments, favorites, followers, tags)
- Timestamp maintenance enforced by the database
- Ordered, reversible migrations
- Capability flags and CORS policies resolved from deployment configuration

Invariants:
- created_at never changes after insert; updated_at never decreases
- Every write is checked by the database's own constraints
- A capability not explicitly enabled is disabled
"""

from conduit.kernel.capabilities import Capability, CapabilitySet, ResourceType
from conduit.kernel.cors import CorsPolicy, OriginMode
from conduit.kernel.errors import (
    ConduitError,
    ConfigurationError,
    ConstraintKind,
    ConstraintViolation,
    MigrationFailure,
    NotFound,
)
from conduit.kernel.models import (
    Article,
    ArticleTag,
    Base,
    Comment,
    FavoriteArticle,
    Follower,
    User,
)

__all__ = [
    # Policy
    "Capability",
    "CapabilitySet",
    "ResourceType",
    "CorsPolicy",
    "OriginMode",
    # Errors
    "ConduitError",
    "ConfigurationError",
    "ConstraintKind",
    "ConstraintViolation",
    "MigrationFailure",
    "NotFound",
    # Entities
    "Base",
    "User",
    "Follower",
    "Article",
    "FavoriteArticle",
    "ArticleTag",
    "Comment",
]
