"""
Error taxonomy for the persistence and policy core.

- ConstraintViolation: unique / foreign-key / not-null / check failure at the
  storage boundary, or an integrity failure the driver did not identify.
  Never retried.
- NotFound: a lookup or delete by key matched no row.
- ConfigurationError: the deployment configuration cannot be resolved. Fatal.
- MigrationFailure: a schema step could not be applied or rolled back. Fatal.

Capability denial is not an error: callers check a boolean.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError


class ConduitError(Exception):
    """Base class for all errors raised by the core."""


class ConstraintKind(str, Enum):
    """Which family of constraint rejected a write."""
    UNIQUE = "unique"
    FOREIGN_KEY = "foreign_key"
    NOT_NULL = "not_null"
    CHECK = "check"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class KnownConstraint:
    """A named constraint declared by the entity schema."""
    name: str
    kind: ConstraintKind
    table: str
    columns: tuple[str, ...]
    description: str


KNOWN_CONSTRAINTS: dict[str, KnownConstraint] = {
    c.name: c
    for c in (
        KnownConstraint(
            "users_username_email_key", ConstraintKind.UNIQUE,
            "users", ("username", "email"),
            "username and email already registered",
        ),
        KnownConstraint(
            "articles_slug_key", ConstraintKind.UNIQUE,
            "articles", ("slug",),
            "slug already taken",
        ),
        KnownConstraint(
            "favorite_articles_pkey", ConstraintKind.UNIQUE,
            "favorite_articles", ("user_id", "article_id"),
            "article already favorited",
        ),
        KnownConstraint(
            "followers_pkey", ConstraintKind.UNIQUE,
            "followers", ("user_id", "follower_id"),
            "already following",
        ),
        KnownConstraint(
            "followers_not_self_check", ConstraintKind.CHECK,
            "followers", ("user_id", "follower_id"),
            "users cannot follow themselves",
        ),
        KnownConstraint(
            "article_tags_pkey", ConstraintKind.UNIQUE,
            "article_tags", ("article_id", "tag_name"),
            "tag already attached",
        ),
    )
}

# PostgreSQL SQLSTATE codes for integrity violations
_SQLSTATE_KINDS = {
    "23502": ConstraintKind.NOT_NULL,
    "23503": ConstraintKind.FOREIGN_KEY,
    "23505": ConstraintKind.UNIQUE,
    "23514": ConstraintKind.CHECK,
}

# SQLite reports violations only through the message text
_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<columns>[\w., ]+)")
_SQLITE_NOT_NULL = re.compile(r"NOT NULL constraint failed: (?P<table>\w+)\.(?P<column>\w+)")
_SQLITE_CHECK = re.compile(r"CHECK constraint failed: (?P<name>\w+)")
_SQLITE_FOREIGN_KEY = "FOREIGN KEY constraint failed"


def _lookup_by_columns(table: str, columns: tuple[str, ...]) -> Optional[KnownConstraint]:
    for known in KNOWN_CONSTRAINTS.values():
        if known.table == table and set(known.columns) == set(columns):
            return known
    return None


class ConstraintViolation(ConduitError):
    """
    A write was rejected by a declarative constraint.

    Attributes:
        kind: The constraint family
        constraint: Name from KNOWN_CONSTRAINTS when identifiable, else the
            store-reported name (or None)
        table: Table the violation was reported on, when known
        detail: Raw driver message
    """

    def __init__(
        self,
        kind: ConstraintKind,
        constraint: Optional[str] = None,
        table: Optional[str] = None,
        detail: str = "",
    ):
        self.kind = kind
        self.constraint = constraint
        self.table = table
        self.detail = detail
        super().__init__(self.description)

    @property
    def description(self) -> str:
        """Domain-level phrase a caller can show to a user."""
        known = KNOWN_CONSTRAINTS.get(self.constraint or "")
        if known:
            return known.description
        if self.kind == ConstraintKind.FOREIGN_KEY:
            return "referenced row does not exist or is still referenced"
        if self.kind == ConstraintKind.NOT_NULL:
            return "required field missing"
        if self.kind == ConstraintKind.UNKNOWN:
            return "integrity constraint violated"
        return f"{self.kind.value} constraint violated"

    @classmethod
    def from_integrity_error(cls, exc: IntegrityError) -> "ConstraintViolation":
        """Classify a SQLAlchemy IntegrityError from PostgreSQL or SQLite."""
        orig: Any = exc.orig
        # asyncpg errors arrive wrapped by SQLAlchemy's DBAPI adapter
        cause: Any = getattr(orig, "__cause__", None)
        sqlstate = getattr(orig, "sqlstate", None) or getattr(cause, "sqlstate", None)
        detail = str(orig)

        if sqlstate in _SQLSTATE_KINDS:
            return cls(
                kind=_SQLSTATE_KINDS[sqlstate],
                constraint=getattr(cause, "constraint_name", None),
                table=getattr(cause, "table_name", None),
                detail=detail,
            )

        match = _SQLITE_UNIQUE.search(detail)
        if match:
            qualified = [part.strip() for part in match.group("columns").split(",")]
            table = qualified[0].split(".")[0]
            columns = tuple(part.split(".")[-1] for part in qualified)
            known = _lookup_by_columns(table, columns)
            return cls(
                kind=ConstraintKind.UNIQUE,
                constraint=known.name if known else None,
                table=table,
                detail=detail,
            )
        match = _SQLITE_CHECK.search(detail)
        if match:
            name = match.group("name")
            known = KNOWN_CONSTRAINTS.get(name)
            return cls(
                kind=ConstraintKind.CHECK,
                constraint=name,
                table=known.table if known else None,
                detail=detail,
            )
        match = _SQLITE_NOT_NULL.search(detail)
        if match:
            return cls(kind=ConstraintKind.NOT_NULL, table=match.group("table"), detail=detail)
        if _SQLITE_FOREIGN_KEY in detail:
            return cls(kind=ConstraintKind.FOREIGN_KEY, detail=detail)

        # Unrecognized driver message, still an integrity failure
        return cls(kind=ConstraintKind.UNKNOWN, detail=detail)


class NotFound(ConduitError):
    """No row matched the requested key."""

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key!r}")


class ConfigurationError(ConduitError):
    """The deployment configuration is missing a required field or is malformed."""


class MigrationFailure(ConduitError):
    """A schema migration step could not be applied or rolled back."""

    def __init__(self, message: str, revision: Optional[str] = None):
        self.revision = revision
        super().__init__(message)
