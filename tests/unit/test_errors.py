"""Unit tests for integrity error classification."""

import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError

from conduit.kernel.errors import (
    KNOWN_CONSTRAINTS,
    ConstraintKind,
    ConstraintViolation,
    NotFound,
)


def _sqlite_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, sqlite3.IntegrityError(message))


class _AsyncpgError(Exception):
    def __init__(self, sqlstate, constraint_name=None, table_name=None):
        super().__init__("asyncpg error")
        self.sqlstate = sqlstate
        self.constraint_name = constraint_name
        self.table_name = table_name


class _AdaptedError(Exception):
    """Shape of the DBAPI error SQLAlchemy's asyncpg adapter raises."""

    def __init__(self, cause: _AsyncpgError):
        super().__init__("duplicate key value violates unique constraint")
        self.sqlstate = cause.sqlstate
        self.__cause__ = cause


def _pg_error(sqlstate, constraint_name=None, table_name=None) -> IntegrityError:
    cause = _AsyncpgError(sqlstate, constraint_name, table_name)
    return IntegrityError("INSERT ...", {}, _AdaptedError(cause))


class TestSqliteClassification:
    """SQLite reports violations through the message text."""

    def test_unique_pair_maps_to_named_constraint(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error("UNIQUE constraint failed: users.username, users.email")
        )

        assert violation.kind == ConstraintKind.UNIQUE
        assert violation.constraint == "users_username_email_key"
        assert violation.table == "users"
        assert violation.description == "username and email already registered"

    def test_slug(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error("UNIQUE constraint failed: articles.slug")
        )

        assert violation.constraint == "articles_slug_key"

    def test_favorite_pair(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error(
                "UNIQUE constraint failed: favorite_articles.user_id, favorite_articles.article_id"
            )
        )

        assert violation.constraint == "favorite_articles_pkey"

    def test_foreign_key(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error("FOREIGN KEY constraint failed")
        )

        assert violation.kind == ConstraintKind.FOREIGN_KEY
        assert violation.constraint is None
        assert "does not exist" in violation.description

    def test_not_null(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error("NOT NULL constraint failed: articles.title")
        )

        assert violation.kind == ConstraintKind.NOT_NULL
        assert violation.table == "articles"

    def test_check(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error("CHECK constraint failed: followers_not_self_check")
        )

        assert violation.kind == ConstraintKind.CHECK
        assert violation.constraint == "followers_not_self_check"
        assert violation.table == "followers"

    def test_unknown_unique_columns(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error("UNIQUE constraint failed: users.email")
        )

        assert violation.kind == ConstraintKind.UNIQUE
        assert violation.constraint is None
        assert violation.description == "unique constraint violated"

    def test_unrecognized_message_is_unknown(self):
        violation = ConstraintViolation.from_integrity_error(
            _sqlite_error("constraint failed")
        )

        assert violation.kind == ConstraintKind.UNKNOWN
        assert violation.constraint is None
        assert violation.description == "integrity constraint violated"


class TestPostgresClassification:
    """PostgreSQL reports SQLSTATE and the constraint name."""

    @pytest.mark.parametrize(
        "sqlstate,kind",
        [
            ("23505", ConstraintKind.UNIQUE),
            ("23503", ConstraintKind.FOREIGN_KEY),
            ("23502", ConstraintKind.NOT_NULL),
            ("23514", ConstraintKind.CHECK),
        ],
    )
    def test_sqlstate_kinds(self, sqlstate, kind):
        violation = ConstraintViolation.from_integrity_error(_pg_error(sqlstate))

        assert violation.kind == kind

    def test_unmapped_sqlstate_is_unknown(self):
        """Exclusion violations (23P01) have no dedicated kind."""
        violation = ConstraintViolation.from_integrity_error(_pg_error("23P01"))

        assert violation.kind == ConstraintKind.UNKNOWN

    def test_constraint_name_from_driver(self):
        violation = ConstraintViolation.from_integrity_error(
            _pg_error("23505", "articles_slug_key", "articles")
        )

        assert violation.constraint == "articles_slug_key"
        assert violation.table == "articles"
        assert violation.description == KNOWN_CONSTRAINTS["articles_slug_key"].description


class TestNotFound:
    def test_message(self):
        exc = NotFound("Article", "missing-slug")

        assert exc.entity == "Article"
        assert exc.key == "missing-slug"
        assert "missing-slug" in str(exc)
