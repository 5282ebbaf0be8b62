"""
Storage-level maintenance of created_at / updated_at.

Every timestamped table gets triggers that:
- stamp both columns with the current instant on INSERT, whatever the caller sent
- keep created_at and move updated_at forward on every UPDATE, including
  updates that change nothing else

Triggers are installed by the migrations and by Base.metadata.create_all.
A dialect without trigger support here, or a table missing either column,
aborts schema initialization.
"""

from sqlalchemy import MetaData, Table, event, inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from conduit.kernel.errors import MigrationFailure
from conduit.logging_config import get_logger

logger = get_logger(__name__)

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"

PG_STAMP_FUNCTION = "conduit_stamp_timestamps"

_PG_FUNCTION_DDL = f"""
CREATE OR REPLACE FUNCTION {PG_STAMP_FUNCTION}() RETURNS trigger AS $$
BEGIN
    IF TG_OP = 'INSERT' THEN
        NEW.{CREATED_AT} := clock_timestamp();
        NEW.{UPDATED_AT} := NEW.{CREATED_AT};
    ELSE
        NEW.{CREATED_AT} := OLD.{CREATED_AT};
        NEW.{UPDATED_AT} := GREATEST(clock_timestamp(), OLD.{UPDATED_AT});
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""

# Millisecond resolution; 'now' is fixed for the whole statement, triggers included.
_SQLITE_NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"


class TimestampPolicyError(MigrationFailure):
    """Timestamp triggers could not be installed for a table."""


def _pg_statements(table: str) -> list[str]:
    return [
        _PG_FUNCTION_DDL,
        f"DROP TRIGGER IF EXISTS {table}_stamp_timestamps ON {table}",
        f"CREATE TRIGGER {table}_stamp_timestamps "
        f"BEFORE INSERT OR UPDATE ON {table} "
        f"FOR EACH ROW EXECUTE FUNCTION {PG_STAMP_FUNCTION}()",
    ]


def _sqlite_statements(table: str) -> list[str]:
    # The insert trigger's own UPDATE fires the update trigger; the WHEN clause
    # recognizes that nested write because it stamps both columns with 'now'.
    # A caller statement that itself sets both columns to the current
    # millisecond string is indistinguishable and keeps the written created_at.
    return [
        f"CREATE TRIGGER IF NOT EXISTS {table}_stamp_insert "
        f"AFTER INSERT ON {table} FOR EACH ROW "
        f"BEGIN "
        f"UPDATE {table} SET {CREATED_AT} = {_SQLITE_NOW}, {UPDATED_AT} = {_SQLITE_NOW} "
        f"WHERE rowid = NEW.rowid; "
        f"END",
        f"CREATE TRIGGER IF NOT EXISTS {table}_stamp_update "
        f"AFTER UPDATE ON {table} FOR EACH ROW "
        f"WHEN NOT (NEW.{CREATED_AT} IS {_SQLITE_NOW} AND NEW.{UPDATED_AT} IS {_SQLITE_NOW}) "
        f"BEGIN "
        f"UPDATE {table} SET {CREATED_AT} = OLD.{CREATED_AT}, "
        f"{UPDATED_AT} = MAX({_SQLITE_NOW}, OLD.{UPDATED_AT}) "
        f"WHERE rowid = NEW.rowid; "
        f"END",
    ]


_INSTALLERS = {
    "postgresql": _pg_statements,
    "sqlite": _sqlite_statements,
}


def install_timestamp_triggers(connection: Connection, table_name: str) -> None:
    """
    Install the timestamp triggers on one table.

    Raises:
        TimestampPolicyError: If the dialect is unsupported, the table lacks a
            timestamp column, or the DDL fails
    """
    dialect = connection.dialect.name
    builder = _INSTALLERS.get(dialect)
    if builder is None:
        raise TimestampPolicyError(
            f"cannot maintain timestamps on {table_name!r}: "
            f"no trigger support for dialect {dialect!r}"
        )
    try:
        columns = {col["name"] for col in inspect(connection).get_columns(table_name)}
        missing = {CREATED_AT, UPDATED_AT} - columns
        if missing:
            raise TimestampPolicyError(
                f"cannot maintain timestamps on {table_name!r}: "
                f"missing column(s) {', '.join(sorted(missing))}"
            )
        for statement in builder(table_name):
            connection.exec_driver_sql(statement)
    except TimestampPolicyError:
        raise
    except SQLAlchemyError as exc:
        raise TimestampPolicyError(
            f"failed to install timestamp triggers on {table_name!r}: {exc}"
        ) from exc
    logger.debug("Installed timestamp triggers", extra={"table": table_name, "dialect": dialect})


def uninstall_timestamp_triggers(connection: Connection, table_name: str) -> None:
    """Drop the triggers installed by install_timestamp_triggers."""
    dialect = connection.dialect.name
    if dialect == "postgresql":
        connection.exec_driver_sql(
            f"DROP TRIGGER IF EXISTS {table_name}_stamp_timestamps ON {table_name}"
        )
    elif dialect == "sqlite":
        connection.exec_driver_sql(f"DROP TRIGGER IF EXISTS {table_name}_stamp_insert")
        connection.exec_driver_sql(f"DROP TRIGGER IF EXISTS {table_name}_stamp_update")


def drop_timestamp_function(connection: Connection) -> None:
    """Drop the shared PostgreSQL trigger function (no-op elsewhere)."""
    if connection.dialect.name == "postgresql":
        connection.exec_driver_sql(f"DROP FUNCTION IF EXISTS {PG_STAMP_FUNCTION}()")


def is_timestamped(table: Table) -> bool:
    return CREATED_AT in table.c and UPDATED_AT in table.c


def timestamped_tables(metadata: MetaData) -> list[Table]:
    """Tables in dependency order that carry both timestamp columns."""
    return [t for t in metadata.sorted_tables if is_timestamped(t)]


def attach_to_metadata(metadata: MetaData) -> None:
    """Install triggers whenever metadata.create_all creates a timestamped table."""

    @event.listens_for(metadata, "after_create")
    def _install_after_create(target, connection, **kw):
        for table in kw.get("tables") or target.sorted_tables:
            if is_timestamped(table):
                install_timestamp_triggers(connection, table.name)
