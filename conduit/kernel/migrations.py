"""
Ordered, reversible schema changes.

apply(target) moves the schema forward or backward to a revision by running
the Alembic steps in between. The version marker lives in alembic_version.
Each step is its own transaction: when one fails, MigrationFailure is raised
and the schema stays at the last step that completed.

apply() drives its own event loop and must be called from synchronous code.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from alembic.util import CommandError
from sqlalchemy.exc import SQLAlchemyError

from conduit.database import create_engine
from conduit.kernel.errors import MigrationFailure
from conduit.logging_config import get_logger

logger = get_logger(__name__)

SCRIPT_LOCATION = Path(__file__).resolve().parents[2] / "alembic"

HEAD = "head"
BASE = "base"


def _alembic_config(database_url: Optional[str] = None) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    if database_url:
        cfg.attributes["database_url"] = database_url
    return cfg


def _configured_url() -> str:
    from conduit.config import load_for_run_mode

    return load_for_run_mode().database_url


def versions() -> List[str]:
    """All revision ids, from the first step to head."""
    script = ScriptDirectory.from_config(_alembic_config())
    return [rev.revision for rev in reversed(list(script.walk_revisions(BASE, "heads")))]


def current_version(database_url: Optional[str] = None) -> Optional[str]:
    """The revision recorded in the database, or None for an empty schema."""
    database_url = database_url or _configured_url()

    async def _read() -> Optional[str]:
        engine = create_engine(database_url)
        try:
            async with engine.connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: MigrationContext.configure(sync_conn).get_current_revision()
                )
        finally:
            await engine.dispose()

    return asyncio.run(_read())


def _position(revision: Optional[str], ordered: List[str]) -> int:
    """Number of steps applied when the schema is at `revision`."""
    if revision is None:
        return 0
    try:
        return ordered.index(revision) + 1
    except ValueError:
        raise MigrationFailure(f"unknown schema version {revision!r}", revision=revision)


def apply(target_version: Optional[str] = HEAD, *, database_url: Optional[str] = None) -> Optional[str]:
    """
    Bring the schema to `target_version`.

    Args:
        target_version: A revision id, "head", or "base"/None for an empty schema
        database_url: Defaults to the deployment configuration's URL

    Returns:
        The version the schema is at afterwards

    Raises:
        MigrationFailure: If the target is unknown or a step fails
    """
    database_url = database_url or _configured_url()
    ordered = versions()
    if target_version == HEAD:
        target = ordered[-1] if ordered else None
    elif target_version in (BASE, None):
        target = None
    else:
        target = target_version

    try:
        current = current_version(database_url)
    except SQLAlchemyError as exc:
        raise MigrationFailure(f"cannot read schema version: {exc}") from exc

    wanted = _position(target, ordered)
    have = _position(current, ordered)
    if wanted == have:
        logger.info("Schema already at requested version", extra={"revision": current})
        return current

    cfg = _alembic_config(database_url)
    direction = "upgrade" if wanted > have else "downgrade"
    logger.info(
        "Migrating schema",
        extra={"direction": direction, "from_revision": current, "to_revision": target},
    )
    try:
        if wanted > have:
            command.upgrade(cfg, target)
        else:
            command.downgrade(cfg, target or BASE)
    except (SQLAlchemyError, CommandError, MigrationFailure) as exc:
        reached = current_version(database_url)
        logger.error(
            "Migration step failed",
            extra={"direction": direction, "revision": reached, "error": str(exc)},
        )
        raise MigrationFailure(
            f"{direction} to {target or BASE} failed at {reached or BASE}: {exc}",
            revision=reached,
        ) from exc

    return current_version(database_url)
