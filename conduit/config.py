"""
Deployment configuration.

A TOML base document (conf/default.toml) is merged with override documents
and then with environment variables read through pydantic-settings:

    APP_DB_URL    wins over db.url
    APP_DEBUG     wins over debug
    RUN_MODE      selects conf/<run_mode>.toml for load_for_run_mode()

The result is an immutable ResolvedConfig snapshot. ConfigHolder swaps the
whole snapshot on reload.
"""

import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Callable, Iterable, Mapping, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from conduit.kernel.capabilities import CapabilitySet, ResourceType
from conduit.kernel.cors import CorsPolicy
from conduit.kernel.errors import ConfigurationError
from conduit.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONF_DIR = Path("conf")

# Resource types a listener may serve
SERVICE_NAMES = frozenset({
    ResourceType.USER,
    ResourceType.PROFILE,
    ResourceType.ARTICLE,
    ResourceType.TAG,
})

PositiveInt = Annotated[StrictInt, Field(gt=0)]


class EnvironmentSettings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    db_url: Optional[str] = None
    debug: Optional[bool] = None
    run_mode: str = Field(
        default="development",
        validation_alias=AliasChoices("APP_RUN_MODE", "RUN_MODE"),
    )
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    environment: str = "development"


@lru_cache
def get_settings() -> EnvironmentSettings:
    """
    Get cached environment settings.

    Raises:
        ConfigurationError: If an environment variable holds a malformed value
    """
    try:
        return EnvironmentSettings()
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_error("env", exc)) from exc


class ListenerConfig(BaseModel):
    """One network-facing server instance."""

    model_config = ConfigDict(frozen=True)

    name: str
    listen: str
    workers: Optional[PositiveInt] = None
    backlog: Optional[PositiveInt] = None
    services: frozenset[ResourceType]
    cors: CorsPolicy = CorsPolicy()

    @field_validator("listen")
    @classmethod
    def _check_listen(cls, value: str) -> str:
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"expected host:port, got {value!r}")
        return value

    @field_validator("services", mode="before")
    @classmethod
    def _check_services(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            raise ValueError("must be a list of service names")
        seen = set()
        for name in value:
            if not isinstance(name, str):
                raise ValueError(f"service names must be strings, got {name!r}")
            if name in seen:
                raise ValueError(f"service {name!r} listed more than once")
            seen.add(name)
            if name not in {s.value for s in SERVICE_NAMES}:
                raise ValueError(f"unknown service {name!r}")
        return value

    @property
    def host(self) -> str:
        return self.listen.rpartition(":")[0].strip("[]")

    @property
    def port(self) -> int:
        return int(self.listen.rpartition(":")[2])


class ResolvedConfig(BaseModel):
    """Immutable snapshot of a deployment's configuration."""

    model_config = ConfigDict(frozen=True)

    debug: bool = False
    database_url: str
    listeners: tuple[ListenerConfig, ...]
    capabilities: CapabilitySet = CapabilitySet()

    @property
    def servers(self) -> tuple[str, ...]:
        """Active listener names in configuration order."""
        return tuple(listener.name for listener in self.listeners)

    def listener(self, name: str) -> ListenerConfig:
        for listener in self.listeners:
            if listener.name == name:
                return listener
        raise ConfigurationError(f"unknown listener {name!r}")

    def cors(self, listener_name: str) -> CorsPolicy:
        """Resolved CORS policy of a listener."""
        return self.listener(listener_name).cors


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"configuration file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"malformed configuration file {path}: {exc}") from exc


def _format_validation_error(name: str, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        problems.append(f"{name}.{field}: {error['msg']}")
    return "; ".join(problems)


def resolve(document: Mapping[str, Any], settings: EnvironmentSettings) -> ResolvedConfig:
    """
    Build a ResolvedConfig from a merged document and environment settings.

    Raises:
        ConfigurationError: If a required field is absent or a value is malformed
    """
    debug = document.get("debug", False) if settings.debug is None else settings.debug
    if not isinstance(debug, bool):
        raise ConfigurationError(f"debug must be a boolean, got {debug!r}")

    db_table = document.get("db") or {}
    if not isinstance(db_table, Mapping):
        raise ConfigurationError("[db] must be a table")
    url = settings.db_url or db_table.get("url") or ""
    if not isinstance(url, str):
        raise ConfigurationError(f"db.url must be a string, got {url!r}")
    database_url = url.strip()
    if not database_url:
        raise ConfigurationError("database URL not configured: set db.url or APP_DB_URL")

    servers = document.get("servers")
    if not isinstance(servers, list) or not servers or not all(isinstance(s, str) for s in servers):
        raise ConfigurationError("servers must be a non-empty list of listener names")
    if len(set(servers)) != len(servers):
        raise ConfigurationError("servers contains duplicate listener names")

    listeners = []
    for name in servers:
        table = document.get(name)
        if not isinstance(table, Mapping):
            raise ConfigurationError(f"missing [{name}] listener table")
        try:
            listener = ListenerConfig.model_validate({
                "name": name,
                "listen": table.get("listen"),
                "workers": table.get("workers"),
                "backlog": table.get("backlog"),
                "services": table.get("services"),
                "cors": CorsPolicy.from_table(table.get("cors"), listener=name),
            })
        except ValidationError as exc:
            raise ConfigurationError(_format_validation_error(name, exc)) from exc
        listeners.append(listener)
        logger.info(
            "Resolved listener",
            extra={
                "listener": name,
                "listen": listener.listen,
                "workers": listener.workers,
                "backlog": listener.backlog,
                "cors_mode": listener.cors.mode.value,
            },
        )

    return ResolvedConfig(
        debug=debug,
        database_url=database_url,
        listeners=tuple(listeners),
        capabilities=CapabilitySet.from_document(document),
    )


def load(
    base_path: Union[str, Path],
    overrides: Iterable[Union[str, Path, Mapping[str, Any]]] = (),
    *,
    settings: Optional[EnvironmentSettings] = None,
) -> ResolvedConfig:
    """
    Load and resolve a deployment configuration.

    Args:
        base_path: Base TOML document
        overrides: TOML paths or mappings merged over the base, in order
        settings: Environment settings; read from the process environment if omitted

    Raises:
        ConfigurationError: If the configuration cannot be resolved
    """
    document = _read_toml(Path(base_path))
    for override in overrides:
        layer = override if isinstance(override, Mapping) else _read_toml(Path(override))
        document = _deep_merge(document, layer)
    return resolve(document, settings if settings is not None else get_settings())


def load_for_run_mode(
    conf_dir: Union[str, Path] = DEFAULT_CONF_DIR,
    *,
    settings: Optional[EnvironmentSettings] = None,
) -> ResolvedConfig:
    """Load conf/default.toml plus conf/<RUN_MODE>.toml when that file exists."""
    settings = settings if settings is not None else get_settings()
    conf_dir = Path(conf_dir)
    overrides = []
    mode_file = conf_dir / f"{settings.run_mode}.toml"
    if mode_file.is_file():
        overrides.append(mode_file)
    logger.info("Loading configuration", extra={"run_mode": settings.run_mode})
    return load(conf_dir / "default.toml", overrides, settings=settings)


class ConfigHolder:
    """
    Owns the current ResolvedConfig.

    Readers take `holder.current` once per unit of work; reload() replaces the
    reference in a single assignment, so a reader sees either the old or the
    new snapshot.
    """

    def __init__(self, loader: Callable[[], ResolvedConfig]):
        self._loader = loader
        self._current = loader()

    @property
    def current(self) -> ResolvedConfig:
        return self._current

    def reload(self, keep_listeners: Iterable[str] = ()) -> ResolvedConfig:
        """
        Load a new snapshot; on failure the previous one stays current.

        Args:
            keep_listeners: Listeners that are serving and must stay configured

        Raises:
            ConfigurationError: If the new configuration cannot be resolved or
                drops one of keep_listeners
        """
        snapshot = self._loader()
        dropped = sorted(set(keep_listeners) - set(snapshot.servers))
        if dropped:
            raise ConfigurationError(
                f"reload would remove running listener(s) {', '.join(dropped)}"
            )
        self._current = snapshot
        logger.info("Configuration reloaded", extra={"servers": list(snapshot.servers)})
        return snapshot
