"""Unit tests for the deployment configuration loader."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from conduit.config import (
    ConfigHolder,
    EnvironmentSettings,
    get_settings,
    load,
    load_for_run_mode,
    resolve,
)
from conduit.kernel.capabilities import Capability, ResourceType
from conduit.kernel.cors import OriginMode
from conduit.kernel.errors import ConfigurationError

CONF_DIR = Path(__file__).resolve().parents[2] / "conf"


@pytest.fixture
def uncached_settings():
    """Let get_settings() read the process environment afresh."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _document(**overrides) -> dict:
    document = {
        "servers": ["public"],
        "db": {"url": "sqlite+aiosqlite:///./conduit.db"},
        "public": {
            "listen": "127.0.0.1:8089",
            "workers": 4,
            "backlog": 128,
            "services": ["User", "Article"],
        },
    }
    document.update(overrides)
    return document


class TestLoadDefaults:
    """Loading the shipped conf/default.toml."""

    def test_listener_fields(self, settings):
        config = load(CONF_DIR / "default.toml", settings=settings)

        assert config.servers == ("public",)
        listener = config.listener("public")
        assert listener.listen == "127.0.0.1:8089"
        assert listener.host == "127.0.0.1"
        assert listener.port == 8089
        assert listener.workers == 12
        assert listener.backlog == 8192
        assert listener.services == frozenset({
            ResourceType.USER,
            ResourceType.PROFILE,
            ResourceType.ARTICLE,
            ResourceType.TAG,
        })

    def test_database_url_from_file(self, settings):
        config = load(CONF_DIR / "default.toml", settings=settings)

        assert config.database_url == "sqlite+aiosqlite:///./conduit.db"

    def test_cors_and_capabilities(self, settings):
        config = load(CONF_DIR / "default.toml", settings=settings)

        cors = config.cors("public")
        assert cors.mode == OriginMode.WILDCARD
        assert cors.max_age_seconds == 3600
        assert "PATCH" in cors.methods
        assert config.capabilities.resolve(ResourceType.USER, Capability.ALLOW_REGISTER)
        assert config.capabilities.resolve(ResourceType.COMMENT, Capability.ALLOW_COMMENTS)

    def test_unknown_listener(self, settings):
        config = load(CONF_DIR / "default.toml", settings=settings)

        with pytest.raises(ConfigurationError):
            config.cors("admin")


class TestDatabaseUrlPrecedence:
    """APP_DB_URL wins over db.url."""

    def test_environment_overrides_file(self, settings, monkeypatch):
        monkeypatch.setenv("APP_DB_URL", "postgresql+asyncpg://app@db/conduit")
        env = EnvironmentSettings(_env_file=None)

        config = load(CONF_DIR / "default.toml", settings=env)

        assert config.database_url == "postgresql+asyncpg://app@db/conduit"

    def test_missing_everywhere_is_fatal(self, settings):
        with pytest.raises(ConfigurationError, match="database URL"):
            load(CONF_DIR / "default.toml", [{"db": {"url": ""}}], settings=settings)

    def test_missing_db_table_is_fatal(self, settings):
        document = _document()
        del document["db"]

        with pytest.raises(ConfigurationError):
            resolve(document, settings)

    def test_environment_alone_is_enough(self, settings):
        document = _document()
        del document["db"]
        env = EnvironmentSettings(_env_file=None, db_url="sqlite+aiosqlite:///env.db")

        assert resolve(document, env).database_url == "sqlite+aiosqlite:///env.db"


class TestOverrides:
    """Override documents merge over the base in order."""

    def test_production_file(self, settings, monkeypatch):
        monkeypatch.setenv("APP_DB_URL", "postgresql+asyncpg://app@db/conduit")
        env = EnvironmentSettings(_env_file=None)

        config = load(CONF_DIR / "default.toml", [CONF_DIR / "production.toml"], settings=env)

        listener = config.listener("public")
        assert listener.listen == "0.0.0.0:8089"
        assert listener.workers == 32
        # Untouched keys survive the merge
        assert listener.backlog == 8192
        assert config.cors("public").mode == OriginMode.EXPLICIT
        assert config.cors("public").origins == frozenset({"https://example.com"})

    def test_production_without_env_url_is_fatal(self, settings):
        with pytest.raises(ConfigurationError):
            load(CONF_DIR / "default.toml", [CONF_DIR / "production.toml"], settings=settings)

    def test_later_override_wins(self, settings):
        config = load(
            CONF_DIR / "default.toml",
            [{"public": {"workers": 2}}, {"public": {"workers": 3}}],
            settings=settings,
        )

        assert config.listener("public").workers == 3

    def test_run_mode_selects_file(self, settings, monkeypatch):
        monkeypatch.setenv("RUN_MODE", "development")
        env = EnvironmentSettings(_env_file=None)

        config = load_for_run_mode(CONF_DIR, settings=env)

        assert config.debug is True

    def test_unknown_run_mode_uses_base_only(self, settings):
        env = EnvironmentSettings(_env_file=None, run_mode="staging")

        config = load_for_run_mode(CONF_DIR, settings=env)

        assert config.debug is False

    def test_debug_from_environment(self, settings):
        env = EnvironmentSettings(_env_file=None, debug=True)

        assert load(CONF_DIR / "default.toml", settings=env).debug is True


class TestMalformedConfiguration:
    """Malformed values fail with ConfigurationError."""

    def test_missing_file(self, settings, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load(tmp_path / "missing.toml", settings=settings)

    def test_malformed_toml(self, settings, tmp_path: Path):
        path = tmp_path / "broken.toml"
        path.write_text("servers = [\n")

        with pytest.raises(ConfigurationError, match="malformed"):
            load(path, settings=settings)

    def test_missing_listener_table(self, settings):
        with pytest.raises(ConfigurationError, match="missing"):
            resolve(_document(servers=["public", "admin"]), settings)

    def test_empty_servers(self, settings):
        with pytest.raises(ConfigurationError):
            resolve(_document(servers=[]), settings)

    def test_duplicate_servers(self, settings):
        with pytest.raises(ConfigurationError):
            resolve(_document(servers=["public", "public"]), settings)

    @pytest.mark.parametrize("listen", ["8089", "localhost", "localhost:0", "localhost:http"])
    def test_bad_listen_address(self, settings, listen):
        document = _document()
        document["public"] = dict(document["public"], listen=listen)

        with pytest.raises(ConfigurationError):
            resolve(document, settings)

    @pytest.mark.parametrize("workers", [0, -1, "12", True])
    def test_bad_worker_count(self, settings, workers):
        document = _document()
        document["public"] = dict(document["public"], workers=workers)

        with pytest.raises(ConfigurationError):
            resolve(document, settings)

    def test_unknown_service(self, settings):
        document = _document()
        document["public"] = dict(document["public"], services=["User", "Billing"])

        with pytest.raises(ConfigurationError, match="Billing"):
            resolve(document, settings)

    def test_duplicate_service(self, settings):
        document = _document()
        document["public"] = dict(document["public"], services=["User", "User"])

        with pytest.raises(ConfigurationError):
            resolve(document, settings)

    @pytest.mark.parametrize("url", [5, True, ["sqlite://"]])
    def test_non_string_database_url(self, settings, url):
        with pytest.raises(ConfigurationError, match="db.url must be a string"):
            load(CONF_DIR / "default.toml", [{"db": {"url": url}}], settings=settings)

    def test_malformed_environment_value(self, settings, monkeypatch, uncached_settings):
        monkeypatch.setenv("APP_DEBUG", "maybe")

        with pytest.raises(ConfigurationError, match="env.debug"):
            load(CONF_DIR / "default.toml")

    def test_malformed_environment_value_for_run_mode(
        self, settings, monkeypatch, uncached_settings
    ):
        monkeypatch.setenv("APP_DEBUG", "maybe")

        with pytest.raises(ConfigurationError):
            load_for_run_mode(CONF_DIR)

    def test_optional_pool_sizes(self, settings):
        document = _document()
        document["public"] = {"listen": "[::1]:8089", "services": ["Tag"]}

        listener = resolve(document, settings).listener("public")

        assert listener.workers is None
        assert listener.backlog is None
        assert listener.host == "::1"


class TestConfigHolder:
    """Reload swaps the whole snapshot or nothing."""

    def test_reload_replaces_snapshot(self, settings):
        documents = [_document(), _document(debug=True)]
        holder = ConfigHolder(lambda: resolve(documents.pop(0), settings))

        first = holder.current
        holder.reload()

        assert first.debug is False
        assert holder.current.debug is True

    def test_failed_reload_keeps_previous(self, settings):
        documents = [_document(), _document(servers=[])]
        holder = ConfigHolder(lambda: resolve(documents.pop(0), settings))
        first = holder.current

        with pytest.raises(ConfigurationError):
            holder.reload()

        assert holder.current is first

    def test_reload_cannot_drop_running_listener(self, settings):
        documents = [
            _document(servers=["public", "admin"], admin={"listen": "127.0.0.1:8090", "services": ["User"]}),
            _document(),
        ]
        holder = ConfigHolder(lambda: resolve(documents.pop(0), settings))
        first = holder.current

        with pytest.raises(ConfigurationError, match="admin"):
            holder.reload(keep_listeners=first.servers)

        assert holder.current is first

    def test_snapshot_is_immutable(self, settings):
        config = resolve(_document(), settings)

        with pytest.raises(ValidationError):
            config.debug = True
