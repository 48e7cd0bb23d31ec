"""Tests for configuration loading and precedence resolution."""

import pytest

from sql_gateway.core.config import (
    DEFAULT_DRIVER_PATHS,
    AppConfig,
    SourceProfile,
    load_config,
    resolve_config,
    resolve_driver_path,
)
from sql_gateway.core.exceptions import ConfigurationError

SAMPLE_CONFIG = """\
default_source = "warehouse"
pool_size = 8
query_timeout = 120

[driver_paths]
linux = "/usr/lib/simba/libsparkodbc.so"

[sources.warehouse]
url = "https://gateway.example.com:443/sql/warehouse"
krb_realm = "EXAMPLE.COM"
krb_host_fqdn = "gateway.example.com"

[sources.warehouse.http_headers]
X-Egress-Reason = "reporting"

[sources.analytics]
url = "postgresql://analyst@pg.example.com/metrics"
"""


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "config.toml"
    path.write_text(SAMPLE_CONFIG)
    return path


@pytest.mark.unit
class TestLoadConfig:
    def test_missing_file_returns_defaults(self, temp_dir):
        config = load_config(temp_dir / "nope.toml")
        assert config == AppConfig()
        assert config.sources == {}

    def test_loads_sources(self, config_file):
        config = load_config(config_file)
        assert config.default_source == "warehouse"
        assert config.pool_size == 8
        assert set(config.sources) == {"warehouse", "analytics"}
        warehouse = config.sources["warehouse"]
        assert warehouse.krb_realm == "EXAMPLE.COM"
        assert warehouse.http_headers == {"X-Egress-Reason": "reporting"}

    def test_malformed_toml(self, temp_dir):
        path = temp_dir / "bad.toml"
        path.write_text("pool_size = [unclosed\n")
        with pytest.raises(ConfigurationError, match="Malformed TOML"):
            load_config(path)

    def test_invalid_pool_size(self, temp_dir):
        path = temp_dir / "bad.toml"
        path.write_text("pool_size = 0\n")
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(path)


@pytest.mark.unit
class TestResolveDriverPath:
    def test_linux(self):
        path = resolve_driver_path(DEFAULT_DRIVER_PATHS, "linux")
        assert path == DEFAULT_DRIVER_PATHS["linux"]

    def test_darwin(self):
        path = resolve_driver_path(DEFAULT_DRIVER_PATHS, "darwin")
        assert path == DEFAULT_DRIVER_PATHS["darwin"]

    def test_platform_suffix(self):
        path = resolve_driver_path(DEFAULT_DRIVER_PATHS, "linux2")
        assert path == DEFAULT_DRIVER_PATHS["linux"]

    def test_unknown_platform(self):
        assert resolve_driver_path(DEFAULT_DRIVER_PATHS, "win32") is None


@pytest.mark.unit
class TestResolveConfig:
    def test_builtin_defaults(self):
        resolved = resolve_config(AppConfig(), platform="linux")
        assert resolved.url is None
        assert resolved.pooled is True
        assert resolved.pool_size == 5
        assert resolved.query_timeout == 60.0
        assert resolved.acquire_timeout == 30.0
        assert resolved.schema_name == "default"
        assert resolved.driver_path == DEFAULT_DRIVER_PATHS["linux"]
        assert resolved.sources["pool_size"] == "default"
        assert resolved.active_source is None

    def test_config_globals(self, config_file):
        resolved = resolve_config(load_config(config_file), platform="linux")
        assert resolved.pool_size == 8
        assert resolved.query_timeout == 120.0
        assert resolved.sources["pool_size"] == "config"
        assert resolved.driver_path == "/usr/lib/simba/libsparkodbc.so"
        assert resolved.sources["driver_path"] == "config"

    def test_default_source(self, config_file):
        resolved = resolve_config(load_config(config_file))
        assert resolved.active_source == "warehouse"
        assert resolved.url == "https://gateway.example.com:443/sql/warehouse"
        assert resolved.krb_realm == "EXAMPLE.COM"
        assert resolved.sources["url"] == "source: warehouse"

    def test_named_source(self, config_file):
        resolved = resolve_config(load_config(config_file), source_name="analytics")
        assert resolved.active_source == "analytics"
        assert resolved.url == "postgresql://analyst@pg.example.com/metrics"
        assert resolved.krb_realm is None

    def test_source_from_env(self, config_file, monkeypatch):
        monkeypatch.setenv("SQL_GATEWAY_SOURCE", "analytics")
        resolved = resolve_config(load_config(config_file))
        assert resolved.active_source == "analytics"

    def test_unknown_source(self, config_file):
        with pytest.raises(ConfigurationError, match="Unknown source: 'nope'"):
            resolve_config(load_config(config_file), source_name="nope")

    def test_unknown_source_without_sources(self):
        with pytest.raises(ConfigurationError, match="Available sources: none"):
            resolve_config(AppConfig(), source_name="nope")

    def test_env_overrides_source(self, config_file, monkeypatch):
        monkeypatch.setenv("SQL_GATEWAY_URL", "postgresql://env-host/db")
        monkeypatch.setenv("SQL_GATEWAY_KRB_REALM", "ENV.EXAMPLE.COM")
        resolved = resolve_config(load_config(config_file))
        assert resolved.url == "postgresql://env-host/db"
        assert resolved.krb_realm == "ENV.EXAMPLE.COM"
        assert resolved.sources["url"] == "env: SQL_GATEWAY_URL"

    def test_env_numbers_coerced(self, monkeypatch):
        monkeypatch.setenv("SQL_GATEWAY_POOL_SIZE", "3")
        monkeypatch.setenv("SQL_GATEWAY_QUERY_TIMEOUT", "2.5")
        resolved = resolve_config(AppConfig())
        assert resolved.pool_size == 3
        assert resolved.query_timeout == 2.5

    def test_env_invalid_number(self, monkeypatch):
        monkeypatch.setenv("SQL_GATEWAY_POOL_SIZE", "many")
        with pytest.raises(ConfigurationError, match="SQL_GATEWAY_POOL_SIZE"):
            resolve_config(AppConfig())

    def test_env_pool_size_zero(self, monkeypatch):
        monkeypatch.setenv("SQL_GATEWAY_POOL_SIZE", "0")
        with pytest.raises(ConfigurationError, match="Invalid pool_size: 0"):
            resolve_config(AppConfig())

    def test_env_negative_timeout(self, monkeypatch):
        monkeypatch.setenv("SQL_GATEWAY_QUERY_TIMEOUT", "-1")
        with pytest.raises(ConfigurationError, match="Invalid query_timeout"):
            resolve_config(AppConfig())

    @pytest.mark.parametrize("timeout", [0, -5.0])
    def test_cli_non_positive_acquire_timeout(self, timeout):
        with pytest.raises(ConfigurationError, match="Invalid acquire_timeout"):
            resolve_config(AppConfig(), acquire_timeout=timeout)

    def test_cli_overrides_everything(self, config_file, monkeypatch):
        monkeypatch.setenv("SQL_GATEWAY_URL", "postgresql://env-host/db")
        resolved = resolve_config(
            load_config(config_file),
            url="postgresql://cli-host/db",
            pool_size=2,
            timeout=5.0,
            pooled=False,
        )
        assert resolved.url == "postgresql://cli-host/db"
        assert resolved.pool_size == 2
        assert resolved.query_timeout == 5.0
        assert resolved.pooled is False
        assert resolved.sources["url"] == "cli: --url"
        assert resolved.sources["query_timeout"] == "cli: --timeout"

    def test_none_cli_values_ignored(self, config_file):
        resolved = resolve_config(load_config(config_file), url=None, pool_size=None)
        assert resolved.url == "https://gateway.example.com:443/sql/warehouse"
        assert resolved.pool_size == 8

    def test_source_profile_headers(self):
        config = AppConfig(
            sources={"gw": SourceProfile(url="https://gw", http_headers={"A": "1"})}
        )
        resolved = resolve_config(config, source_name="gw")
        assert resolved.http_headers == {"A": "1"}
