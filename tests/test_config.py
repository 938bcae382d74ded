"""Tests for configuration loading and the environment overlay."""

import pytest

from godeploy.core.config_manager import FIELD_KEYS, ConfigManager, env_key, env_prefix
from godeploy.models.service import FIELD_PARSERS, ConfigError

CONFIG = """
foo:
  host: 10.0.0.1
  go_install: github.com/acme/foo@latest
  port: 2222
bar-api:
  host: bar.example.com
  go_install: github.com/acme/bar@latest
  ignore: true
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "god.yml"
    path.write_text(CONFIG)
    return path


class TestEnvPrefix:
    @pytest.mark.parametrize("name, expected", [
        ("foo", "FOO"),
        ("bar-api", "BAR_API"),
        ("my.service", "MY_SERVICE"),
        ("2fa", "_2FA"),
    ])
    def test_prefix(self, name, expected):
        assert env_prefix(name) == expected

    def test_env_key(self):
        assert env_key("foo", "host") == "FOO_HOST"
        assert env_key("bar-api", "private_key_path") == "BAR_API_PRIVATE_KEY_PATH"

    def test_every_field_has_an_overlay_key(self):
        assert set(FIELD_KEYS) == set(FIELD_PARSERS)


class TestLoadConfig:
    def test_loads_services_in_order(self, config_file):
        manager = ConfigManager(config_file, environ={})
        services = manager.load_config()
        assert list(services) == ["foo", "bar-api"]
        assert manager.get_service("foo").port == 2222
        assert manager.get_service("bar-api").ignore is True
        assert manager.get_service("missing") is None

    def test_environment_overrides_yaml(self, config_file):
        manager = ConfigManager(config_file, environ={"FOO_HOST": "1.2.3.4"})
        manager.load_config()
        assert manager.get_service("foo").host == "1.2.3.4"
        assert manager.get_service("bar-api").host == "bar.example.com"

    def test_environment_values_are_parsed(self, config_file):
        environ = {
            "BAR_API_IGNORE": "false",
            "BAR_API_PORT": "2200",
            "FOO_COPY_FILES": "a.txt,dir",
        }
        manager = ConfigManager(config_file, environ=environ)
        manager.load_config()
        assert manager.get_service("bar-api").ignore is False
        assert manager.get_service("bar-api").port == 2200
        assert manager.get_service("foo").copy_files == ("a.txt", "dir")

    def test_service_without_options(self, tmp_path):
        path = tmp_path / "god.yml"
        path.write_text("foo:\n")
        manager = ConfigManager(path, environ={"FOO_HOST": "h"})
        manager.load_config()
        assert manager.get_service("foo").host == "h"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "god.yml"
        path.write_text("")
        assert ConfigManager(path, environ={}).load_config() == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="cannot read"):
            ConfigManager(tmp_path / "nope.yml", environ={}).load_config()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "god.yml"
        path.write_text("foo: [unclosed\n")
        with pytest.raises(ConfigError, match="cannot parse"):
            ConfigManager(path, environ={}).load_config()

    @pytest.mark.parametrize("content", ["- foo\n- bar\n", "foo: bar\n"])
    def test_invalid_structure(self, tmp_path, content):
        path = tmp_path / "god.yml"
        path.write_text(content)
        with pytest.raises(ConfigError, match="must map"):
            ConfigManager(path, environ={}).load_config()
