"""Tests for settings loading."""

import json

import pytest
from pydantic import ValidationError

from relay.config import Settings, load_settings


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "daemon": {"host": "10.0.0.5", "port": 11899, "timeout": 2500},
        "queues": {"relayAgent": "relay.requests"},
    }))
    return path


class TestLoadSettings:

    def test_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json", environ={}, load_env_file=False)

        assert settings.rabbit_host == "localhost"
        assert settings.rabbit_username == ""
        assert settings.rabbit_password == ""
        assert settings.prefetch_count == 1
        assert settings.daemon_timeout == 10.0
        assert settings.daemon_retries == 1
        assert settings.pool_size == 1
        assert not settings.is_production

    def test_config_file(self, config_file):
        settings = load_settings(config_file, environ={}, load_env_file=False)

        assert settings.daemon_host == "10.0.0.5"
        assert settings.daemon_port == 11899
        assert settings.daemon_timeout == 2.5
        assert settings.queue_name == "relay.requests"

    def test_config_path_from_environment(self, config_file):
        settings = load_settings(environ={"RELAY_CONFIG": str(config_file)}, load_env_file=False)

        assert settings.queue_name == "relay.requests"

    def test_environment_overrides_file(self, config_file):
        environ = {
            "RABBIT_PUBLIC_SERVER": "rabbit.internal",
            "RABBIT_PUBLIC_USERNAME": "relay",
            "RABBIT_PUBLIC_PASSWORD": "secret",
            "RELAY_DAEMON_PORT": "12000",
            "RELAY_DAEMON_TIMEOUT": "4000",
            "RELAY_DAEMON_RETRIES": "3",
            "RELAY_PREFETCH": "4",
            "RELAY_WORKERS": "2",
            "RELAY_ENV": "Production",
        }
        settings = load_settings(config_file, environ=environ, load_env_file=False)

        assert settings.rabbit_host == "rabbit.internal"
        assert settings.rabbit_username == "relay"
        assert settings.rabbit_password == "secret"
        assert settings.daemon_port == 12000
        assert settings.daemon_timeout == 4.0
        assert settings.daemon_retries == 3
        assert settings.daemon_host == "10.0.0.5"
        assert settings.prefetch_count == 4
        assert settings.pool_size == 2
        assert settings.is_production

    def test_empty_server_falls_back_to_localhost(self, tmp_path):
        environ = {"RABBIT_PUBLIC_SERVER": ""}
        settings = load_settings(tmp_path / "missing.json", environ=environ, load_env_file=False)

        assert settings.rabbit_host == "localhost"

    def test_prefetch_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(prefetch_count=0)
