"""Tests for YAML configuration loading."""

import io
import logging
from pathlib import Path

import pytest
import yaml

from wsconnector.core import config as config_module
from wsconnector.core.config import Config, get_config
from wsconnector.credentials.models import HostKeyPolicy
from wsconnector.ssh.executor import configure_logging, configure_logging_from_config


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


class TestLoad:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = Config.load(tmp_path / "missing.yaml")

        assert config.execution.poll_interval == 0.5
        assert config.execution.chunk_size == 1024
        assert config.execution.command_timeout is None
        assert config.apache.sites_available == "/etc/apache2/sites-available"
        assert config.connection.host_key_policy is HostKeyPolicy.INSECURE
        assert config.logging.level == "INFO"

    def test_full_file(self, tmp_path):
        path = write_config(tmp_path, """
connection:
  user: deploy
  host: web1.example.com
  port: 2222
  public_key: ~/.ssh/deploy.pub
  private_key: ~/.ssh/deploy
  host_key_policy: strict
  known_hosts: ~/.ssh/known_hosts
execution:
  poll_interval: 0.25
  chunk_size: 4096
  command_timeout: 120
  ack_timeout: 30
apache:
  service: httpd
  use_sudo: false
logging:
  level: debug
  file: ~/wsconnector.log
""")

        config = Config.load(path)

        assert config.connection.user == "deploy"
        assert config.connection.port == 2222
        assert config.connection.host_key_policy is HostKeyPolicy.STRICT
        assert config.execution.poll_interval == 0.25
        assert config.execution.chunk_size == 4096
        assert config.execution.command_timeout == 120.0
        assert config.execution.ack_timeout == 30.0
        assert config.apache.service == "httpd"
        assert config.apache.use_sudo is False
        assert config.apache.sites_enabled == "/etc/apache2/sites-enabled"
        assert config.logging.level == "DEBUG"
        assert config.logging.file == Path("~/wsconnector.log").expanduser()

    def test_short_key_names(self, tmp_path):
        path = write_config(tmp_path, """
connection:
  username: deploy
  host: web1
  publickey: a.pub
  privatekey: a
""")

        creds = Config.load(path).credentials()

        assert creds.user == "deploy"
        assert creds.public_key_path == "a.pub"
        assert creds.private_key_path == "a"
        assert creds.port == 22

    def test_env_var(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "connection:\n  host: from-env\n")
        monkeypatch.setenv("WSCONNECTOR_CONFIG", str(path))

        assert Config.load().connection.host == "from-env"

    def test_empty_file(self, tmp_path):
        config = Config.load(write_config(tmp_path, ""))

        assert config.execution.chunk_size == 1024

    @pytest.mark.parametrize("text", [
        "connection: [unclosed",
        "- just\n- a list\n",
        "execution:\n  chunk_size: 0\n",
        "execution:\n  poll_interval: -1\n",
    ])
    def test_invalid(self, tmp_path, text):
        with pytest.raises(ValueError):
            Config.load(write_config(tmp_path, text))


class TestDefaultConfig:
    def test_save_default_config_loads_back(self, tmp_path):
        config = Config(base_dir=tmp_path, config_file=tmp_path / "config.yaml",
                        log_dir=tmp_path / "logs")

        config.save_default_config()

        assert (tmp_path / "logs").is_dir()
        data = yaml.safe_load((tmp_path / "config.yaml").read_text())
        assert data["execution"]["chunk_size"] == 1024

        loaded = Config.load(tmp_path / "config.yaml")
        assert loaded.connection.user == "deploy"
        assert loaded.logging.file == tmp_path / "logs" / "wsconnector.log"

    def test_does_not_overwrite(self, tmp_path):
        path = write_config(tmp_path, "connection:\n  host: mine\n")
        config = Config(base_dir=tmp_path, config_file=path, log_dir=tmp_path / "logs")

        config.save_default_config()

        assert path.read_text() == "connection:\n  host: mine\n"


class TestGetConfig:
    def test_singleton_and_reload(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "connection:\n  host: first\n")
        monkeypatch.setenv("WSCONNECTOR_CONFIG", str(path))
        monkeypatch.setattr(config_module, "_config", None)

        first = get_config()
        assert get_config() is first

        path.write_text("connection:\n  host: second\n")
        assert get_config(reload=True).connection.host == "second"


class TestLoggingFromConfig:
    def test_file_handler(self, tmp_path):
        config = Config()
        config.logging.level = "DEBUG"
        config.logging.file = tmp_path / "logs" / "wsconnector.log"
        package_logger = logging.getLogger("wsconnector")

        handler = configure_logging_from_config(config)
        try:
            assert isinstance(handler, logging.FileHandler)
            assert package_logger.level == logging.DEBUG
            logging.getLogger("wsconnector.ssh.session").debug("hello")
            handler.flush()
            assert "hello" in config.logging.file.read_text()
        finally:
            package_logger.removeHandler(handler)
            handler.close()
            package_logger.setLevel(logging.NOTSET)

    def test_repeated_setup_keeps_one_handler(self):
        package_logger = logging.getLogger("wsconnector")
        output = io.StringIO()
        first = logging.StreamHandler(io.StringIO())
        second = logging.StreamHandler(output)

        try:
            configure_logging(handler=first)
            configure_logging(handler=second)

            assert first not in package_logger.handlers
            assert package_logger.handlers.count(second) == 1
            logging.getLogger("wsconnector.ssh.session").info("connected once")
            assert output.getvalue().count("connected once") == 1
        finally:
            package_logger.removeHandler(second)
            package_logger.setLevel(logging.NOTSET)

    def test_unknown_level(self):
        config = Config()
        config.logging.level = "CHATTY"

        with pytest.raises(ValueError):
            configure_logging_from_config(config)
