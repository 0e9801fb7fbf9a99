"""
Configuration management for wsconnector.

Handles loading config from ~/.wsconnector/config.yaml and providing
default values for all settings.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from wsconnector.credentials.models import SSHCredentials, HostKeyPolicy


# Default paths
DEFAULT_BASE_DIR = Path.home() / ".wsconnector"
DEFAULT_CONFIG_FILE = DEFAULT_BASE_DIR / "config.yaml"
DEFAULT_LOG_DIR = DEFAULT_BASE_DIR / "logs"


@dataclass
class ConnectionConfig:
    """Web server SSH connection parameters."""

    user: Optional[str] = None
    host: Optional[str] = None
    port: int = 22
    public_key: Optional[str] = None
    private_key: Optional[str] = None
    passphrase: Optional[str] = None
    host_key_policy: HostKeyPolicy = HostKeyPolicy.INSECURE
    known_hosts: Optional[str] = None


@dataclass
class ExecutionConfig:
    """Command and transfer tuning."""

    poll_interval: float = 0.5
    chunk_size: int = 1024
    connect_timeout: float = 30
    command_timeout: Optional[float] = None  # None = wait forever
    ack_timeout: Optional[float] = None


@dataclass
class ApacheConfig:
    """Apache layout on the remote host (Debian style)."""

    sites_available: str = "/etc/apache2/sites-available"
    sites_enabled: str = "/etc/apache2/sites-enabled"
    service: str = "apache2"
    use_sudo: bool = True
    web_user: str = "www-data"
    web_group: str = "www-data"


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    file: Optional[Path] = None


@dataclass
class Config:
    """Main configuration container."""

    base_dir: Path = DEFAULT_BASE_DIR
    config_file: Path = DEFAULT_CONFIG_FILE
    log_dir: Path = DEFAULT_LOG_DIR

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    apache: ApacheConfig = field(default_factory=ApacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default location.
                         Can also be set via WSCONNECTOR_CONFIG env var.

        Returns:
            Config instance with values from file merged with defaults.
        """
        if config_path is None:
            config_path = Path(
                os.environ.get("WSCONNECTOR_CONFIG", str(DEFAULT_CONFIG_FILE))
            )
        config_path = Path(config_path)

        config = cls()
        config.config_file = config_path

        # If config file doesn't exist, return defaults
        if not config_path.exists():
            return config

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid config YAML: {e}")

        if not isinstance(data, dict):
            raise ValueError(f"Invalid config YAML: expected a mapping, got {type(data).__name__}")

        # Connection settings
        if "connection" in data:
            conn_data = data["connection"] or {}
            policy = conn_data.get("host_key_policy",
                                   conn_data.get("strict_host_key_checking"))
            config.connection = ConnectionConfig(
                user=conn_data.get("user", conn_data.get("username")),
                host=conn_data.get("host"),
                port=conn_data.get("port", 22),
                public_key=conn_data.get("public_key", conn_data.get("publickey")),
                private_key=conn_data.get("private_key", conn_data.get("privatekey")),
                passphrase=conn_data.get("passphrase"),
                host_key_policy=(HostKeyPolicy.parse(policy)
                                 if policy is not None else HostKeyPolicy.INSECURE),
                known_hosts=conn_data.get("known_hosts"),
            )

        # Execution settings
        if "execution" in data:
            exec_data = data["execution"] or {}
            config.execution = ExecutionConfig(
                poll_interval=float(exec_data.get("poll_interval", 0.5)),
                chunk_size=int(exec_data.get("chunk_size", 1024)),
                connect_timeout=float(exec_data.get("connect_timeout", 30)),
                command_timeout=_optional_float(exec_data.get("command_timeout")),
                ack_timeout=_optional_float(exec_data.get("ack_timeout")),
            )
            if config.execution.chunk_size <= 0:
                raise ValueError("execution.chunk_size must be positive")
            if config.execution.poll_interval <= 0:
                raise ValueError("execution.poll_interval must be positive")

        # Apache layout
        if "apache" in data:
            apache_data = data["apache"] or {}
            defaults = ApacheConfig()
            config.apache = ApacheConfig(
                sites_available=apache_data.get("sites_available", defaults.sites_available),
                sites_enabled=apache_data.get("sites_enabled", defaults.sites_enabled),
                service=apache_data.get("service", defaults.service),
                use_sudo=bool(apache_data.get("use_sudo", defaults.use_sudo)),
                web_user=apache_data.get("web_user", defaults.web_user),
                web_group=apache_data.get("web_group", defaults.web_group),
            )

        # Logging settings
        if "logging" in data:
            log_data = data["logging"] or {}
            log_file = log_data.get("file")
            config.logging = LoggingConfig(
                level=str(log_data.get("level", "INFO")).upper(),
                file=Path(log_file).expanduser() if log_file else None,
            )

        return config

    def credentials(self) -> SSHCredentials:
        """Build SSHCredentials from the connection section."""
        conn = self.connection
        return SSHCredentials(
            user=conn.user,
            host=conn.host,
            port=conn.port,
            public_key_path=conn.public_key,
            private_key_path=conn.private_key,
            passphrase=conn.passphrase,
            host_key_policy=conn.host_key_policy,
            known_hosts_path=conn.known_hosts,
        )

    def ensure_directories(self):
        """Create required directories if they don't exist."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def save_default_config(self):
        """Save a default config file if one doesn't exist."""
        if self.config_file.exists():
            return

        self.ensure_directories()
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        default_config = f"""\
# wsconnector configuration

# =============================================================================
# Web server connection
# =============================================================================

connection:
  user: deploy
  host: www.example.com
  port: 22
  public_key: ~/.ssh/id_rsa.pub
  private_key: ~/.ssh/id_rsa
  passphrase: ""
  host_key_policy: insecure   # strict = only hosts in known_hosts
  # known_hosts: ~/.ssh/known_hosts

# =============================================================================
# Command / transfer tuning
# =============================================================================

execution:
  poll_interval: 0.5       # Max seconds between output checks
  chunk_size: 1024         # Upload chunk size in bytes
  connect_timeout: 30      # TCP/SSH connect timeout in seconds
  # command_timeout: 300   # Unset = commands may run forever
  # ack_timeout: 60        # Unset = wait forever for scp acknowledgements

# =============================================================================
# Apache layout
# =============================================================================

apache:
  sites_available: /etc/apache2/sites-available
  sites_enabled: /etc/apache2/sites-enabled
  service: apache2
  use_sudo: true

# =============================================================================
# Logging
# =============================================================================

logging:
  level: INFO              # DEBUG, INFO, WARNING, ERROR
  file: {self.log_dir / 'wsconnector.log'}
"""

        with open(self.config_file, "w") as f:
            f.write(default_config)


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


# Singleton instance
_config: Optional[Config] = None


def get_config(reload: bool = False) -> Config:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload from file.

    Returns:
        Config instance.
    """
    global _config

    if _config is None or reload:
        _config = Config.load()

    return _config
