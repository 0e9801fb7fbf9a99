"""
wsconnector - Manage Apache virtual hosts and static resources over SSH.

Usage:
    from wsconnector import Config, SessionManager, LocalContent

    config = Config.load()
    with SessionManager.from_config(config) as manager:
        result = manager.execute("ls /etc/apache2/sites-enabled")
        manager.upload(LocalContent.from_path("site.css"), "/var/www/example/css/")
"""

__version__ = "0.1.0"

from wsconnector.core.config import Config, get_config
from wsconnector.credentials.models import SSHCredentials, HostKeyPolicy
from wsconnector.errors import (
    ConnectorError,
    InvalidCredentials,
    ConnectionFailure,
    Unreachable,
    HostKeyRejected,
    AuthFailure,
    ExecutionFailure,
    CommandTimeout,
    TransferFailure,
    HandshakeRejected,
    TransferIOError,
    RemoteCommandError,
    VirtualHostNotFound,
)
from wsconnector.ssh.executor import CommandExecutor, CommandResult, ExecutorOptions, SSHErrorCategory
from wsconnector.ssh.scp import LocalContent, TransferOptions, TransferResult, HandshakePhase
from wsconnector.ssh.session import SessionManager
from wsconnector.webserver.apache import ApacheConnector
from wsconnector.webserver.remote_fs import RemoteFilesystem

__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "get_config",
    # Credentials
    "SSHCredentials",
    "HostKeyPolicy",
    # SSH
    "SessionManager",
    "CommandExecutor",
    "CommandResult",
    "ExecutorOptions",
    "SSHErrorCategory",
    "LocalContent",
    "TransferOptions",
    "TransferResult",
    "HandshakePhase",
    # Web server
    "ApacheConnector",
    "RemoteFilesystem",
    # Errors
    "ConnectorError",
    "InvalidCredentials",
    "ConnectionFailure",
    "Unreachable",
    "HostKeyRejected",
    "AuthFailure",
    "ExecutionFailure",
    "CommandTimeout",
    "TransferFailure",
    "HandshakeRejected",
    "TransferIOError",
    "RemoteCommandError",
    "VirtualHostNotFound",
]
