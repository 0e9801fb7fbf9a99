"""SSH execution - session manager, command executor and scp sink upload."""

from wsconnector.ssh.executor import (
    CommandExecutor,
    CommandResult,
    ExecutorOptions,
    SSHErrorCategory,
    categorize_ssh_error,
    configure_logging,
    configure_logging_from_config,
)
from wsconnector.ssh.scp import (
    AckOutcome,
    HandshakePhase,
    LocalContent,
    SinkState,
    SinkTransfer,
    TransferOptions,
    TransferResult,
    upload,
    upload_file,
)
from wsconnector.ssh.session import SessionManager

__all__ = [
    "SessionManager",
    "CommandExecutor",
    "CommandResult",
    "ExecutorOptions",
    "SSHErrorCategory",
    "categorize_ssh_error",
    "configure_logging",
    "configure_logging_from_config",
    "AckOutcome",
    "HandshakePhase",
    "LocalContent",
    "SinkState",
    "SinkTransfer",
    "TransferOptions",
    "TransferResult",
    "upload",
    "upload_file",
]
