"""
Connector exceptions.

Path: wsconnector/errors.py

Session errors are raised directly. Command and transfer errors are carried
inside CommandResult / TransferResult and only raised on request via
raise_for_failure().
"""

from typing import Optional


class ConnectorError(Exception):
    """Base class for all wsconnector errors."""


class InvalidCredentials(ConnectorError):
    """Credentials are incomplete, malformed, or reference unreadable keys."""

    def __init__(self, message: str, problems: Optional[list] = None):
        super().__init__(message)
        self.problems = problems or []


class ConnectionFailure(ConnectorError):
    """Transport could not be established."""

    def __init__(self, message: str, host: Optional[str] = None, port: Optional[int] = None):
        super().__init__(message)
        self.host = host
        self.port = port


class Unreachable(ConnectionFailure):
    """TCP connect or SSH negotiation failed."""


class HostKeyRejected(Unreachable):
    """Server host key is unknown or does not match under the strict policy."""


class AuthFailure(ConnectionFailure):
    """Server refused the key."""


class ExecutionFailure(ConnectorError):
    """A remote command could not be run to completion."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class TransferFailure(ConnectorError):
    """Base class for scp sink upload failures."""

    def __init__(self, message: str, phase=None):
        super().__init__(message)
        self.phase = phase


class HandshakeRejected(TransferFailure):
    """The remote scp sink refused one phase of the upload."""

    def __init__(self, phase, ack: Optional[int] = None, remote_message: str = ""):
        detail = f": {remote_message}" if remote_message else ""
        ack_text = "no acknowledgement" if ack is None else f"ack={ack}"
        super().__init__(f"Remote sink rejected {phase.value} phase ({ack_text}){detail}", phase)
        self.ack = ack
        self.remote_message = remote_message


class TransferIOError(TransferFailure):
    """Local read or channel read/write failed during an upload."""


class CommandTimeout(ExecutionFailure):
    """A command did not finish before its deadline."""


class RemoteCommandError(ExecutionFailure):
    """A remote filesystem command failed or exited non-zero."""


class VirtualHostNotFound(ConnectorError):
    """No site configuration (or no DocumentRoot) exists for a domain."""
