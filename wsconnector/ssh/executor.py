"""
Command Executor - Run one shell command over an exec channel.

Path: wsconnector/ssh/executor.py

Each call opens a fresh exec channel on an already authenticated
transport, drains stdout until the remote side has closed AND nothing is
left buffered, then collects the exit status.

Failures never raise out of execute(). They come back as a CommandResult
with success=False, an error message and an SSHErrorCategory, so callers
can tell "ran with no output" apart from "did not run".
"""

import codecs
import logging
import select
import socket
import sys
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Callable

import paramiko

from wsconnector.errors import (
    AuthFailure,
    CommandTimeout,
    ExecutionFailure,
    HostKeyRejected,
    InvalidCredentials,
    Unreachable,
)


# Module logger - configure at application level
logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_CHUNK_SIZE = 1024
UNKNOWN_EXIT_STATUS = -1

# Handler added by configure_logging
_installed_handler: Optional[logging.Handler] = None


class SSHErrorCategory(Enum):
    """Categorized SSH error types for better diagnostics."""
    SUCCESS = "success"
    INVALID_CREDENTIALS = "invalid_credentials"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_TIMEOUT = "connection_timeout"
    DNS_FAILURE = "dns_failure"
    AUTH_FAILURE = "auth_failure"
    HOST_KEY_REJECTED = "host_key_rejected"
    KEY_EXCHANGE_FAILURE = "key_exchange"
    COMMAND_TIMEOUT = "command_timeout"
    CHANNEL_ERROR = "channel_error"
    PROTOCOL_ERROR = "protocol_error"
    SOCKET_ERROR = "socket_error"
    UNKNOWN = "unknown"


def categorize_ssh_error(exception: Exception) -> SSHErrorCategory:
    """
    Categorize an SSH exception for better error reporting.

    Args:
        exception: The caught exception.

    Returns:
        SSHErrorCategory indicating the type of failure.
    """
    # Our own taxonomy first
    if isinstance(exception, CommandTimeout):
        return SSHErrorCategory.COMMAND_TIMEOUT
    if isinstance(exception, InvalidCredentials):
        return SSHErrorCategory.INVALID_CREDENTIALS
    if isinstance(exception, (HostKeyRejected, paramiko.BadHostKeyException)):
        return SSHErrorCategory.HOST_KEY_REJECTED
    if isinstance(exception, (AuthFailure, paramiko.AuthenticationException)):
        return SSHErrorCategory.AUTH_FAILURE

    error_msg = str(exception).lower()
    error_type = type(exception).__name__

    # Connection refused
    if "connection refused" in error_msg or "errno 111" in error_msg:
        return SSHErrorCategory.CONNECTION_REFUSED

    # Timeouts
    if isinstance(exception, socket.timeout) or "timed out" in error_msg or "timeout" in error_type.lower():
        if "command" in error_msg or "execute" in error_msg:
            return SSHErrorCategory.COMMAND_TIMEOUT
        return SSHErrorCategory.CONNECTION_TIMEOUT

    # DNS failure
    if "name or service not known" in error_msg or "getaddrinfo" in error_msg:
        return SSHErrorCategory.DNS_FAILURE

    # Authentication failure
    if any(x in error_msg for x in ["auth", "permission denied", "no supported authentication"]):
        return SSHErrorCategory.AUTH_FAILURE

    # Key exchange
    if any(x in error_msg for x in ["key exchange", "kex", "incompatible", "no matching"]):
        return SSHErrorCategory.KEY_EXCHANGE_FAILURE

    # Channel errors
    if "channel" in error_msg or "eof" in error_msg or isinstance(exception, EOFError):
        return SSHErrorCategory.CHANNEL_ERROR

    # Socket errors
    if isinstance(exception, (socket.error, OSError, Unreachable)) or "socket" in error_msg:
        return SSHErrorCategory.SOCKET_ERROR

    # Protocol errors (SSH-specific)
    if isinstance(exception, paramiko.SSHException) or "ssh" in error_type.lower():
        return SSHErrorCategory.PROTOCOL_ERROR

    return SSHErrorCategory.UNKNOWN


def _write_stderr(text: str):
    sys.stderr.write(text)
    sys.stderr.flush()


@dataclass
class ExecutorOptions:
    """Options for command execution."""
    poll_interval: float = DEFAULT_POLL_INTERVAL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    command_timeout: Optional[float] = None  # None = block until the command ends
    # Remote stderr goes here as it arrives (default: local stderr)
    error_callback: Callable[[str], None] = field(default=_write_stderr, repr=False)
    capture_traceback: bool = False


@dataclass(frozen=True)
class CommandResult:
    """Result of a single remote command."""
    command: str
    stdout: bytes = b""
    exit_status: int = UNKNOWN_EXIT_STATUS
    stderr: bytes = b""
    success: bool = True
    error: Optional[str] = None
    error_category: SSHErrorCategory = SSHErrorCategory.SUCCESS
    error_traceback: Optional[str] = None
    duration_ms: float = 0

    @property
    def text(self) -> str:
        """Stdout decoded as UTF-8."""
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        """Command ran and exited 0."""
        return self.success and self.exit_status == 0

    def lines(self) -> List[str]:
        """Non-empty stdout lines."""
        return [line for line in self.text.splitlines() if line.strip()]

    def raise_for_failure(self) -> "CommandResult":
        """Raise ExecutionFailure if the command did not run to completion."""
        if not self.success:
            raise ExecutionFailure(
                f"Command failed ({self.error_category.value}): {self.error}",
                result=self,
            )
        return self

    def __repr__(self) -> str:
        if self.success:
            return (f"CommandResult(command={self.command!r}, exit_status={self.exit_status}, "
                    f"stdout={len(self.stdout)} bytes, duration={self.duration_ms:.0f}ms)")
        return (f"CommandResult(command={self.command!r}, success=False, "
                f"category={self.error_category.value}, error={self.error!r})")


class CommandExecutor:
    """
    Runs shell commands on an open transport.

    Usage:
        executor = CommandExecutor(ExecutorOptions(poll_interval=0.25))
        result = executor.execute(transport, "ls /etc/apache2/sites-available")
        if not result.success:
            print(f"{result.error_category.value}: {result.error}")
        print(result.text)

    One command at a time per transport: the caller serializes.
    """

    def __init__(self, options: Optional[ExecutorOptions] = None):
        self.options = options or ExecutorOptions()

    def execute(
        self,
        session: paramiko.Transport,
        command: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Execute a command and collect its complete stdout.

        Args:
            session: Authenticated paramiko Transport.
            command: Shell command, passed through unchanged.
            timeout: Seconds before giving up. Overrides
                     options.command_timeout; None in both means no limit.

        Returns:
            CommandResult. success=False on any transport/protocol error,
            with whatever stdout was read before the failure.
        """
        start_time = time.time()
        if timeout is None:
            timeout = self.options.command_timeout
        deadline = time.monotonic() + timeout if timeout is not None else None

        stdout = bytearray()
        stderr = bytearray()
        channel = None
        # Multibyte characters may straddle recv_stderr() chunks
        stderr_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        logger.debug(f"Executing: {command!r}")

        try:
            channel = session.open_session()
            channel.exec_command(command)

            self._drain(channel, stdout, stderr, stderr_decoder, deadline, command)
            exit_status = channel.recv_exit_status()

        except (CommandTimeout, paramiko.SSHException, EOFError, OSError) as e:
            duration_ms = (time.time() - start_time) * 1000
            error_category = categorize_ssh_error(e)
            error_traceback = traceback.format_exc() if self.options.capture_traceback else None

            logger.warning(f"Command {command!r} failed with {error_category.value}: {e}")

            return CommandResult(
                command=command,
                stdout=bytes(stdout),
                stderr=bytes(stderr),
                success=False,
                error=str(e),
                error_category=error_category,
                error_traceback=error_traceback,
                duration_ms=duration_ms,
            )

        finally:
            tail = stderr_decoder.decode(b"", final=True)
            if tail:
                self.options.error_callback(tail)
            if channel is not None:
                channel.close()

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(f"command: {command!r} exit status: {exit_status} ({len(stdout)} bytes)")
        logger.debug(f"took {duration_ms:.0f} ms to execute")

        return CommandResult(
            command=command,
            stdout=bytes(stdout),
            exit_status=exit_status,
            stderr=bytes(stderr),
            duration_ms=duration_ms,
        )

    def _drain(self, channel, stdout: bytearray, stderr: bytearray, stderr_decoder,
               deadline: Optional[float], command: str):
        """
        Read until the channel is closed and its buffers are empty.

        Closure can be observed before the last buffered chunk has been
        read, so a closed channel with data still pending gets one more
        read pass before the loop ends.
        """
        while True:
            self._read_available(channel, stdout, stderr, stderr_decoder)

            if channel.closed or channel.eof_received:
                if channel.recv_ready() or channel.recv_stderr_ready():
                    continue
                return

            wait = self.options.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise CommandTimeout(f"Command timed out: {command!r}")
                wait = min(wait, remaining)

            self._wait_for_data(channel, wait)

    def _read_available(self, channel, stdout: bytearray, stderr: bytearray, stderr_decoder):
        """Move every currently buffered chunk into the accumulators."""
        size = self.options.chunk_size

        while channel.recv_ready():
            chunk = channel.recv(size)
            if not chunk:
                break
            stdout.extend(chunk)

        while channel.recv_stderr_ready():
            chunk = channel.recv_stderr(size)
            if not chunk:
                break
            stderr.extend(chunk)
            text = stderr_decoder.decode(chunk)
            if text:
                self.options.error_callback(text)

    @staticmethod
    def _wait_for_data(channel, timeout: float):
        """Block until stdout is readable, the channel closes, or timeout."""
        select.select([channel], [], [], timeout)


def configure_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
):
    """
    Configure logging for wsconnector.

    Call this at application startup to enable logging. Calling it again
    replaces the handler installed by the previous call.

    Args:
        level: Logging level (default: INFO).
        format_string: Optional custom format string.
        handler: Optional custom handler (default: StreamHandler).

    Example:
        from wsconnector.ssh.executor import configure_logging
        configure_logging(level=logging.DEBUG)
    """
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    if handler is None:
        handler = logging.StreamHandler()

    global _installed_handler

    handler.setFormatter(logging.Formatter(format_string))
    package_logger = logging.getLogger("wsconnector")
    if _installed_handler is not None and _installed_handler is not handler:
        package_logger.removeHandler(_installed_handler)
        _installed_handler.close()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    _installed_handler = handler


def configure_logging_from_config(config) -> logging.Handler:
    """
    Apply a Config.logging section.

    Logs to config.logging.file when set, otherwise to stderr.

    Returns:
        The handler that was attached.
    """
    level = logging.getLevelName(config.logging.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.logging.level}")

    handler = None
    if config.logging.file:
        config.logging.file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(config.logging.file)
    else:
        handler = logging.StreamHandler()

    configure_logging(level=level, handler=handler)
    return handler
