"""
SCP sink upload - push bytes to a remote path with the scp "-t" protocol.

Path: wsconnector/ssh/scp.py

The remote side runs ``scp -p -t <path>`` and the upload is a lockstep
exchange. Each unit is followed by exactly one acknowledgement byte:

    <- ack                                  (INIT: sink ready)
    -> T <mtime> 0 <atime> 0\\n  <- ack     (TIMESTAMP)
    -> C0644 <size> <basename>\\n  <- ack   (PERMISSION)
    -> <size raw bytes> \\0  <- ack         (DATA)

Only a single zero byte acknowledges. A positive byte (1 = warning,
2 = fatal, followed by a message line), end of stream, a timeout or any
read error is a rejection and stops the transfer in that phase.

Nothing is cleaned up on the remote side after a failure.
"""

import io
import logging
import os
import socket
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, BinaryIO, Union

import paramiko

from wsconnector.errors import ConnectorError, HandshakeRejected, TransferIOError


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024
DEFAULT_SCP_COMMAND = "scp -p -t"
FILE_MODE = "0644"
ACK_OK = 0
MAX_REMOTE_MESSAGE = 1024


class SinkState(Enum):
    """Where a SinkTransfer is in the handshake."""
    INIT = "init"
    TIMESTAMP_SENT = "timestamp_sent"
    PERMISSION_SENT = "permission_sent"
    DATA_SENT = "data_sent"
    DONE = "done"
    FAILED = "failed"


class HandshakePhase(Enum):
    """Phase a transfer failed in."""
    INIT = "init"
    TIMESTAMP = "timestamp"
    PERMISSION = "permission"
    DATA = "data"


class AckOutcome(Enum):
    CONTINUE = "continue"
    REJECTED = "rejected"


def sink_basename(name: str) -> str:
    """Last path segment after the final '/', or the whole name."""
    return name.rsplit("/", 1)[-1]


def timestamp_line(mtime: int, atime: int) -> bytes:
    return f"T {int(mtime)} 0 {int(atime)} 0\n".encode("ascii")


def permission_line(size: int, name: str, mode: str = FILE_MODE) -> bytes:
    return f"C{mode} {int(size)} {sink_basename(name)}\n".encode("utf-8")


@dataclass
class LocalContent:
    """
    Bytes to upload plus the metadata the sink protocol needs.

    Use as a context manager when built from a path so the file is closed.
    """
    stream: BinaryIO
    size: int
    mtime: int
    name: str
    atime: Optional[int] = None

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"size must not be negative: {self.size}")
        if self.atime is None:
            self.atime = self.mtime

    @classmethod
    def from_path(cls, path: Union[str, Path], name: Optional[str] = None) -> "LocalContent":
        """
        Open a local file for upload.

        Args:
            path: Local file path.
            name: Name sent to the sink. Defaults to the path itself; only
                  its last segment goes over the wire.
        """
        path = os.path.expanduser(str(path))
        stat = os.stat(path)
        return cls(
            stream=open(path, "rb"),
            size=stat.st_size,
            mtime=int(stat.st_mtime),
            atime=int(stat.st_mtime),
            name=name or path,
        )

    @classmethod
    def from_bytes(cls, data: bytes, name: str, mtime: Optional[int] = None) -> "LocalContent":
        """Wrap in-memory bytes. mtime defaults to now."""
        if mtime is None:
            mtime = int(time.time())
        return cls(stream=io.BytesIO(data), size=len(data), mtime=int(mtime), name=name)

    def close(self):
        self.stream.close()

    def __enter__(self) -> "LocalContent":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@dataclass
class TransferOptions:
    """Options for sink uploads."""
    chunk_size: int = DEFAULT_CHUNK_SIZE
    ack_timeout: Optional[float] = None  # None = wait forever for each ack
    scp_command: str = DEFAULT_SCP_COMMAND


@dataclass
class TransferResult:
    """Outcome of one upload."""
    remote_path: str
    success: bool
    state: SinkState
    failed_phase: Optional[HandshakePhase] = None
    bytes_sent: int = 0
    error: Optional[ConnectorError] = None
    remote_message: str = ""
    duration_ms: float = 0

    def raise_for_failure(self) -> "TransferResult":
        if self.error is not None:
            raise self.error
        return self

    def __repr__(self) -> str:
        if self.success:
            return (f"TransferResult(remote_path={self.remote_path!r}, success=True, "
                    f"bytes={self.bytes_sent}, duration={self.duration_ms:.0f}ms)")
        phase = self.failed_phase.value if self.failed_phase else None
        return (f"TransferResult(remote_path={self.remote_path!r}, success=False, "
                f"phase={phase}, error={str(self.error)!r})")


class SinkTransfer:
    """
    One upload's handshake state machine.

    Each transition method sends its unit, waits for the acknowledgement
    and returns an AckOutcome. After a REJECTED outcome the state is
    FAILED and `failed_phase` / `error` say why.

    Usage:
        transfer = SinkTransfer(channel, content)
        if transfer.run() is AckOutcome.CONTINUE:
            ...
        transfer.close()
    """

    def __init__(self, channel, content: LocalContent, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")
        self.channel = channel
        self.content = content
        self.chunk_size = chunk_size

        self.state = SinkState.INIT
        self.failed_phase: Optional[HandshakePhase] = None
        self.error: Optional[ConnectorError] = None
        self.remote_message = ""
        self.bytes_sent = 0
        self._ready = False
        self._acked = False

    # Transitions

    def start(self) -> AckOutcome:
        """INIT: wait for the sink to say it is ready. Sends nothing."""
        self._require(SinkState.INIT, acked=False)
        outcome = self._await_ack(HandshakePhase.INIT)
        self._ready = outcome is AckOutcome.CONTINUE
        return outcome

    def send_timestamps(self) -> AckOutcome:
        self._require(SinkState.INIT, acked=False)
        if not self._ready:
            raise RuntimeError("Sink has not acknowledged readiness")
        line = timestamp_line(self.content.mtime, self.content.atime)
        return self._send_unit(line, HandshakePhase.TIMESTAMP, SinkState.TIMESTAMP_SENT)

    def send_permissions(self) -> AckOutcome:
        self._require(SinkState.TIMESTAMP_SENT)
        line = permission_line(self.content.size, self.content.name)
        return self._send_unit(line, HandshakePhase.PERMISSION, SinkState.PERMISSION_SENT)

    def send_data(self) -> AckOutcome:
        """Stream exactly content.size bytes in chunks, then the NUL terminator."""
        self._require(SinkState.PERMISSION_SENT)
        phase = HandshakePhase.DATA
        remaining = self.content.size

        while remaining > 0:
            try:
                chunk = self.content.stream.read(min(self.chunk_size, remaining))
            except (OSError, ValueError) as e:
                # ValueError: stream already closed
                return self._fail(phase, TransferIOError(f"Local read failed: {e}", phase))
            if not chunk:
                return self._fail(phase, TransferIOError(
                    f"Local content ended after {self.bytes_sent} of {self.content.size} bytes",
                    phase,
                ))
            if not self._send(chunk, phase):
                return AckOutcome.REJECTED
            self.bytes_sent += len(chunk)
            remaining -= len(chunk)

        if not self._send(b"\0", phase):
            return AckOutcome.REJECTED

        self.state = SinkState.DATA_SENT
        self._acked = False
        return self._await_ack(phase)

    def finish(self):
        """DONE: close our side of the data stream."""
        self._require(SinkState.DATA_SENT)
        self.channel.shutdown_write()
        self.state = SinkState.DONE

    def run(self) -> AckOutcome:
        """Drive every phase in order; stop at the first rejection."""
        for step in (self.start, self.send_timestamps, self.send_permissions, self.send_data):
            if step() is AckOutcome.REJECTED:
                return AckOutcome.REJECTED
        self.finish()
        return AckOutcome.CONTINUE

    def close(self):
        self.channel.close()

    # Helpers

    def _require(self, state: SinkState, acked: bool = True):
        if self.state is not state or (acked and not self._acked):
            raise RuntimeError(
                f"Transition not allowed from state {self.state.value}"
                f"{'' if self._acked else ' (unacknowledged)'}"
            )

    def _send_unit(self, data: bytes, phase: HandshakePhase, next_state: SinkState) -> AckOutcome:
        if not self._send(data, phase):
            return AckOutcome.REJECTED
        self.state = next_state
        self._acked = False
        return self._await_ack(phase)

    def _send(self, data: bytes, phase: HandshakePhase) -> bool:
        try:
            self.channel.sendall(data)
        except (socket.error, OSError, paramiko.SSHException) as e:
            self._fail(phase, TransferIOError(f"Write failed in {phase.value} phase: {e}", phase))
            return False
        return True

    def _await_ack(self, phase: HandshakePhase) -> AckOutcome:
        try:
            ack = self.channel.recv(1)
        except socket.timeout:
            return self._fail(phase, TransferIOError(
                f"Timed out waiting for {phase.value} acknowledgement", phase))
        except (socket.error, OSError, paramiko.SSHException) as e:
            return self._fail(phase, TransferIOError(
                f"Reading {phase.value} acknowledgement failed: {e}", phase))

        if not ack:
            return self._fail(phase, HandshakeRejected(phase))

        code = ack[0]
        if code == ACK_OK:
            self._acked = True
            logger.debug(f"{phase.value} acknowledged")
            return AckOutcome.CONTINUE

        self.remote_message = self._read_remote_message()
        return self._fail(phase, HandshakeRejected(phase, ack=code, remote_message=self.remote_message))

    def _read_remote_message(self) -> str:
        """Read the diagnostic line scp sends after a non-zero ack."""
        message = bytearray()
        while len(message) < MAX_REMOTE_MESSAGE:
            try:
                byte = self.channel.recv(1)
            except (socket.error, OSError, paramiko.SSHException) as e:
                logger.debug(f"Could not read remote error message: {e}")
                break
            if not byte or byte == b"\n":
                break
            message.extend(byte)
        return message.decode("utf-8", errors="replace").strip()

    def _fail(self, phase: HandshakePhase, error: ConnectorError) -> AckOutcome:
        self.state = SinkState.FAILED
        self.failed_phase = phase
        self.error = error
        return AckOutcome.REJECTED

    def result(self, remote_path: str, duration_ms: float = 0) -> TransferResult:
        return TransferResult(
            remote_path=remote_path,
            success=self.state is SinkState.DONE,
            state=self.state,
            failed_phase=self.failed_phase,
            bytes_sent=self.bytes_sent,
            error=self.error,
            remote_message=self.remote_message,
            duration_ms=duration_ms,
        )


def upload(
    session: paramiko.Transport,
    content: LocalContent,
    remote_path: str,
    options: Optional[TransferOptions] = None,
) -> TransferResult:
    """
    Upload content to remote_path through a one-shot scp sink channel.

    Args:
        session: Authenticated paramiko Transport.
        content: Bytes and metadata to send.
        remote_path: Target file or directory. Passed to the remote shell
                     as-is; quote it yourself if needed.
        options: Chunk size, acknowledgement timeout, sink command.

    Returns:
        TransferResult. Never raises for protocol or transport errors.
    """
    options = options or TransferOptions()
    start_time = time.time()
    command = f"{options.scp_command} {remote_path}"

    logger.debug(f"Uploading {content.size} bytes to {remote_path}")

    channel = None
    try:
        channel = session.open_session()
        if options.ack_timeout is not None:
            channel.settimeout(options.ack_timeout)
        channel.exec_command(command)
    except (socket.error, OSError, paramiko.SSHException) as e:
        if channel is not None:
            channel.close()
        phase = HandshakePhase.INIT
        logger.warning(f"Could not open sink channel for {remote_path}: {e}")
        return TransferResult(
            remote_path=remote_path,
            success=False,
            state=SinkState.FAILED,
            failed_phase=phase,
            error=TransferIOError(f"Could not open sink channel: {e}", phase),
            duration_ms=(time.time() - start_time) * 1000,
        )

    transfer = SinkTransfer(channel, content, chunk_size=options.chunk_size)
    try:
        transfer.run()
    finally:
        transfer.close()

    result = transfer.result(remote_path, (time.time() - start_time) * 1000)
    if result.success:
        logger.debug(f"Uploaded {result.bytes_sent} bytes to {remote_path} ({result.duration_ms:.0f}ms)")
    else:
        logger.warning(f"Upload of {content.name} to {remote_path} failed in "
                       f"{result.failed_phase.value} phase: {result.error}")
    return result


def upload_file(
    session: paramiko.Transport,
    local_path: Union[str, Path],
    remote_path: str,
    options: Optional[TransferOptions] = None,
) -> TransferResult:
    """Upload a local file. A file that cannot be opened is a TransferIOError."""
    try:
        content = LocalContent.from_path(local_path)
    except OSError as e:
        logger.warning(f"Cannot read {local_path}: {e}")
        return TransferResult(
            remote_path=remote_path,
            success=False,
            state=SinkState.FAILED,
            error=TransferIOError(f"Cannot read {local_path}: {e}"),
        )

    with content:
        return upload(session, content, remote_path, options)
