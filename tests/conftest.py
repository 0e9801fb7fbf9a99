"""Shared fakes and fixtures for the wsconnector tests."""

import os
import socket

import paramiko
import pytest

from wsconnector.credentials.models import SSHCredentials
from wsconnector.ssh.executor import CommandResult


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class FakeExecChannel:
    """
    Exec channel that delivers stdout in scripted batches.

    Every closure check (eof_received) lets the next batch "arrive". The
    check that delivers the last batch already reports EOF, so closure is
    seen while bytes are still buffered.
    """

    def __init__(self, batches=(), exit_status=0, stderr=b"", never_close=False,
                 recv_error_after=None):
        self._batches = [bytes(b) for b in batches]
        self._buffer = bytearray()
        self._stderr = bytearray(stderr)
        self._never_close = never_close
        self._recv_error_after = recv_error_after
        self._pipe = None

        self.exit_status = exit_status
        self.closed = False
        self.command = None
        self.closure_checks = 0
        self.recv_calls = 0

    def exec_command(self, command):
        self.command = command

    @property
    def eof_received(self):
        self.closure_checks += 1
        if self._batches:
            self._buffer.extend(self._batches.pop(0))
        if self._never_close:
            return False
        return not self._batches

    def recv_ready(self):
        return bool(self._buffer)

    def recv(self, size):
        self.recv_calls += 1
        if self._recv_error_after is not None and self.recv_calls > self._recv_error_after:
            raise socket.error("Connection reset by peer")
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        return chunk

    def recv_stderr_ready(self):
        return bool(self._stderr)

    def recv_stderr(self, size):
        chunk = bytes(self._stderr[:size])
        del self._stderr[:size]
        return chunk

    def recv_exit_status(self):
        return self.exit_status

    def fileno(self):
        # Never readable: select() just waits out its timeout
        if self._pipe is None:
            self._pipe = os.pipe()
        return self._pipe[0]

    def close(self):
        self.closed = True
        if self._pipe is not None:
            for fd in self._pipe:
                os.close(fd)
            self._pipe = None


class FakeSinkChannel:
    """
    Exec channel for scp sink uploads.

    `replies` is the byte stream the remote sink sends back (acks and
    error lines). Every sendall() is recorded separately in `sent`.
    """

    def __init__(self, replies=b"", recv_error=None, send_error_at=None):
        self._replies = bytearray(replies)
        self._recv_error = recv_error
        self._send_error_at = send_error_at

        self.sent = []
        self.command = None
        self.timeout = None
        self.recv_sizes = []
        self.write_shutdown = False
        self.closed = False

    def exec_command(self, command):
        self.command = command

    def settimeout(self, timeout):
        self.timeout = timeout

    def sendall(self, data):
        if self._send_error_at is not None and len(self.sent) >= self._send_error_at:
            raise socket.error("Broken pipe")
        self.sent.append(bytes(data))

    def recv(self, size):
        self.recv_sizes.append(size)
        if self._recv_error is not None:
            raise self._recv_error
        chunk = bytes(self._replies[:size])
        del self._replies[:size]
        return chunk

    def shutdown_write(self):
        self.write_shutdown = True

    def close(self):
        self.closed = True

    @property
    def data_bytes(self):
        """Everything sent after the two control lines."""
        return b"".join(self.sent[2:])


class FakeTransport:
    """Hands out pre-built channels from open_session()."""

    def __init__(self, channels=(), open_error=None):
        self._channels = list(channels)
        self._open_error = open_error
        self.active = True
        self.opened = []

    def open_session(self):
        if self._open_error is not None:
            raise self._open_error
        channel = self._channels.pop(0)
        self.opened.append(channel)
        return channel

    def is_active(self):
        return self.active


class FakeSSHClient:
    """Stands in for paramiko.SSHClient."""

    instances = []

    def __init__(self, connect_error=None):
        self.connect_error = connect_error
        self.connect_kwargs = None
        self.policy = None
        self.system_host_keys_loaded = False
        self.host_key_files = []
        self.transport = None
        self.closed = False
        FakeSSHClient.instances.append(self)

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def load_system_host_keys(self):
        self.system_host_keys_loaded = True

    def load_host_keys(self, filename):
        if not os.path.exists(filename):
            raise IOError(f"No such file: {filename}")
        self.host_key_files.append(filename)

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error
        self.transport = FakeTransport()

    def get_transport(self):
        return self.transport

    def close(self):
        self.closed = True
        if self.transport is not None:
            self.transport.active = False


# ---------------------------------------------------------------------------
# Session stand-in for the web server layer
# ---------------------------------------------------------------------------


class FakeSessionManager:
    """
    Records commands and uploads; answers from a command -> result table.

    Unknown commands succeed with no output.
    """

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.commands = []
        self.uploads = []
        self.upload_result = None

    def execute(self, command, timeout=None):
        self.commands.append(command)
        response = self.responses.get(command)
        if isinstance(response, CommandResult):
            return response
        if response is None:
            return CommandResult(command=command, stdout=b"", exit_status=0)
        stdout, exit_status = response
        return CommandResult(command=command, stdout=stdout, exit_status=exit_status)

    def upload(self, content, remote_path):
        from wsconnector.ssh.scp import SinkState, TransferResult

        self.uploads.append((remote_path, content.stream.read(), content.name))
        if self.upload_result is not None:
            return self.upload_result
        return TransferResult(remote_path=remote_path, success=True,
                              state=SinkState.DONE, bytes_sent=content.size)


# ---------------------------------------------------------------------------
# Keys and credentials
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_key():
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="session")
def key_dir(tmp_path_factory, rsa_key):
    directory = tmp_path_factory.mktemp("keys")

    rsa_key.write_private_key_file(str(directory / "id_rsa"))
    (directory / "id_rsa.pub").write_text(f"{rsa_key.get_name()} {rsa_key.get_base64()} deploy@test\n")

    rsa_key.write_private_key_file(str(directory / "id_rsa_enc"), password="secret")
    (directory / "id_rsa_enc.pub").write_text(f"{rsa_key.get_name()} {rsa_key.get_base64()}\n")

    other = paramiko.RSAKey.generate(2048)
    (directory / "other.pub").write_text(f"{other.get_name()} {other.get_base64()}\n")

    return directory


@pytest.fixture
def credentials(key_dir):
    return SSHCredentials(
        user="deploy",
        host="www.example.com",
        port=22,
        public_key_path=str(key_dir / "id_rsa.pub"),
        private_key_path=str(key_dir / "id_rsa"),
    )


@pytest.fixture(autouse=True)
def _reset_fake_clients():
    FakeSSHClient.instances = []
    yield
