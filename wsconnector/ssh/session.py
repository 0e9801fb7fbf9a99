"""
Session Manager - one authenticated SSH connection to the web server.

Path: wsconnector/ssh/session.py

Connects lazily on first use, reuses the transport while it is alive,
reconnects transparently when it has died, and disconnects on close().
Use it as a context manager so the connection is released on every exit
path:

    with SessionManager(credentials) as manager:
        result = manager.execute("ls /etc/apache2/sites-enabled")
        manager.upload(LocalContent.from_bytes(b"body {}", "site.css"),
                       "/var/www/example/css/site.css")

No retries happen here; a failed connect raises immediately.
"""

import logging
import os
import socket
import threading
from typing import Optional, Callable

import paramiko

from wsconnector.credentials.models import SSHCredentials, HostKeyPolicy
from wsconnector.errors import (
    AuthFailure,
    HostKeyRejected,
    InvalidCredentials,
    Unreachable,
)
from wsconnector.ssh.executor import (
    CommandExecutor,
    CommandResult,
    ExecutorOptions,
    categorize_ssh_error,
)
from wsconnector.ssh.scp import LocalContent, TransferOptions, TransferResult, upload


logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30


def load_private_key(key_file: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """
    Load and parse a private key file.

    Supports Ed25519, RSA, ECDSA (and DSA if the installed paramiko still
    has it) with optional passphrase protection.

    Raises:
        InvalidCredentials: passphrase missing or wrong, or not a key.
    """
    key_types = [
        ('Ed25519', paramiko.Ed25519Key),
        ('RSA', paramiko.RSAKey),
        ('ECDSA', paramiko.ECDSAKey),
    ]

    # Add DSA support only if available (older Paramiko versions)
    if hasattr(paramiko, 'DSSKey'):
        key_types.append(('DSA', paramiko.DSSKey))

    password = passphrase or None
    last_exception = None

    for key_name, key_class in key_types:
        try:
            pkey = key_class.from_private_key_file(key_file, password=password)
            logger.debug(f"Loaded {key_name} key from {key_file}")
            return pkey

        except paramiko.PasswordRequiredException:
            raise InvalidCredentials(f"Private key requires a passphrase: {key_file}")

        except (paramiko.SSHException, ValueError) as e:
            # Key might be different type, continue trying
            last_exception = e
            continue

        except OSError as e:
            raise InvalidCredentials(f"Cannot read private key {key_file}: {e}")

    raise InvalidCredentials(f"Could not load private key {key_file}. "
                             f"Make sure it's a valid RSA, ECDSA, or Ed25519 key "
                             f"and the passphrase is correct. "
                             f"Last error: {last_exception}")


def check_public_key(pkey: paramiko.PKey, public_key_file: str):
    """
    Make sure an OpenSSH public key file belongs to pkey.

    Raises:
        InvalidCredentials: unreadable, malformed, or a different key.
    """
    try:
        with open(public_key_file) as f:
            parts = f.read().split()
    except OSError as e:
        raise InvalidCredentials(f"Cannot read public key {public_key_file}: {e}")

    if len(parts) < 2:
        raise InvalidCredentials(f"Malformed public key file: {public_key_file}")

    if parts[1] != pkey.get_base64():
        raise InvalidCredentials(
            f"Public key {public_key_file} does not match the private key"
        )


class SessionManager:
    """
    Owns the lifecycle of one SSH connection.

    Not meant to be shared: the convenience execute()/upload() methods run
    one operation at a time, and callers that use ensure_connected()
    directly must serialize their own use of the transport.
    """

    def __init__(
        self,
        credentials: SSHCredentials,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        executor_options: Optional[ExecutorOptions] = None,
        transfer_options: Optional[TransferOptions] = None,
        client_factory: Optional[Callable[[], paramiko.SSHClient]] = None,
    ):
        """
        Initialize the manager. Does not connect.

        Args:
            credentials: Connection parameters. Re-validated before each
                         connection attempt.
            connect_timeout: TCP/SSH connect timeout in seconds.
            executor_options: Options for execute().
            transfer_options: Options for upload().
            client_factory: Builds the paramiko client (tests swap it).
        """
        self.credentials = credentials
        self.connect_timeout = connect_timeout
        self.executor = CommandExecutor(executor_options)
        self.transfer_options = transfer_options or TransferOptions()
        self._client_factory = client_factory or paramiko.SSHClient

        self._client: Optional[paramiko.SSHClient] = None
        self._lock = threading.RLock()
        self.connect_count = 0

    @classmethod
    def from_config(cls, config) -> "SessionManager":
        """Build a manager from a wsconnector Config."""
        execution = config.execution
        return cls(
            credentials=config.credentials(),
            connect_timeout=execution.connect_timeout,
            executor_options=ExecutorOptions(
                poll_interval=execution.poll_interval,
                chunk_size=execution.chunk_size,
                command_timeout=execution.command_timeout,
            ),
            transfer_options=TransferOptions(
                chunk_size=execution.chunk_size,
                ack_timeout=execution.ack_timeout,
            ),
        )

    @property
    def target(self) -> str:
        creds = self.credentials
        return f"{creds.user}@{creds.host}:{creds.port}"

    @property
    def is_connected(self) -> bool:
        """Check if a live transport exists."""
        return self._live_transport() is not None

    def _live_transport(self) -> Optional[paramiko.Transport]:
        if self._client is None:
            return None
        transport = self._client.get_transport()
        if transport is not None and transport.is_active():
            return transport
        return None

    def ensure_connected(self) -> paramiko.Transport:
        """
        Return the live transport, connecting first if needed.

        Returns:
            Authenticated paramiko Transport.

        Raises:
            InvalidCredentials: before any network I/O.
            AuthFailure: the server refused the key.
            HostKeyRejected: host key unknown/mismatched under STRICT.
            Unreachable: TCP or SSH negotiation failed.
        """
        with self._lock:
            transport = self._live_transport()
            if transport is not None:
                return transport

            if self._client is not None:
                logger.info(f"{self.target}: Session is no longer active, reconnecting")
                self._teardown()

            self._connect()
            return self._client.get_transport()

    def _connect(self):
        creds = self.credentials

        # Never cached: key files may have changed since the last connect
        creds.validate()
        pkey = load_private_key(creds.private_key_file, creds.passphrase)
        check_public_key(pkey, creds.public_key_file)

        client = self._client_factory()
        try:
            self._apply_host_key_policy(client)

            logger.info(f"Connecting to {self.target}...")
            self.connect_count += 1

            client.connect(
                hostname=creds.host,
                port=creds.port_number,
                username=creds.user,
                pkey=pkey,
                timeout=self.connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )

        except InvalidCredentials:
            client.close()
            raise

        except paramiko.AuthenticationException as e:
            client.close()
            logger.warning(f"{self.target}: Authentication failed: {e}")
            raise AuthFailure(f"Authentication failed for {self.target}: {e}",
                              host=creds.host, port=creds.port_number) from e

        except paramiko.BadHostKeyException as e:
            client.close()
            logger.warning(f"{self.target}: Host key mismatch: {e}")
            raise HostKeyRejected(f"Host key mismatch for {creds.host}: {e}",
                                  host=creds.host, port=creds.port_number) from e

        except (paramiko.SSHException, socket.error, OSError) as e:
            client.close()
            category = categorize_ssh_error(e)
            logger.warning(f"{self.target}: Connection failed ({category.value}): {e}")
            if "known_hosts" in str(e):
                # RejectPolicy under STRICT
                raise HostKeyRejected(f"Unknown host key for {creds.host}: {e}",
                                      host=creds.host, port=creds.port_number) from e
            raise Unreachable(f"Cannot connect to {self.target}: {e}",
                              host=creds.host, port=creds.port_number) from e

        self._client = client
        logger.info(f"Connected to {self.target}")

    def _apply_host_key_policy(self, client: paramiko.SSHClient):
        creds = self.credentials
        if creds.host_key_policy is HostKeyPolicy.INSECURE:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            return

        client.load_system_host_keys()
        if creds.known_hosts_path:
            known_hosts = os.path.expanduser(creds.known_hosts_path)
            try:
                client.load_host_keys(known_hosts)
            except OSError as e:
                raise InvalidCredentials(f"Cannot read known_hosts {known_hosts}: {e}")
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

    def close(self):
        """Disconnect. Safe to call any number of times."""
        with self._lock:
            if self._client is None:
                return
            logger.debug(f"{self.target}: Disconnecting...")
            self._teardown()
            logger.info(f"{self.target}: Closed ssh session")

    def _teardown(self):
        client = self._client
        self._client = None
        try:
            client.close()
        except Exception as e:
            # The session is gone either way; only report it
            logger.warning(f"{self.target}: Disconnect error (non-fatal): {e}")

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Single-operation helpers

    def execute(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        """Connect if needed and run one command (see CommandExecutor.execute)."""
        with self._lock:
            transport = self.ensure_connected()
            return self.executor.execute(transport, command, timeout=timeout)

    def upload(self, content: LocalContent, remote_path: str) -> TransferResult:
        """Connect if needed and upload content to remote_path (see scp.upload)."""
        with self._lock:
            transport = self.ensure_connected()
            return upload(transport, content, remote_path, self.transfer_options)
