"""
Remote filesystem operations on the web server.

Thin wrappers that turn listing/copy/delete requests into shell commands
for the session's executor, and uploads into scp sink transfers. Paths are
shell-quoted here.
"""

import logging
import shlex
from pathlib import Path
from typing import List, Optional, Union

from wsconnector.errors import RemoteCommandError
from wsconnector.ssh.executor import CommandResult
from wsconnector.ssh.scp import LocalContent, TransferResult, sink_basename
from wsconnector.ssh.session import SessionManager


logger = logging.getLogger(__name__)


class RemoteFilesystem:
    """
    Filesystem helpers over one SessionManager.

    Usage:
        fs = RemoteFilesystem(manager)
        for name in fs.list_dir("/var/www/example/css"):
            print(name)
        fs.remove("/var/www/example/css/old.css", sudo=True)
    """

    def __init__(self, session: SessionManager):
        self.session = session

    def run(self, command: str, check: bool = True, sudo: bool = False) -> CommandResult:
        """
        Execute a command.

        Args:
            command: Shell command.
            check: Raise if the command exits non-zero.
            sudo: Prefix with sudo.

        Raises:
            RemoteCommandError: the command did not run, or (with check)
                                exited non-zero.
        """
        if sudo:
            command = f"sudo {command}"

        result = self.session.execute(command)
        if not result.success:
            raise RemoteCommandError(
                f"Command {command!r} did not run ({result.error_category.value}): {result.error}",
                result=result,
            )
        if check and result.exit_status != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RemoteCommandError(
                f"Command {command!r} exited {result.exit_status}"
                + (f": {stderr}" if stderr else ""),
                result=result,
            )
        return result

    def list_dir(self, path: str) -> List[str]:
        """Names in a remote directory, one per line of `ls -1`."""
        return self.run(f"ls -1 {shlex.quote(path)}").lines()

    def exists(self, path: str) -> bool:
        return self.run(f"test -e {shlex.quote(path)}", check=False).exit_status == 0

    def make_dirs(self, path: str, sudo: bool = False):
        self.run(f"mkdir -p {shlex.quote(path)}", sudo=sudo)

    def remove(self, path: str, recursive: bool = False, sudo: bool = False):
        flags = "-rf" if recursive else "-f"
        self.run(f"rm {flags} {shlex.quote(path)}", sudo=sudo)

    def copy(self, source: str, destination: str, recursive: bool = True, sudo: bool = False):
        flags = "-r " if recursive else ""
        self.run(f"cp {flags}{shlex.quote(source)} {shlex.quote(destination)}", sudo=sudo)

    def chown(self, path: str, owner: str, recursive: bool = False, sudo: bool = True):
        flags = "-R " if recursive else ""
        self.run(f"chown {flags}{shlex.quote(owner)} {shlex.quote(path)}", sudo=sudo)

    def read_file(self, path: str) -> bytes:
        """Raw contents of a remote file."""
        return self.run(f"cat {shlex.quote(path)}").stdout

    def upload(self, content: LocalContent, remote_path: str) -> TransferResult:
        """Upload content to remote_path (quoted for the remote shell)."""
        return self.session.upload(content, shlex.quote(remote_path))

    def upload_file(
        self,
        local_path: Union[str, Path],
        remote_dir: str,
        name: Optional[str] = None,
    ) -> TransferResult:
        """
        Upload a local file into remote_dir.

        Args:
            local_path: File to send.
            remote_dir: Existing remote directory.
            name: Remote file name (default: local file name).
        """
        with LocalContent.from_path(local_path) as content:
            remote_name = name or sink_basename(content.name)
            remote_path = f"{remote_dir.rstrip('/')}/{remote_name}"
            return self.upload(content, remote_path)
