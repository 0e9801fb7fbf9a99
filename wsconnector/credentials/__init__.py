"""Connection credentials."""

from wsconnector.credentials.models import SSHCredentials, HostKeyPolicy

__all__ = [
    "SSHCredentials",
    "HostKeyPolicy",
]
