"""Web server management on top of the SSH engine."""

from wsconnector.webserver.apache import (
    ApacheConnector,
    FILTER_ALL,
    FILTER_DISABLED,
    FILTER_ENABLED,
)
from wsconnector.webserver.remote_fs import RemoteFilesystem

__all__ = [
    "ApacheConnector",
    "RemoteFilesystem",
    "FILTER_ALL",
    "FILTER_ENABLED",
    "FILTER_DISABLED",
]
