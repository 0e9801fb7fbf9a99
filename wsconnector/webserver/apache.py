"""
Apache virtual host and resource management over SSH.

Path: wsconnector/webserver/apache.py

Works against a Debian-style layout (sites-available / sites-enabled,
a2ensite / a2dissite). Every operation is a handful of shell commands
handed to the RemoteFilesystem, plus scp uploads for resources.

Usage:
    with SessionManager.from_config(config) as manager:
        apache = ApacheConnector(RemoteFilesystem(manager), config.apache)
        for domain in apache.list_virtual_hosts("disabled"):
            apache.enable_virtual_host(domain)
        apache.create_resource("example.com", "site.css", b"body {}", "css")
"""

import logging
import re
import shlex
from typing import List, Optional, Union

from wsconnector.core.config import ApacheConfig
from wsconnector.errors import VirtualHostNotFound
from wsconnector.ssh.scp import LocalContent, TransferResult
from wsconnector.webserver.remote_fs import RemoteFilesystem


logger = logging.getLogger(__name__)

FILTER_ALL = "all"
FILTER_ENABLED = "enabled"
FILTER_DISABLED = "disabled"

_SSL_ENGINE_ON = re.compile(r"^\s*SSLEngine\s+on\b", re.IGNORECASE | re.MULTILINE)
_DOCUMENT_ROOT = re.compile(r"^\s*DocumentRoot\s+(.+?)\s*$", re.IGNORECASE | re.MULTILINE)


class ApacheConnector:
    """Manage Apache virtual hosts and their static resources."""

    def __init__(self, fs: RemoteFilesystem, config: Optional[ApacheConfig] = None):
        self.fs = fs
        self.config = config or ApacheConfig()

    @property
    def sudo(self) -> bool:
        return self.config.use_sudo

    def _site_file(self, domain: str) -> str:
        return f"{self.config.sites_available.rstrip('/')}/{domain}"

    # Virtual hosts

    def list_virtual_hosts(self, filter: str = FILTER_ALL) -> List[str]:
        """
        List site configurations.

        Args:
            filter: "all", "enabled" or "disabled".

        Returns:
            Site names in `ls` order.
        """
        if filter == FILTER_ALL:
            return self.fs.list_dir(self.config.sites_available)
        if filter == FILTER_ENABLED:
            return self.fs.list_dir(self.config.sites_enabled)
        if filter == FILTER_DISABLED:
            enabled = set(self.fs.list_dir(self.config.sites_enabled))
            return [site for site in self.fs.list_dir(self.config.sites_available)
                    if site not in enabled]
        raise ValueError(f"Unknown virtual host filter: {filter!r}")

    def get_document_root(self, domain: str) -> Optional[str]:
        """DocumentRoot of a site, or None if the site or directive is missing."""
        result = self.fs.run(f"grep -i DocumentRoot {shlex.quote(self._site_file(domain))}",
                             check=False)
        match = _DOCUMENT_ROOT.search(result.text)
        if match is None:
            return None
        return match.group(1).strip('"\'')

    def _require_document_root(self, domain: str) -> str:
        document_root = self.get_document_root(domain)
        if not document_root:
            raise VirtualHostNotFound(f"No DocumentRoot configured for {domain}")
        return document_root

    def is_ssl_enabled(self, domain: str) -> bool:
        if not self.fs.exists(self._site_file(domain)):
            raise VirtualHostNotFound(f"No site configuration for {domain}")
        content = self.fs.read_file(self._site_file(domain)).decode("utf-8", errors="replace")
        return _SSL_ENGINE_ON.search(content) is not None

    def enable_virtual_host(self, domain: str):
        self.fs.run(f"a2ensite {shlex.quote(domain)}", sudo=self.sudo)
        self.reload()
        logger.debug(f"enabled virtual host configuration for domain {domain}")

    def disable_virtual_host(self, domain: str):
        self.fs.run(f"a2dissite {shlex.quote(domain)}", sudo=self.sudo)
        self.reload()
        logger.debug(f"disabled virtual host configuration for domain {domain}")

    def delete_virtual_host(self, domain: str):
        """Disable a site, then remove its document root and configuration."""
        document_root = self.get_document_root(domain)
        self.disable_virtual_host(domain)
        if document_root:
            self.fs.remove(document_root, recursive=True, sudo=self.sudo)
        self.fs.remove(self._site_file(domain), sudo=self.sudo)
        logger.debug(f"disabled and deleted virtual host for domain {domain}")

    def fix_ownership(self, domain: str):
        """Hand the document root back to the web server user."""
        owner = f"{self.config.web_user}:{self.config.web_group}"
        self.fs.chown(self._require_document_root(domain), owner, recursive=True, sudo=self.sudo)

    def reload(self):
        self.fs.run(f"service {shlex.quote(self.config.service)} reload", sudo=self.sudo)

    # Resources

    def _resource_dir(self, domain: str, path: Optional[str] = None) -> str:
        document_root = self._require_document_root(domain).rstrip("/")
        if path:
            return f"{document_root}/{path.strip('/')}"
        return document_root

    def create_resource(
        self,
        domain: str,
        name: str,
        content: Union[bytes, LocalContent],
        upload_path: Optional[str] = None,
    ) -> TransferResult:
        """
        Upload a resource below the domain's document root.

        Args:
            domain: Site name.
            name: Remote file name.
            content: Raw bytes or LocalContent.
            upload_path: Optional directory below the document root.

        Returns:
            Successful TransferResult.

        Raises:
            VirtualHostNotFound: no document root for domain.
            TransferFailure: the upload was rejected or broke.
        """
        target_dir = self._resource_dir(domain, upload_path)
        self.fs.make_dirs(target_dir, sudo=self.sudo)

        remote_path = f"{target_dir}/{name}"
        if isinstance(content, (bytes, bytearray)):
            with LocalContent.from_bytes(bytes(content), name) as owned:
                result = self.fs.upload(owned, remote_path)
        else:
            # Caller's content; the caller closes it
            result = self.fs.upload(content, remote_path)
        return result.raise_for_failure()

    def list_resources(self, domain: str, path: Optional[str] = None) -> List[str]:
        return self.fs.list_dir(self._resource_dir(domain, path))

    def read_resource(self, domain: str, name: str, path: Optional[str] = None) -> bytes:
        return self.fs.read_file(f"{self._resource_dir(domain, path)}/{name}")

    def delete_resource(self, domain: str, name: str, path: Optional[str] = None):
        self.fs.remove(f"{self._resource_dir(domain, path)}/{name}", sudo=self.sudo)

    def copy_resources(self, source_domain: str, destination_domain: str):
        """Copy everything under one document root into another."""
        source = self._resource_dir(source_domain)
        destination = self._resource_dir(destination_domain)
        self.fs.copy(f"{source}/.", destination, recursive=True, sudo=self.sudo)

    def copy_resource(
        self,
        source_domain: str,
        destination_domain: str,
        name: str,
        path: Optional[str] = None,
    ):
        """Copy one resource to the same relative location in another domain."""
        source = f"{self._resource_dir(source_domain, path)}/{name}"
        destination_dir = self._resource_dir(destination_domain, path)
        self.fs.make_dirs(destination_dir, sudo=self.sudo)
        self.fs.copy(source, f"{destination_dir}/{name}", recursive=False, sudo=self.sudo)
