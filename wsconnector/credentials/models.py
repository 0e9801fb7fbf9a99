"""
Credential data models.

Connection parameters for the web server host. Pure data plus validity
checking; nothing here touches the network.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Mapping, Any

from wsconnector.errors import InvalidCredentials


class HostKeyPolicy(Enum):
    """How unknown server host keys are handled."""
    STRICT = "strict"
    INSECURE = "insecure"

    @classmethod
    def parse(cls, value: Any) -> "HostKeyPolicy":
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            # StrictHostKeyChecking yes/no style
            return cls.STRICT if value else cls.INSECURE
        text = str(value).strip().lower()
        if text in ("strict", "yes", "true"):
            return cls.STRICT
        if text in ("insecure", "no", "false", "accept-new", "accept"):
            return cls.INSECURE
        raise ValueError(f"Unknown host key policy: {value!r}")


@dataclass
class SSHCredentials:
    """SSH credentials for the web server host."""

    user: Optional[str]
    host: Optional[str]
    port: Any = 22
    public_key_path: Optional[str] = None
    private_key_path: Optional[str] = None
    passphrase: Optional[str] = None
    host_key_policy: HostKeyPolicy = HostKeyPolicy.INSECURE
    known_hosts_path: Optional[str] = None  # STRICT only

    @property
    def private_key_file(self) -> Optional[str]:
        return os.path.expanduser(self.private_key_path) if self.private_key_path else None

    @property
    def public_key_file(self) -> Optional[str]:
        return os.path.expanduser(self.public_key_path) if self.public_key_path else None

    @property
    def port_number(self) -> int:
        """Port as an int. Raises ValueError when it is not numeric."""
        if isinstance(self.port, bool):
            raise ValueError(f"Invalid port: {self.port!r}")
        return int(self.port)

    def problems(self) -> List[str]:
        """
        Return every reason these credentials cannot be used.

        The key files are checked on each call, so a key that becomes
        unreadable after a successful connect is still reported.
        """
        problems = []

        if not self.user:
            problems.append("user is missing")
        if not self.host:
            problems.append("host is missing")

        try:
            port = self.port_number
            if not 1 <= port <= 65535:
                problems.append(f"port {port} is outside 1-65535")
        except (TypeError, ValueError):
            problems.append(f"port {self.port!r} is not a number")

        for label, path in (("private key", self.private_key_file),
                            ("public key", self.public_key_file)):
            if not path:
                problems.append(f"{label} path is missing")
            elif not os.path.isfile(path):
                problems.append(f"{label} not found: {path}")
            elif not os.access(path, os.R_OK):
                problems.append(f"{label} not readable: {path}")

        return problems

    @property
    def is_usable(self) -> bool:
        return not self.problems()

    def validate(self):
        """Raise InvalidCredentials listing every problem found."""
        problems = self.problems()
        if problems:
            raise InvalidCredentials(
                "Invalid credentials: " + "; ".join(problems),
                problems=problems,
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SSHCredentials":
        """
        Build credentials from a flat mapping.

        Accepts both the short keys (publickey, privatekey) and the
        underscored ones (public_key, private_key).

        Args:
            data: Mapping with user, host, port, key paths, passphrase and
                  optionally host_key_policy and known_hosts.

        Returns:
            SSHCredentials (not validated).
        """
        policy = data.get("host_key_policy", data.get("strict_host_key_checking"))
        return cls(
            user=data.get("user") or data.get("username"),
            host=data.get("host"),
            port=data.get("port", 22),
            public_key_path=data.get("public_key", data.get("publickey")),
            private_key_path=data.get("private_key", data.get("privatekey")),
            passphrase=data.get("passphrase"),
            host_key_policy=HostKeyPolicy.parse(policy) if policy is not None else HostKeyPolicy.INSECURE,
            known_hosts_path=data.get("known_hosts"),
        )

    def __repr__(self) -> str:
        # Never print the passphrase
        return (f"SSHCredentials(user={self.user!r}, host={self.host!r}, port={self.port!r}, "
                f"private_key_path={self.private_key_path!r}, "
                f"host_key_policy={self.host_key_policy.value})")
