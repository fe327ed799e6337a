"""Core data types: providers, instances and persisted servers."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Mapping


class _StrEnum(str, Enum):
    """String enumeration whose str() is its value."""

    def __str__(self) -> str:
        return self.value


class ProviderType(_StrEnum):
    """Hosting provider."""

    AMAZON = "amazon"
    AZURE = "azure"
    DIGITALOCEAN = "digitalocean"
    GOOGLE = "google"
    HETZNERCLOUD = "hetznercloud"
    LINODE = "linode"
    OPENSTACK = "openstack"
    PACKET = "packet"
    SCALEWAY = "scaleway"
    VULTR = "vultr"


class ServerState(_StrEnum):
    """Lifecycle state of a server."""

    PENDING = "pending"
    CREATING = "creating"
    CREATED = "created"
    STAGING = "staging"
    RUNNING = "running"
    SHUTDOWN = "shutdown"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class InstanceNotFoundError(LookupError):
    """The requested instance does not exist in the cloud provider."""

    def __init__(self, message: str = "Not Found") -> None:
        super().__init__(message)


class ServerNotFoundError(LookupError):
    """The requested server does not exist in the store."""

    def __init__(self, message: str = "Not Found") -> None:
        super().__init__(message)


class InstanceError(Exception):
    """An error creating an instance, with a snapshot of the server logs."""

    def __init__(self, err: BaseException | str, logs: bytes = b"") -> None:
        super().__init__(str(err))
        self.err = err
        self.logs = logs

    def __str__(self) -> str:
        return str(self.err)


@dataclass
class Instance:
    """A server instance at a cloud provider."""

    provider: ProviderType | str = ""
    id: str = ""
    name: str = ""
    address: str = ""
    region: str = ""
    image: str = ""
    size: str = ""
    service_account_email: str = ""
    scopes: list[str] = field(default_factory=list)


@dataclass
class InstanceCreateOpts:
    """Optional instructions for creating a server instance."""

    name: str = ""
    ca_key: bytes = b""
    ca_cert: bytes = b""
    tls_key: bytes = b""
    tls_cert: bytes = b""


_BYTES_FIELDS = frozenset({"ca_key", "ca_cert", "tls_key", "tls_cert"})
_INT_FIELDS = frozenset({"capacity", "created", "updated", "started", "stopped"})


def _coerce(enum_cls: type[Enum], value: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return "" if value is None else str(value)


@dataclass
class Server:
    """Persisted details of a server."""

    id: str = ""
    provider: ProviderType | str = ""
    state: ServerState | str = ""
    name: str = ""
    image: str = ""
    region: str = ""
    size: str = ""
    platform: str = ""
    address: str = ""
    capacity: int = 0
    secret: str = ""
    error: str = ""
    ca_key: bytes | None = None
    ca_cert: bytes | None = None
    tls_key: bytes | None = None
    tls_cert: bytes | None = None
    created: int = 0
    updated: int = 0
    started: int = 0
    stopped: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping; byte fields are base64 encoded."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, (bytes, bytearray)):
                value = base64.b64encode(bytes(value)).decode("ascii")
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Server":
        """Build a server from a mapping as produced by to_dict."""
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name == "provider":
                value = _coerce(ProviderType, value)
            elif f.name == "state":
                value = _coerce(ServerState, value)
            elif f.name in _BYTES_FIELDS:
                if isinstance(value, str):
                    value = base64.b64decode(value)
                elif value is not None:
                    value = bytes(value)
            elif f.name in _INT_FIELDS:
                value = int(value or 0)
            else:
                value = "" if value is None else str(value)
            kwargs[f.name] = value
        return cls(**kwargs)


class Provider(ABC):
    """A hosting provider responsible for server management."""

    @abstractmethod
    def create(self, opts: InstanceCreateOpts) -> Instance:
        """Create a new server instance."""

    @abstractmethod
    def destroy(self, instance: Instance) -> None:
        """Destroy an existing server instance."""


class ServerStore(ABC):
    """Persists server information."""

    @abstractmethod
    def find(self, name: str) -> Server:
        """Find a server by unique name."""

    @abstractmethod
    def list(self) -> list[Server]:
        """Return all registered servers."""

    @abstractmethod
    def list_state(self, state: ServerState) -> list[Server]:
        """Return all servers in the given state."""

    @abstractmethod
    def create(self, server: Server) -> None:
        """Create the server record."""

    @abstractmethod
    def update(self, server: Server) -> None:
        """Update the server record."""

    @abstractmethod
    def delete(self, server: Server) -> None:
        """Delete the server record."""

    @abstractmethod
    def purge(self, before: int) -> None:
        """Purge old server records."""