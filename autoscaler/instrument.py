"""Wrappers that record server and provider activity as metrics."""

from __future__ import annotations

import logging
from typing import Any

from .metrics import Counter, GaugeFunc, Registry, default_registry
from .model import Instance, InstanceCreateOpts, Provider, Server, ServerState, ServerStore

log = logging.getLogger(__name__)


def _running(store: ServerStore) -> list[Server]:
    try:
        return list(store.list_state(ServerState.RUNNING) or [])
    except Exception:  # a failing store reports an empty fleet
        log.debug("cannot list running servers", exc_info=True)
        return []


def server_capacity(store: ServerStore, registry: Registry | None = None) -> ServerStore:
    """Register a gauge with the total capacity of running servers."""
    registry = registry if registry is not None else default_registry()
    registry.register(
        GaugeFunc(
            "drone_server_capacity",
            "Total capacity of active servers.",
            lambda: float(sum(server.capacity for server in _running(store))),
        )
    )
    return store


def server_count(store: ServerStore, registry: Registry | None = None) -> ServerStore:
    """Register a gauge with the number of running servers."""
    registry = registry if registry is not None else default_registry()
    registry.register(
        GaugeFunc(
            "drone_server_count",
            "Total number of active servers.",
            lambda: float(len(_running(store))),
        )
    )
    return store


class _CountingProvider(Provider):
    """Delegates to another provider; subclasses count one operation."""

    def __init__(self, provider: Provider, succeeded: Counter, failed: Counter) -> None:
        self._provider = provider
        self._succeeded = succeeded
        self._failed = failed

    def create(self, opts: InstanceCreateOpts) -> Instance:
        return self._provider.create(opts)

    def destroy(self, instance: Instance) -> None:
        self._provider.destroy(instance)

    def __getattr__(self, name: str) -> Any:
        provider = self.__dict__.get("_provider")
        if provider is None:
            raise AttributeError(name)
        return getattr(provider, name)


class _CreateCountingProvider(_CountingProvider):
    def create(self, opts: InstanceCreateOpts) -> Instance:
        try:
            instance = self._provider.create(opts)
        except Exception:
            self._failed.add(1)
            raise
        self._succeeded.add(1)
        return instance


class _DestroyCountingProvider(_CountingProvider):
    def destroy(self, instance: Instance) -> None:
        try:
            self._provider.destroy(instance)
        except Exception:
            self._failed.add(1)
            raise
        self._succeeded.add(1)


def server_create(provider: Provider, registry: Registry | None = None) -> Provider:
    """Wrap a provider so that created servers and failures are counted."""
    registry = registry if registry is not None else default_registry()
    created = Counter("drone_servers_created", "Total number of servers created.")
    errors = Counter("drone_servers_created_err", "Total number of server creation errors.")
    registry.register(created)
    registry.register(errors)
    return _CreateCountingProvider(provider, created, errors)


def server_delete(provider: Provider, registry: Registry | None = None) -> Provider:
    """Wrap a provider so that destroyed servers and failures are counted."""
    registry = registry if registry is not None else default_registry()
    deleted = Counter("drone_servers_deleted", "Total number of servers deleted.")
    errors = Counter("drone_servers_deleted_err", "Total number of server deletion errors.")
    registry.register(deleted)
    registry.register(errors)
    return _DestroyCountingProvider(provider, deleted, errors)