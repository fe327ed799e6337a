"""HTTP handlers for the autoscaler API.

A handler is a callable taking a werkzeug request, plus any URL parameters
as keyword arguments, and returning a werkzeug response.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import Any, Callable

import requests
from werkzeug.wrappers import Request, Response

from .metrics import CONTENT_TYPE, Registry, default_registry
from .model import Server, ServerState, ServerStore
from .writer import (
    FORBIDDEN,
    INVALID_TOKEN,
    UNAUTHORIZED,
    _parse_bool,
    write_error,
    write_forbidden,
    write_json,
    write_not_found,
    write_unauthorized,
)

log = logging.getLogger(__name__)

Handler = Callable[..., Response]

USERNAME_KEY = "autoscaler.username"

_NAME_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

_AUTH_TIMEOUT = 30.0


def _plain_error(message: str, status: int) -> Response:
    response = Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def check_drone(server_url: str) -> Callable[[Handler], Handler]:
    """Return middleware that admits only administrators of the Drone server."""
    base = server_url.rstrip("/")

    def middleware(next_handler: Handler) -> Handler:
        def handler(request: Request, **params: Any) -> Response:
            token = request.headers.get("Authorization", "")
            if token.startswith("Bearer "):
                token = token[len("Bearer "):]
            token = token.strip()
            if not token:
                log.debug("missing authorization header")
                return write_unauthorized(INVALID_TOKEN)

            try:
                reply = requests.get(
                    f"{base}/api/user",
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=_AUTH_TIMEOUT,
                )
                reply.raise_for_status()
                user = reply.json()
            except (requests.RequestException, ValueError):
                log.error("cannot authenticate user", exc_info=True)
                return write_unauthorized(UNAUTHORIZED)
            if not isinstance(user, dict):
                log.error("cannot authenticate user: unexpected response")
                return write_unauthorized(UNAUTHORIZED)

            login = str(user.get("login") or "")
            if not user.get("admin"):
                log.error("insufficient privileges for user %s", login)
                return write_forbidden(FORBIDDEN)

            log.debug("user %s authorized", login)
            request.environ[USERNAME_KEY] = login
            return next_handler(request, **params)

        return handler

    return middleware


def handle_engine_pause(engine: Any) -> Handler:
    """Return a handler that pauses the scaling engine."""

    def handler(request: Request, **params: Any) -> Response:
        engine.pause()
        return Response(status=204)

    return handler


def handle_engine_resume(engine: Any) -> Handler:
    """Return a handler that resumes the scaling engine."""

    def handler(request: Request, **params: Any) -> Response:
        engine.resume()
        return Response(status=204)

    return handler


def handle_healthz() -> Handler:
    """Return a handler that reports the system as healthy."""

    def handler(request: Request, **params: Any) -> Response:
        return Response("OK", status=200, content_type="text/plain")

    return handler


def handle_metrics(token: str, registry: Registry | None = None) -> Handler:
    """Return a handler that writes metrics in the Prometheus text format."""
    registry = registry if registry is not None else default_registry()

    def serve() -> Response:
        return Response(registry.expose(), status=200, content_type=CONTENT_TYPE)

    def handler(request: Request, **params: Any) -> Response:
        if not token:
            return serve()
        header = request.headers.get("Authorization", "")
        if not header or header != f"Bearer {token}":
            return _plain_error(INVALID_TOKEN, 401)
        return serve()

    return handler


def handle_server_list(servers: ServerStore) -> Handler:
    """Return a handler that writes the json-encoded server list."""

    def handler(request: Request, **params: Any) -> Response:
        try:
            items = servers.list()
        except Exception as err:
            log.error("cannot get server list: %s", err)
            return write_error(err)
        return write_json(list(items), 200)

    return handler


def handle_server_find(servers: ServerStore) -> Handler:
    """Return a handler that writes the named json-encoded server."""

    def handler(request: Request, name: str = "", **params: Any) -> Response:
        try:
            server = servers.find(name)
        except Exception as err:
            log.error("cannot get server %s: %s", name, err)
            return write_not_found(err)
        return write_json(server, 200)

    return handler


def handle_server_delete(servers: ServerStore) -> Handler:
    """Return a handler that schedules the named server for shutdown.

    A server stuck in the error state without an instance id, or any
    errored server when force is set, is removed from the store directly.
    """

    def handler(request: Request, name: str = "", **params: Any) -> Response:
        force = _parse_bool(request.values.get("force"))
        try:
            server = servers.find(name)
        except Exception as err:
            log.error("cannot get server %s: %s", name, err)
            return write_not_found(err)

        if server.state == ServerState.ERROR and (server.id == "" or force):
            log.info(
                "force delete server %s from database (state=%s, force=%s)",
                server.name,
                server.state,
                force,
            )
            try:
                servers.delete(server)
            except Exception as err:
                log.error("cannot delete instance %s: %s", server.name, err)
                return write_error(err)
            return Response(status=204)

        log.info(
            "schedule server %s shutdown (state=%s, force=%s)", server.name, server.state, force
        )
        server.state = ServerState.SHUTDOWN
        try:
            servers.update(server)
        except Exception as err:
            log.error("cannot update server %s: %s", server.name, err)
            return write_error(err)
        return write_json(server, 200)

    return handler


def handle_server_create(servers: ServerStore, name_prefix: str = "", concurrency: int = 0) -> Handler:
    """Return a handler that records a new pending server."""

    def handler(request: Request, **params: Any) -> Response:
        suffix = "".join(secrets.choice(_NAME_ALPHABET) for _ in range(8))
        server = Server(
            name=name_prefix + suffix,
            state=ServerState.PENDING,
            capacity=concurrency,
        )
        try:
            servers.create(server)
        except Exception as err:
            log.error("cannot persist server: %s", err)
            return write_error(err)
        return write_json(server, 200)

    return handler


def handle_varz(engine: Any) -> Handler:
    """Return a handler that writes runtime information."""

    def handler(request: Request, **params: Any) -> Response:
        return write_json({"paused": bool(engine.paused())}, 200)

    return handler


def handle_version(source: str, version: str, commit: str) -> Handler:
    """Return a handler that writes the version and build details."""
    info = {
        key: value
        for key, value in (("source", source), ("version", version), ("commit", commit))
        if value
    }

    def handler(request: Request, **params: Any) -> Response:
        return write_json(info, 200)

    return handler