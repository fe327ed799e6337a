"""Slack notifications for server lifecycle changes."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from .model import Server, ServerState, ServerStore

log = logging.getLogger(__name__)

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY
_MONTH = 30 * _DAY
_YEAR = 12 * _MONTH
_LONG_TIME = 37 * _YEAR

# (upper bound in seconds, format, divisor)
_MAGNITUDES: tuple[tuple[float, str, float], ...] = (
    (1, "now", 1),
    (2, "1 second {label}", 1),
    (_MINUTE, "{n} seconds {label}", 1),
    (2 * _MINUTE, "1 minute {label}", 1),
    (_HOUR, "{n} minutes {label}", _MINUTE),
    (2 * _HOUR, "1 hour {label}", 1),
    (_DAY, "{n} hours {label}", _HOUR),
    (2 * _DAY, "1 day {label}", 1),
    (_WEEK, "{n} days {label}", _DAY),
    (2 * _WEEK, "1 week {label}", 1),
    (_MONTH, "{n} weeks {label}", _WEEK),
    (2 * _MONTH, "1 month {label}", 1),
    (_YEAR, "{n} months {label}", _MONTH),
    (18 * _MONTH, "1 year {label}", 1),
    (2 * _YEAR, "2 years {label}", 1),
    (_LONG_TIME, "{n} years {label}", _YEAR),
    (float("inf"), "a long while {label}", 1),
)


def humanize_time(unix: int, now: float | None = None) -> str:
    """Describe the distance between a unix timestamp and now, e.g. "1 hour"."""
    now = time.time() if now is None else now
    diff = abs(now - unix)
    fmt, divisor = next((f, d) for bound, f, d in _MAGNITUDES if bound > diff)
    return fmt.format(n=int(diff // divisor), label="").strip()


def _field(title: str, value: str) -> dict[str, Any]:
    return {"title": title, "value": value, "short": False}


def _payload(text: str, color: str, fields: list[dict[str, Any]]) -> dict[str, Any]:
    return {"text": text, "attachments": [{"color": color, "fields": fields}]}


class SlackNotifier(ServerStore):
    """A server store that posts to a Slack webhook when servers change state."""

    def __init__(
        self,
        base: ServerStore,
        webhook: str,
        create: bool = False,
        destroy: bool = False,
        error: bool = False,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._store = base
        self.webhook = webhook
        self.notify_create = create
        self.notify_destroy = destroy
        self.notify_error = error
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout

    def find(self, name: str) -> Server:
        return self._store.find(name)

    def list(self) -> list[Server]:
        return self._store.list()

    def list_state(self, state: ServerState) -> list[Server]:
        return self._store.list_state(state)

    def create(self, server: Server) -> None:
        self._store.create(server)

    def delete(self, server: Server) -> None:
        self._store.delete(server)

    def purge(self, before: int) -> None:
        self._store.purge(before)

    def update(self, server: Server) -> None:
        """Update the record, then notify Slack according to the new state."""
        try:
            self._store.update(server)
        finally:
            payload = self._payload_for(server)
            if payload is not None:
                self._post(payload)

    def _payload_for(self, server: Server) -> dict[str, Any] | None:
        if server.state == ServerState.RUNNING and self.notify_create:
            return _payload(
                f"Provisioned server instance {server.name}",
                "#00BFA5",
                [
                    _field("Name", server.name),
                    _field("Size", server.size),
                    _field("Region", server.region),
                ],
            )
        if server.state == ServerState.STOPPED and self.notify_destroy:
            return _payload(
                f"Terminated server instance {server.name}",
                "#CFD8DC",
                [
                    _field("Name", server.name),
                    _field("Size", server.size),
                    _field("Region", server.region),
                    _field("Uptime", humanize_time(server.created)),
                ],
            )
        if server.state == ServerState.ERROR and self.notify_error:
            return _payload(
                f"Problem with server instance {server.name}",
                "#F44336",
                [
                    _field("Name", server.name),
                    _field("Error", server.error),
                ],
            )
        return None

    def _post(self, payload: dict[str, Any]) -> None:
        try:
            response = self._session.post(self.webhook, json=payload, timeout=self._timeout)
        except requests.RequestException:
            log.warning("cannot post slack notification", exc_info=True)
            return
        if not response.ok:
            log.warning("slack webhook returned status %s", response.status_code)