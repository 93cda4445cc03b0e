"""ConnectionBridge: the callback table a strategy reports through.

The Orchestrator builds a fresh bridge for every auth or logout attempt.
Once the attempt is superseded (cancelled, re-initiated, logged out) the
bridge goes stale and every method silently becomes a no-op, so a
strategy never needs to know whether anyone is still listening.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _noop(*_args: object) -> None:
    return None


def _always() -> bool:
    return True


@dataclass
class ConnectionBridge:
    """Notification capability handed to a BackendStrategy."""

    on_auth_url: Callable[[str], None] = _noop
    on_device_code: Callable[[str, str | None], None] = _noop
    on_auth_success: Callable[[], None] = _noop
    on_auth_status: Callable[[str], None] = _noop
    on_error: Callable[[str], None] = _noop
    on_logout_output: Callable[[str], None] = _noop
    on_logout_success: Callable[[], None] = _noop
    is_current: Callable[[], bool] = field(default=_always, repr=False)
    label: str = "bridge"

    def _deliver(self, name: str, callback: Callable[..., None], *args: object) -> None:
        if not self.is_current():
            logger.debug("Dropping %s from stale %s", name, self.label)
            return
        callback(*args)

    def auth_url_generated(self, url: str) -> None:
        self._deliver("auth_url_generated", self.on_auth_url, url)

    def device_code(self, code: str, url: str | None = None) -> None:
        self._deliver("device_code", self.on_device_code, code, url)

    def auth_success(self) -> None:
        self._deliver("auth_success", self.on_auth_success)

    def auth_status(self, state: str) -> None:
        self._deliver("auth_status", self.on_auth_status, state)

    def error(self, message: str) -> None:
        self._deliver("error", self.on_error, message)

    def logout_output(self, text: str) -> None:
        self._deliver("logout_output", self.on_logout_output, text)

    def logout_success(self) -> None:
        self._deliver("logout_success", self.on_logout_success)
