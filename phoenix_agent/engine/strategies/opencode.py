"""opencode backend.

opencode reads provider API keys from ``$XDG_DATA_HOME/opencode/auth.json``.
Auth is a manual token paste: we point the operator at the provider's
key console and store whatever they submit.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

from phoenix_agent.engine.bridge import ConnectionBridge
from phoenix_agent.engine.errors import AuthInProgressError
from phoenix_agent.engine.events import UNAUTHENTICATED
from phoenix_agent.shared.services.durable_write import atomic_write_json, read_json

from .base import AuthSession, BackendStrategy

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "anthropic"

CONSOLE_URLS = {
    "anthropic": "https://console.anthropic.com/settings/keys",
    "openai": "https://platform.openai.com/api-keys",
    "google": "https://aistudio.google.com/app/apikey",
    "openrouter": "https://openrouter.ai/settings/keys",
}
_FALLBACK_CONSOLE_URL = "https://opencode.ai/docs/providers"


def opencode_data_dir() -> Path:
    base = os.getenv("XDG_DATA_HOME")
    root = Path(base).expanduser() if base else Path.home() / ".local" / "share"
    return root / "opencode"


class OpencodeStrategy(BackendStrategy):
    """Strategy backed by the opencode CLI (``opencode``)."""

    default_command = "opencode"

    def __init__(self, *, provider: str | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._provider = (provider or os.getenv("OPENCODE_PROVIDER") or DEFAULT_PROVIDER).strip()
        self._auth_file = opencode_data_dir() / "auth.json"

    @property
    def name(self) -> str:
        return "opencode"

    @property
    def auth_file(self) -> Path:
        return self._auth_file

    @property
    def console_url(self) -> str:
        return CONSOLE_URLS.get(self._provider, _FALLBACK_CONSOLE_URL)

    async def _check_auth_status(self) -> bool:
        if not self._auth_file.is_file():
            return False
        data = read_json(self._auth_file, None)
        if not isinstance(data, dict):
            return False
        return any(
            isinstance(entry, dict) and bool(entry.get("key") or entry.get("access"))
            for entry in data.values()
        )

    async def execute_auth(self, bridge: ConnectionBridge) -> None:
        if self._auth_session is not None:
            raise AuthInProgressError(self.name)
        self._auth_session = AuthSession(bridge=bridge)
        logger.info("Waiting for %s API key for opencode", self._provider)
        bridge.auth_url_generated(self.console_url)

    async def submit_auth_code(self, code: str) -> bool:
        session = self._auth_session
        if session is None:
            logger.error("No pending opencode authentication to store a key for")
            return False

        key = (code or "").strip()
        if not key:
            session.bridge.error("API key must not be empty")
            return True

        self._auth_session = None
        existing = read_json(self._auth_file, {}) if self._auth_file.is_file() else {}
        data = existing if isinstance(existing, dict) else {}
        data[self._provider] = {"type": "api", "key": key}
        try:
            atomic_write_json(self._auth_file, data)
        except OSError as exc:
            logger.error("Could not write %s: %s", self._auth_file, exc)
            session.bridge.error(f"Could not store API key: {exc}")
            session.bridge.auth_status(UNAUTHENTICATED)
            return True

        logger.info("Stored %s API key for opencode", self._provider)
        session.bridge.auth_success()
        return True

    def clear_credentials(self) -> None:
        if self._auth_file.is_file():
            logger.info("Deleting credential file: %s", self._auth_file)
        self._auth_file.unlink(missing_ok=True)
        logger.info("opencode credentials cleared")

    def prompt_args(self, prompt: str, model: str | None) -> list[str]:
        args = ["run"]
        if self.has_session:
            args.append("--continue")
        return args + [*self.get_model_args(model), prompt]
