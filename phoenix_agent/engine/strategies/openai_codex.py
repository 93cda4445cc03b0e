"""OpenAI Codex CLI backend.

Login uses the device-code flow (``codex login --device-auth``): the CLI
prints a verification URL and a one-time code the operator enters on
another device. Auth status is read from the credential file the CLI
writes, no subprocess needed.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path

from phoenix_agent.engine.bridge import ConnectionBridge
from phoenix_agent.shared.services.durable_write import read_json

from .base import BackendStrategy
from .classifier import AUTH_URL, DEVICE_CODE, PatternClassifier
from .process import kill_process, pump_stream, strip_ansi

logger = logging.getLogger(__name__)

_TOKEN_KEYS = ("access_token", "token", "api_key", "OPENAI_API_KEY")


def codex_home() -> Path:
    override = os.getenv("CODEX_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".codex"


def has_codex_token(data: object) -> bool:
    """True when a parsed auth.json carries a usable credential."""
    if not isinstance(data, dict):
        return False
    if any(data.get(key) for key in _TOKEN_KEYS):
        return True
    tokens = data.get("tokens")
    return isinstance(tokens, dict) and bool(tokens.get("access_token"))


class OpenAICodexStrategy(BackendStrategy):
    """Strategy backed by the Codex CLI (``codex``)."""

    default_command = "codex"
    model_flag = "-m"
    supports_logout = True
    auth_classifier = PatternClassifier((
        (AUTH_URL, re.compile(r"https://[^\s\"'>]+")),
        (DEVICE_CODE, re.compile(r"\b([A-Z0-9]{4}-[A-Z0-9]{4,5})\b")),
    ))

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._auth_file = codex_home() / "auth.json"

    @property
    def name(self) -> str:
        return "openai-codex"

    @property
    def auth_file(self) -> Path:
        return self._auth_file

    def auth_args(self) -> list[str]:
        return ["login", "--device-auth"]

    async def _check_auth_status(self) -> bool:
        if not self._auth_file.is_file():
            return False
        return has_codex_token(read_json(self._auth_file, None))

    def clear_credentials(self) -> None:
        if self._auth_file.is_file():
            logger.info("Deleting credential file: %s", self._auth_file)
        self._auth_file.unlink(missing_ok=True)
        logger.info("Codex credentials cleared")

    async def execute_logout(self, bridge: ConnectionBridge) -> None:
        """Run ``codex logout``, streaming its output, then forget local state."""
        self.cancel_auth()
        try:
            proc = await self._spawn(["logout"])
        except OSError as exc:
            logger.error("Could not start codex logout: %s", exc)
            bridge.logout_output(f"codex logout unavailable: {exc}\n")
        else:
            def on_text(text: str) -> None:
                clean = strip_ansi(text)
                if clean:
                    bridge.logout_output(clean)

            try:
                await asyncio.gather(
                    pump_stream(proc.stdout, on_text),
                    pump_stream(proc.stderr, on_text),
                )
                code = await proc.wait()
                logger.info("codex logout exited with code %s", code)
            except (OSError, ValueError) as exc:
                logger.error("codex logout failed: %s", exc)
            finally:
                kill_process(proc)

        try:
            self.clear_credentials()
        except OSError:
            logger.exception("Error clearing Codex credentials during logout")
        self.has_session = False
        bridge.logout_success()

    def prompt_args(self, prompt: str, model: str | None) -> list[str]:
        args = ["exec"]
        if self.has_session:
            args += ["resume", "--last"]
        return args + ["--yolo", *self.get_model_args(model), prompt]
