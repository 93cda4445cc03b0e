"""Claude Code CLI backend.

The interactive ``claude`` login prints an OAuth URL whose redirect
points at a short-lived HTTP server the CLI runs on localhost. The
browser can't reach that server from the operator's machine, so the
operator pastes the final callback URL (or just the code) back and we
replay it against the local server.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
from pathlib import Path
from urllib.parse import quote

import aiohttp

from .base import AuthSession, BackendStrategy
from .classifier import AUTH_URL, OutputEvent, PatternClassifier

logger = logging.getLogger(__name__)

CALLBACK_PORT_RE = re.compile(r"redirect_uri=http%3A%2F%2Flocalhost%3A(\d+)")
DEFAULT_CALLBACK_PORT = 8765
_CALLBACK_TIMEOUT = aiohttp.ClientTimeout(total=15)

_HEADLESS_ENV = {"BROWSER": "/bin/true", "DISPLAY": ""}


def claude_config_dir() -> Path:
    override = os.getenv("CLAUDE_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".claude"


def build_callback_url(user_input: str, port: int | None) -> str:
    """Turn pasted operator input into a URL on the CLI's callback server.

    - ``http://localhost...``: forwarded unchanged
    - ``?code=...&state=...``: appended to ``/callback``
    - anything else: treated as the bare code
    """
    text = (user_input or "").strip()
    if text.startswith("http://localhost"):
        return text
    base = f"http://localhost:{port or DEFAULT_CALLBACK_PORT}/callback"
    if text.startswith("?"):
        return base + text
    return f"{base}?code={quote(text, safe='')}"


class ClaudeCodeStrategy(BackendStrategy):
    """Strategy backed by the Claude Code CLI (``claude``)."""

    default_command = "claude"
    auth_classifier = PatternClassifier((
        (AUTH_URL, re.compile(r"https://claude\.ai/oauth[^\s\"'>)]+")),
    ))

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._config_dir = claude_config_dir()

    @property
    def name(self) -> str:
        return "claude-code"

    def _env(self) -> dict[str, str]:
        return dict(_HEADLESS_ENV)

    auth_env = prompt_env = _env

    def auth_args(self) -> list[str]:
        return []

    def _on_auth_event(self, session: AuthSession, event: OutputEvent) -> None:
        if event.kind == AUTH_URL:
            match = CALLBACK_PORT_RE.search(event.value)
            if match:
                session.scratch["callback_port"] = int(match.group(1))
                logger.debug("Claude callback server on port %s", match.group(1))
        super()._on_auth_event(session, event)

    async def submit_auth_code(self, code: str) -> bool:
        session = self._auth_session
        if session is None:
            logger.error("No active Claude authentication process to forward callback to")
            return False

        url = build_callback_url(code, session.scratch.get("callback_port"))
        logger.info("Forwarding callback to Claude CLI local server: %s", url.split("?", 1)[0])
        try:
            async with aiohttp.ClientSession(timeout=_CALLBACK_TIMEOUT) as http:
                async with http.get(url) as resp:
                    await resp.read()
                    logger.info("Claude callback response: %s", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("Error forwarding callback to Claude CLI: %s", exc)
            return False
        return True

    async def _check_auth_status(self) -> bool:
        return await self._probe_auth_process(
            ["-p", "", "--dangerously-skip-permissions"], env=self._env()
        )

    def clear_credentials(self) -> None:
        if self._config_dir.exists():
            logger.info("Deleting Claude config directory: %s", self._config_dir)
            shutil.rmtree(self._config_dir, ignore_errors=True)
        logger.info("Claude credentials cleared")

    def prompt_args(self, prompt: str, model: str | None) -> list[str]:
        args = ["--continue"] if self.has_session else []
        args += ["-p", prompt, "--dangerously-skip-permissions"]
        args += self.get_model_args(model)
        for directory in self._playground_subdirs():
            args += ["--add-dir", str(directory)]
        return args

    def _playground_subdirs(self) -> list[Path]:
        try:
            return sorted(p for p in self._playground_dir.iterdir() if p.is_dir())
        except OSError:
            return []
