"""Gemini CLI backend.

Gemini has no dedicated login subcommand: running it with an empty
prompt starts the OAuth flow when unauthenticated, or exits quickly
when credentials are already cached.
"""
from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path

from .base import BackendStrategy
from .classifier import AUTH_FAILED, AUTH_REQUIRED, AUTH_URL, PatternClassifier

logger = logging.getLogger(__name__)

_CREDENTIAL_FILES = ("oauth_creds.json", "credentials.json", ".credentials.json")
_CREDENTIAL_DIRS = ("Configure", "auth")

# Exit code Gemini uses when it stops without a prompt to answer. It
# also shows up after a completed browser login, so it only counts as
# success when no authentication failure was printed. This heuristic is
# not documented by the CLI and may change between releases.
_NO_INPUT_EXIT = 42


def gemini_config_dir() -> Path:
    override = os.getenv("GEMINI_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".gemini"


class GeminiStrategy(BackendStrategy):
    """Strategy backed by the Gemini CLI (``gemini``)."""

    default_command = "gemini"
    auth_classifier = PatternClassifier((
        (AUTH_URL, re.compile(r"https://accounts\.google\.com[^\s\"'>]+")),
        (AUTH_REQUIRED, re.compile(r"Waiting for authentication")),
        (AUTH_FAILED, re.compile(
            r"(?:authentication|login) failed|failed to (?:authenticate|login)",
            re.IGNORECASE,
        )),
    ))

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._config_dir = gemini_config_dir()

    @property
    def name(self) -> str:
        return "gemini"

    def _env(self) -> dict[str, str]:
        return {"NO_BROWSER": "true"}

    auth_env = prompt_env = _env

    def auth_args(self) -> list[str]:
        return [""]

    def auth_succeeded(self, code: int, output: str) -> bool:
        if code == 0:
            return True
        if code == _NO_INPUT_EXIT:
            return not self.auth_classifier.detects(output, AUTH_FAILED)
        return False

    async def _check_auth_status(self) -> bool:
        return await self._probe_auth_process([""], env=self._env())

    def probe_succeeded(self, code: int, output: str) -> bool:
        # Any exit without a login prompt means cached credentials worked.
        return not self.auth_classifier.detects(output, AUTH_FAILED)

    def clear_credentials(self) -> None:
        for name in _CREDENTIAL_FILES:
            path = self._config_dir / name
            if path.is_file():
                logger.info("Deleting credential file: %s", path)
                path.unlink(missing_ok=True)
        for name in _CREDENTIAL_DIRS:
            path = self._config_dir / name
            if path.is_dir():
                logger.info("Deleting credential directory: %s", path)
                shutil.rmtree(path, ignore_errors=True)
        logger.info("Gemini credentials cleared")

    def prompt_args(self, prompt: str, model: str | None) -> list[str]:
        args = ["--yolo", *self.get_model_args(model)]
        if self.has_session:
            args += ["--resume", "latest"]
        return args + ["-p", prompt]

    def prompt_failure(self, code: int, stdout: str, stderr: str) -> str | None:
        if self._fatal_line(stderr) is None and stdout.strip():
            return None
        return super().prompt_failure(code, stdout, stderr)
