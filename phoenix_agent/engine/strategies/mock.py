"""Deterministic in-process backend for development and tests.

No subprocesses: auth succeeds after a fixed delay, prompts are echoed
back in word-sized chunks, and logout prints a short scripted transcript.
"""
from __future__ import annotations

import asyncio
import logging
import re

from phoenix_agent.engine.bridge import ConnectionBridge
from phoenix_agent.engine.errors import AuthInProgressError, PromptExecutionError

from .base import AuthSession, BackendStrategy, ChunkCallback

logger = logging.getLogger(__name__)

RESPONSE_PREFIX = "[MOCKED RESPONSE]"
# Model names that fail the way a real CLI does for an unknown model
UNKNOWN_MODELS = frozenset({"missing-model"})

LOGOUT_TRANSCRIPT = (
    "Revoking mock session...\n",
    "Removing cached mock credentials...\n",
    "Logged out.\n",
)

_WORD_RE = re.compile(r"\S+\s*")


class MockStrategy(BackendStrategy):
    """Strategy that simulates a backend without spawning anything."""

    supports_logout = True

    def __init__(self, *, delay: float = 1.0, chunk_delay: float = 0.0, **kwargs) -> None:
        super().__init__(**kwargs)
        self._delay = delay
        self._chunk_delay = chunk_delay
        self._authenticated = True
        self.prompts: list[str] = []

    @classmethod
    def from_config(cls, config) -> MockStrategy:
        return cls(
            delay=config.mock_delay,
            playground_dir=config.playground_dir,
            probe_timeout=config.auth_probe_timeout,
        )

    @property
    def name(self) -> str:
        return "mock"

    def is_available(self) -> bool:
        return True

    async def _check_auth_status(self) -> bool:
        return self._authenticated

    async def execute_auth(self, bridge: ConnectionBridge) -> None:
        if self._auth_session is not None:
            raise AuthInProgressError(self.name)
        logger.info("[mock] auth will succeed in %.1fs", self._delay)
        session = AuthSession(bridge=bridge)
        self._auth_session = session
        session.task = asyncio.create_task(self._complete_auth(session), name="mock-auth")

    async def _complete_auth(self, session: AuthSession) -> None:
        await asyncio.sleep(self._delay)
        if self._auth_session is not session:
            return
        self._auth_session = None
        self._authenticated = True
        session.bridge.auth_success()

    async def submit_auth_code(self, code: str) -> bool:
        logger.info("[mock] submit_auth_code called with %d character(s)", len(code or ""))
        return self._auth_session is not None

    def clear_credentials(self) -> None:
        logger.info("[mock] clearing simulated credentials")
        self._authenticated = False

    async def execute_logout(self, bridge: ConnectionBridge) -> None:
        self.cancel_auth()
        for line in LOGOUT_TRANSCRIPT:
            bridge.logout_output(line)
            await asyncio.sleep(0)
        self.clear_credentials()
        self.has_session = False
        bridge.logout_success()

    def response_for(self, prompt: str, model: str | None = None) -> str:
        """The full deterministic reply for *prompt*."""
        lines = [line.strip() for line in prompt.splitlines() if line.strip()]
        said = lines[-1] if lines else ""
        tag = f" ({model})" if model else ""
        return f"{RESPONSE_PREFIX}{tag} You said: {said}"

    async def execute_prompt_streaming(
        self,
        prompt: str,
        model: str | None,
        on_chunk: ChunkCallback,
    ) -> None:
        model = (model or "").strip()
        self.prompts.append(prompt)
        if model in UNKNOWN_MODELS:
            raise PromptExecutionError(f"ModelNotFoundError: {model}", exit_code=1)
        for piece in _WORD_RE.findall(self.response_for(prompt, model)):
            await asyncio.sleep(self._chunk_delay)
            on_chunk(piece)
        self.has_session = True
