"""Prompt construction: system prompt plus the current chat message.

Whether prior turns are included is a pluggable PromptBuilder, chosen
from configuration at startup.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from phoenix_agent.shared.models import Message, MessageRole

if TYPE_CHECKING:
    from phoenix_agent.engine.config import AgentConfig

logger = logging.getLogger(__name__)

_ROLE_LABELS = {
    MessageRole.USER.value: "User",
    MessageRole.ASSISTANT.value: "Assistant",
}


@dataclass(frozen=True)
class SystemPrompt:
    """Fixed preamble prepended to every prompt. Read once, never reloaded."""
    text: str = ""

    @classmethod
    def load(cls, path: str | Path | None) -> SystemPrompt:
        if not path:
            return cls()
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            logger.warning("System prompt file %s not found; using none", path)
            return cls()
        except OSError as exc:
            logger.warning("Could not read system prompt %s: %s", path, exc)
            return cls()
        logger.info("Loaded system prompt from %s (%d chars)", path, len(text))
        return cls(text)

    def wrap(self, body: str) -> str:
        if not self.text:
            return body
        return f"{self.text}\n\n{body}"


class PromptBuilder(Protocol):
    def build(self, text: str, history: Sequence[Message]) -> str:
        """Full backend prompt for *text*; *history* excludes the current message."""
        ...


class CurrentMessagePrompt:
    """System prompt + the current message only.

    Backends that keep their own session (``--continue`` and friends)
    already remember earlier turns.
    """

    def __init__(self, system: SystemPrompt | None = None) -> None:
        self._system = system or SystemPrompt()

    def build(self, text: str, history: Sequence[Message]) -> str:
        return self._system.wrap(text)


class HistoryFramedPrompt:
    """System prompt + the last *max_messages* turns as plain-text context."""

    def __init__(self, system: SystemPrompt | None = None, max_messages: int = 20) -> None:
        self._system = system or SystemPrompt()
        self._max_messages = max(0, max_messages)

    def build(self, text: str, history: Sequence[Message]) -> str:
        recent = list(history)[-self._max_messages:] if self._max_messages else []
        if not recent:
            return self._system.wrap(text)

        lines = ["Conversation so far:"]
        for message in recent:
            label = _ROLE_LABELS.get(message.role, message.role.title())
            lines.append(f"{label}: {message.body}")
        lines += ["", "Current message:", text]
        return self._system.wrap("\n".join(lines))


def build_prompt_builder(config: AgentConfig) -> PromptBuilder:
    """Pick the prompt builder configured by ``include_history``."""
    system = SystemPrompt.load(config.system_prompt_path)
    if config.include_history:
        return HistoryFramedPrompt(system, max_messages=config.history_max_messages)
    return CurrentMessagePrompt(system)
