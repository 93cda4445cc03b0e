"""Append-only conversation log persisted to ``DATA_DIR/messages.json``.

Messages are kept in insertion order and never mutated. The only way to
remove them is clear(), which wipes the whole log.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path

from phoenix_agent.shared.models.message import Message, MessageRole
from phoenix_agent.shared.services.durable_write import atomic_write_json, read_json

logger = logging.getLogger(__name__)


class ConversationStore:
    """Durable, ordered message log for the single agent session."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # add() runs on worker threads; one writer at a time
        self._lock = threading.Lock()
        self._messages: list[Message] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def all(self) -> list[Message]:
        """Return a copy of the log in insertion order."""
        return list(self._messages)

    def add(self, role: MessageRole | str, body: str) -> Message:
        """Append a message, assigning its id and timestamp."""
        if isinstance(role, MessageRole):
            role = role.value
        with self._lock:
            message = Message(role=role, body=body)
            self._messages.append(message)
            self._save()
        return message

    def clear(self) -> None:
        with self._lock:
            self._messages = []
            self._save()
        logger.info("Conversation log cleared (%s)", self._path)

    def __len__(self) -> int:
        return len(self._messages)

    def _load(self) -> list[Message]:
        raw = read_json(self._path, [])
        if not isinstance(raw, list):
            logger.warning(
                "Conversation log %s is not a list; starting empty", self._path
            )
            return []
        messages = [Message.from_dict(item) for item in raw if isinstance(item, dict)]
        logger.debug("Loaded %d message(s) from %s", len(messages), self._path)
        return messages

    def _save(self) -> None:
        atomic_write_json(self._path, [m.to_dict() for m in self._messages])
