"""Model preference: a single trimmed string in ``DATA_DIR/model.json``.

An empty string means "use the backend default". The value is re-read
from disk on every get() so it is never cached across prompts.
"""
from __future__ import annotations

import logging
from pathlib import Path

from phoenix_agent.shared.services.durable_write import atomic_write_json, read_json

logger = logging.getLogger(__name__)


class ModelPreferenceStore:
    """Persistent single-value model preference."""

    def __init__(self, path: Path, default: str = "") -> None:
        self._path = Path(path)
        self._default = (default or "").strip()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get(self) -> str:
        """Return the stored preference, or the default when none was saved."""
        if not self._path.is_file():
            return self._default
        data = read_json(self._path, None)
        if not isinstance(data, dict):
            return self._default
        value = data.get("model")
        return value.strip() if isinstance(value, str) else ""

    def set(self, value: str | None) -> str:
        """Trim, persist and return the canonical preference."""
        model = (value or "").strip()
        atomic_write_json(self._path, {"model": model})
        logger.info("Model preference set to %r", model or "<backend default>")
        return model
