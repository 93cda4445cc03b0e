"""Configuration loaded from environment variables.

All settings have sensible defaults. Values are read once at startup;
there is no hot reload.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "gemini"
DEFAULT_PORT = 3100

_PACKAGE_STATIC_DIR = Path(__file__).resolve().parent.parent / "server" / "public"

# Env vars read by from_env(); logged when present so config issues
# are visible in the startup log.
_ENV_KEYS = (
    "AGENT_PROVIDER",
    "DEFAULT_MODEL",
    "DATA_DIR",
    "PLAYGROUND_DIR",
    "SYSTEM_PROMPT_PATH",
    "INCLUDE_HISTORY",
    "HISTORY_MAX_MESSAGES",
    "CHAT_HOST",
    "CHAT_PORT",
    "MODEL_OPTIONS",
    "STATIC_DIR",
    "AUTH_PROBE_TIMEOUT",
    "MOCK_DELAY",
    "PHOENIX_LOG_LEVEL",
    "PHOENIX_LOG_FILE",
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_model_options(raw: str | list[str] | None) -> list[str]:
    """Normalize a comma-separated string (or list) of model options."""
    if not raw:
        return []
    items = raw.split(",") if isinstance(raw, str) else [str(item) for item in raw]
    return [item.strip() for item in items if item and item.strip()]


@dataclass
class AgentConfig:
    """Agent process configuration."""

    # Backend selection
    provider: str = DEFAULT_PROVIDER
    # Model preference used until the operator stores one
    default_model: str = ""

    # Filesystem locations
    data_dir: str = "data"
    playground_dir: str = "playground"
    system_prompt_path: str = "SYSTEM_PROMPT.md"

    # Prompt construction: frame prior turns as plain-text context
    include_history: bool = False
    history_max_messages: int = 20

    # Chat server
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    password: str | None = field(default=None, repr=False)
    model_options: list[str] = field(default_factory=list)
    static_dir: str = str(_PACKAGE_STATIC_DIR)

    # Kill an auth status probe that has not answered after this long
    auth_probe_timeout: float = 30.0
    # Artificial latency of the mock backend
    mock_delay: float = 1.0

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def messages_path(self) -> Path:
        return Path(self.data_dir) / "messages.json"

    @property
    def model_path(self) -> Path:
        return Path(self.data_dir) / "model.json"

    @classmethod
    def from_env(cls) -> AgentConfig:
        """Load configuration from environment variables."""
        present = {k: os.environ[k] for k in _ENV_KEYS if k in os.environ}
        if present:
            logger.info(
                "AgentConfig.from_env: env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(present.items())),
            )
        else:
            logger.debug("AgentConfig.from_env: no env overrides, using defaults")

        config = cls(
            provider=os.getenv("AGENT_PROVIDER", cls.provider) or cls.provider,
            default_model=os.getenv("DEFAULT_MODEL", cls.default_model).strip(),
            data_dir=os.getenv("DATA_DIR", str(Path.cwd() / cls.data_dir)),
            playground_dir=os.getenv(
                "PLAYGROUND_DIR", str(Path.cwd() / cls.playground_dir)
            ),
            system_prompt_path=os.getenv(
                "SYSTEM_PROMPT_PATH", str(Path.cwd() / cls.system_prompt_path)
            ),
            include_history=_env_bool("INCLUDE_HISTORY", cls.include_history),
            history_max_messages=int(os.getenv(
                "HISTORY_MAX_MESSAGES", str(cls.history_max_messages)
            )),
            host=os.getenv("CHAT_HOST", cls.host),
            port=int(os.getenv("CHAT_PORT", str(cls.port))),
            password=os.getenv("AGENT_PASSWORD") or None,
            model_options=parse_model_options(os.getenv("MODEL_OPTIONS", "")),
            static_dir=os.getenv("STATIC_DIR", cls.static_dir),
            auth_probe_timeout=float(os.getenv(
                "AUTH_PROBE_TIMEOUT", str(cls.auth_probe_timeout)
            )),
            mock_delay=float(os.getenv("MOCK_DELAY", str(cls.mock_delay))),
            log_level=os.getenv("PHOENIX_LOG_LEVEL", cls.log_level).upper(),
            log_file=os.getenv("PHOENIX_LOG_FILE") or None,
        )
        logger.info(
            "AgentConfig.from_env: provider=%s data_dir=%s history=%s port=%d",
            config.provider, config.data_dir,
            config.include_history, config.port,
        )
        return config
