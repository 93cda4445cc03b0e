"""Strategy registry: maps backend identifiers to strategy classes."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from phoenix_agent.engine.errors import UnknownBackendError

from .base import BackendStrategy
from .claude_code import ClaudeCodeStrategy
from .gemini import GeminiStrategy
from .mock import MockStrategy
from .openai_codex import OpenAICodexStrategy
from .opencode import OpencodeStrategy

if TYPE_CHECKING:
    from phoenix_agent.engine.config import AgentConfig

logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Registry of selectable backend strategies.

    Selection is pure: resolve() builds a fresh instance and keeps no
    reference to it.
    """

    def __init__(self) -> None:
        self._strategies: dict[str, type[BackendStrategy]] = {}

    def register(self, name: str, strategy_cls: type[BackendStrategy]) -> None:
        """Register a strategy class under an identifier."""
        self._strategies[name] = strategy_cls

    def list_names(self) -> list[str]:
        """Return all registered identifiers."""
        return list(self._strategies.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    def resolve(self, name: str, config: AgentConfig) -> BackendStrategy:
        """Instantiate the strategy for *name*, failing fast when unknown."""
        strategy_cls = self._strategies.get((name or "").strip())
        if strategy_cls is None:
            raise UnknownBackendError(name, self.list_names())

        strategy = strategy_cls.from_config(config)
        logger.info("Using provider: %s", name)
        if not strategy.is_available():
            logger.warning(
                "Executable '%s' for provider %s was not found on PATH",
                strategy.command, name,
            )
        return strategy


def build_strategy_registry() -> StrategyRegistry:
    """Registry with every built-in backend."""
    registry = StrategyRegistry()
    registry.register("gemini", GeminiStrategy)
    registry.register("claude-code", ClaudeCodeStrategy)
    registry.register("openai-codex", OpenAICodexStrategy)
    registry.register("opencode", OpencodeStrategy)
    # Older deployments spelled the opencode backend this way
    registry.register("opencodex", OpencodeStrategy)
    registry.register("mock", MockStrategy)
    return registry


def resolve_strategy(config: AgentConfig) -> BackendStrategy:
    """Resolve the configured provider against the built-in registry."""
    return build_strategy_registry().resolve(config.provider, config)
