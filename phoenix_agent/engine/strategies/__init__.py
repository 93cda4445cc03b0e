"""Backend strategies: one adapter per AI command-line tool."""
from .base import AuthSession, BackendStrategy
from .claude_code import ClaudeCodeStrategy
from .gemini import GeminiStrategy
from .mock import MockStrategy
from .openai_codex import OpenAICodexStrategy
from .opencode import OpencodeStrategy
from .registry import StrategyRegistry, build_strategy_registry, resolve_strategy

__all__ = [
    "AuthSession",
    "BackendStrategy",
    "ClaudeCodeStrategy",
    "GeminiStrategy",
    "MockStrategy",
    "OpenAICodexStrategy",
    "OpencodeStrategy",
    "StrategyRegistry",
    "build_strategy_registry",
    "resolve_strategy",
]
