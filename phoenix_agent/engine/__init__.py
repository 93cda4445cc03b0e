"""Agent session engine: orchestration, backend strategies and configuration."""
from .bridge import ConnectionBridge
from .config import AgentConfig
from .errors import (
    AgentError,
    AuthInProgressError,
    ConfigError,
    PromptExecutionError,
    UnknownBackendError,
)
from .orchestrator import NO_RESPONSE_PLACEHOLDER, Orchestrator
from .prompt import CurrentMessagePrompt, HistoryFramedPrompt, SystemPrompt, build_prompt_builder

__all__ = [
    # Core
    "Orchestrator",
    "ConnectionBridge",
    "NO_RESPONSE_PLACEHOLDER",
    # Config
    "AgentConfig",
    # Prompt construction
    "SystemPrompt",
    "CurrentMessagePrompt",
    "HistoryFramedPrompt",
    "build_prompt_builder",
    # Errors
    "AgentError",
    "AuthInProgressError",
    "ConfigError",
    "PromptExecutionError",
    "UnknownBackendError",
]
