"""Exception hierarchy for the agent session engine.

One exception per failure mode. Strategies normalize infrastructure
failures into these before they reach the Orchestrator.
"""
from __future__ import annotations


class AgentError(Exception):
    """Base exception for all agent session errors."""


class ConfigError(AgentError):
    """Configuration file or value could not be used."""


class UnknownBackendError(AgentError):
    """Configured backend identifier has no registered strategy."""
    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        avail_str = ", ".join(available) if available else "none"
        super().__init__(
            f"Unknown AGENT_PROVIDER: '{name}'. Available: {avail_str}"
        )


class AuthInProgressError(AgentError):
    """An authentication attempt is already outstanding for this backend."""
    def __init__(self, backend: str):
        self.backend = backend
        super().__init__(
            f"Authentication already in progress for {backend}"
        )


class PromptExecutionError(AgentError):
    """A backend invocation failed with a diagnosable reason."""
    def __init__(self, message: str, exit_code: int | None = None):
        self.message = message
        self.exit_code = exit_code
        super().__init__(message)
