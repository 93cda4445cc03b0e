from .message import Message, MessageRole

__all__ = ["Message", "MessageRole"]
