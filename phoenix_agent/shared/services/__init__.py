"""Persistence services: conversation log and model preference."""
from .message_store import ConversationStore
from .model_store import ModelPreferenceStore

__all__ = ["ConversationStore", "ModelPreferenceStore"]
