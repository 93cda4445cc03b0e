"""Outbound event types emitted by the Orchestrator.

Each event is a dataclass with a stable ``event_type``. The transport
only ever sees the ``(event_type, payload)`` pair produced by
``event_to_payload``.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# Admission / rejection codes carried in ErrorEvent.message
NEED_AUTH = "NEED_AUTH"
BLOCKED = "BLOCKED"
AUTH_IN_PROGRESS = "AUTH_IN_PROGRESS"
NO_AUTH_SESSION = "NO_AUTH_SESSION"
EMPTY_MESSAGE = "EMPTY_MESSAGE"
UNKNOWN_ACTION = "UNKNOWN_ACTION"

# Auth status values
AUTHENTICATED = "authenticated"
UNAUTHENTICATED = "unauthenticated"

# Signature of the transport sink: emit(event_type, payload)
EmitCallback = Callable[[str, dict[str, Any]], None]


@dataclass
class OutboundEvent:
    """Base outbound event."""
    event_type: str = ""


@dataclass
class AuthStatus(OutboundEvent):
    event_type: str = "auth_status"
    status: str = UNAUTHENTICATED
    processing: bool = False


@dataclass
class AuthUrlGenerated(OutboundEvent):
    event_type: str = "auth_url_generated"
    url: str = ""


@dataclass
class DeviceCode(OutboundEvent):
    event_type: str = "device_code"
    code: str = ""
    url: str | None = None


@dataclass
class AuthSuccess(OutboundEvent):
    event_type: str = "auth_success"


@dataclass
class ErrorEvent(OutboundEvent):
    event_type: str = "error"
    message: str = ""


@dataclass
class ChatMessage(OutboundEvent):
    event_type: str = "message"
    id: str = ""
    role: str = ""
    body: str = ""
    created_at: str = ""


@dataclass
class StreamStart(OutboundEvent):
    event_type: str = "stream_start"


@dataclass
class StreamChunk(OutboundEvent):
    event_type: str = "stream_chunk"
    text: str = ""


@dataclass
class StreamEnd(OutboundEvent):
    event_type: str = "stream_end"
    message: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelUpdated(OutboundEvent):
    event_type: str = "model_updated"
    model: str = ""


@dataclass
class LogoutOutput(OutboundEvent):
    event_type: str = "logout_output"
    text: str = ""


@dataclass
class LogoutSuccess(OutboundEvent):
    event_type: str = "logout_success"


def event_to_payload(event: OutboundEvent) -> tuple[str, dict[str, Any]]:
    """Split a typed event into the (event_type, payload) pair for the sink."""
    payload: dict[str, Any] = {}
    for f in event.__dataclass_fields__:
        if f == "event_type":
            continue
        val = getattr(event, f)
        if val is not None:
            payload[f] = val
    return event.event_type, payload
