"""aiohttp transport: WebSocket channel, HTTP API and password gate."""
from .outbound import OutboundQueue
from .server import ChatServer

__all__ = ["ChatServer", "OutboundQueue"]
