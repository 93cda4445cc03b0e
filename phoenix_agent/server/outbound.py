"""Outbound event queue between the Orchestrator and the WebSocket.

The Orchestrator's ``emit`` sink is synchronous and may fire from any
task. Events are queued here and a single consumer delivers them to the
active client in the order they were emitted.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)

OutboundItem = tuple[str, dict[str, Any]]


class OutboundQueue:
    """FIFO of ``(event_type, payload)`` pairs awaiting delivery."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[OutboundItem] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        """Sink handed to the Orchestrator."""
        if self._closed:
            return
        try:
            self._queue.put_nowait((event_type, dict(payload)))
        except asyncio.QueueFull:
            logger.error(
                "Outbound queue full, dropping: %s (queue size: %d)",
                event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[OutboundItem]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            yield item

    def drain(self) -> list[OutboundItem]:
        """Remove and return everything currently queued."""
        items: list[OutboundItem] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return items

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True
