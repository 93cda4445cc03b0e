"""Tests for the aiohttp chat transport."""
from __future__ import annotations

import tempfile
from pathlib import Path

from aiohttp import WSMsgType
from aiohttp.test_utils import AioHTTPTestCase

from phoenix_agent.engine.config import AgentConfig
from phoenix_agent.engine.orchestrator import Orchestrator
from phoenix_agent.engine.strategies.mock import MockStrategy
from phoenix_agent.server import ChatServer, OutboundQueue
from phoenix_agent.server.server import AUTH_COOKIE, CLOSE_SESSION_ACTIVE, CLOSE_UNAUTHORIZED
from phoenix_agent.shared.services import ConversationStore, ModelPreferenceStore

PASSWORD = "s3cret"


def _build_server(root: Path, **config_kwargs) -> ChatServer:
    static_dir = root / "public"
    static_dir.mkdir(parents=True, exist_ok=True)
    (static_dir / "index.html").write_text("<html>chat client</html>", encoding="utf-8")
    (static_dir / "app.js").write_text("console.log('chat');", encoding="utf-8")

    config = AgentConfig(
        provider="mock",
        data_dir=str(root / "data"),
        playground_dir=str(root / "playground"),
        static_dir=str(static_dir),
        **config_kwargs,
    )
    outbound = OutboundQueue()
    orchestrator = Orchestrator(
        strategy=MockStrategy(delay=0, playground_dir=config.playground_dir),
        messages=ConversationStore(config.messages_path),
        model_store=ModelPreferenceStore(config.model_path),
        emit=outbound.emit,
    )
    return ChatServer(orchestrator, outbound, config)


async def _receive_until(ws, event_type: str, limit: int = 50) -> list[dict]:
    received = []
    for _ in range(limit):
        event = await ws.receive_json(timeout=5)
        received.append(event)
        if event["type"] == event_type:
            return received
    raise AssertionError(f"never received {event_type}: {received}")


class TestOpenChatServer(AioHTTPTestCase):
    async def get_application(self):
        self.tmpdir = tempfile.mkdtemp()
        self.chat_server = _build_server(
            Path(self.tmpdir), model_options=["pro", "flash"],
        )
        self.orchestrator = self.chat_server._orchestrator
        return self.chat_server.app

    async def test_model_options(self):
        resp = await self.client.get("/api/model-options")
        assert resp.status == 200
        assert await resp.json() == ["pro", "flash"]

    async def test_messages_endpoint(self):
        self.orchestrator.messages.add("user", "hello")
        resp = await self.client.get("/api/messages")
        assert resp.status == 200
        data = await resp.json()
        assert [(m["role"], m["body"]) for m in data] == [("user", "hello")]

    async def test_index_and_static(self):
        resp = await self.client.get("/")
        assert resp.status == 200
        assert "chat client" in await resp.text()
        resp = await self.client.get("/app.js")
        assert resp.status == 200

    async def test_login_without_password(self):
        resp = await self.client.post("/api/login", json={"password": "anything"})
        assert resp.status == 200
        assert await resp.json() == {"success": True, "message": "No authentication required"}

    async def test_status_on_connect(self):
        ws = await self.client.ws_connect("/ws")
        event = await ws.receive_json(timeout=5)
        assert event == {"type": "auth_status", "status": "unauthenticated", "processing": False}
        await ws.close()

    async def test_chat_round_trip(self):
        self.orchestrator.authenticated = True
        ws = await self.client.ws_connect("/ws")
        await _receive_until(ws, "auth_status")

        await ws.send_json({"action": "send_chat_message", "text": "hi"})
        events = await _receive_until(ws, "stream_end")

        types = [e["type"] for e in events]
        assert types[0] == "message"
        assert types[1] == "stream_start"
        assert "stream_chunk" in types
        streamed = "".join(e["text"] for e in events if e["type"] == "stream_chunk")
        assert events[-1]["message"]["body"] == streamed
        assert len(self.orchestrator.messages) == 2
        await ws.close()

    async def test_invalid_json_is_ignored(self):
        ws = await self.client.ws_connect("/ws")
        await _receive_until(ws, "auth_status")

        await ws.send_str("{not json")
        await ws.send_str("[1, 2]")
        await ws.send_json({"action": "get_model"})

        event = await ws.receive_json(timeout=5)
        assert event == {"type": "model_updated", "model": ""}
        await ws.close()

    async def test_second_client_rejected(self):
        first = await self.client.ws_connect("/ws")
        await _receive_until(first, "auth_status")

        second = await self.client.ws_connect("/ws")
        msg = await second.receive(timeout=5)
        assert msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSED)
        assert second.close_code == CLOSE_SESSION_ACTIVE
        assert self.chat_server.has_active_client

        await first.close()


class TestPasswordGate(AioHTTPTestCase):
    async def get_application(self):
        self.tmpdir = tempfile.mkdtemp()
        self.chat_server = _build_server(Path(self.tmpdir), password=PASSWORD)
        return self.chat_server.app

    async def test_api_requires_cookie(self):
        resp = await self.client.get("/api/messages")
        assert resp.status == 401
        assert await resp.json() == {"error": "Unauthorized"}

        resp = await self.client.get(
            "/api/messages", headers={"Cookie": f"{AUTH_COOKIE}={PASSWORD}"}
        )
        assert resp.status == 200

    async def test_root_serves_login_page(self):
        resp = await self.client.get("/")
        assert resp.status == 200
        assert "/api/login" in await resp.text()

    async def test_assets_pass_without_cookie(self):
        resp = await self.client.get("/app.js")
        assert resp.status == 200

    async def test_login(self):
        resp = await self.client.post("/api/login", json={"password": "wrong"})
        assert resp.status == 401
        assert await resp.json() == {"success": False, "error": "Invalid password"}

        resp = await self.client.post("/api/login", json={"password": PASSWORD})
        assert resp.status == 200
        assert await resp.json() == {"success": True}
        cookie = resp.cookies[AUTH_COOKIE]
        assert cookie.value == PASSWORD
        assert cookie["httponly"]
        assert cookie["samesite"] == "Lax"

    async def test_ws_without_cookie_closed(self):
        ws = await self.client.ws_connect("/ws")
        msg = await ws.receive(timeout=5)
        assert msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSED)
        assert ws.close_code == CLOSE_UNAUTHORIZED
        assert not self.chat_server.has_active_client

    async def test_ws_with_cookie_accepted(self):
        ws = await self.client.ws_connect(
            "/ws", headers={"Cookie": f"{AUTH_COOKIE}={PASSWORD}"}
        )
        event = await ws.receive_json(timeout=5)
        assert event["type"] == "auth_status"
        await ws.close()
