"""HTTP + WebSocket chat server for the agent session.

One operator, one browser tab: the WebSocket at ``/ws`` carries client
actions in and Orchestrator events out. A second concurrent client is
turned away. When a password is configured, every route except the
login endpoint requires the ``agent_auth`` cookie.

Wire format (both directions): one JSON object per text frame.
    inbound   {"action": "send_chat_message", "text": "hi"}
    outbound  {"type": "stream_chunk", "text": "..."}
"""
from __future__ import annotations

import asyncio
import hmac
import json
import logging
import time
import uuid
from pathlib import Path

from aiohttp import WSMsgType, web

from phoenix_agent.engine.config import AgentConfig
from phoenix_agent.engine.orchestrator import Orchestrator
from phoenix_agent.server.outbound import OutboundQueue

logger = logging.getLogger(__name__)

AUTH_COOKIE = "agent_auth"
AUTH_COOKIE_MAX_AGE = 30 * 24 * 60 * 60

# WebSocket close codes
CLOSE_UNAUTHORIZED = 4001
CLOSE_SESSION_ACTIVE = 4000

_PUBLIC_SUFFIXES = (".css", ".js", ".svg")
_PACKAGED_LOGIN_PAGE = Path(__file__).resolve().parent / "public" / "login.html"


class ChatServer:
    """aiohttp application wrapping a single Orchestrator.

    Thin adapter: all session state lives in the Orchestrator. This class
    only handles routing, the password gate and WebSocket delivery.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        outbound: OutboundQueue,
        config: AgentConfig,
    ) -> None:
        self._orchestrator = orchestrator
        self._outbound = outbound
        self._host = config.host
        self._port = config.port
        self._password = config.password or None
        self._model_options = list(config.model_options)
        self._static_dir = Path(config.static_dir)
        self._active_ws: web.WebSocketResponse | None = None
        self._tasks: set[asyncio.Task] = set()
        self._delivery_task: asyncio.Task | None = None
        self._runner: web.AppRunner | None = None

        self._app = web.Application(middlewares=[
            self._request_logging_middleware,
            self._password_middleware,
        ])
        self._app.on_startup.append(self._on_startup)
        self._app.on_shutdown.append(self._on_shutdown)
        self._setup_routes()
        logger.info(
            "ChatServer init host=%s port=%s static=%s password=%s",
            self._host, self._port, self._static_dir,
            "set" if self._password else "<none>",
        )

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def has_active_client(self) -> bool:
        return self._active_ws is not None and not self._active_ws.closed

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        logger.debug("HTTP %s %s req=%s from=%s", request.method, request.path_qs, req_id, request.remote)
        try:
            response = await handler(request)
        except web.HTTPException:
            raise
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception("HTTP %s %s req=%s failed duration_ms=%.1f", request.method, request.path, req_id, elapsed_ms)
            raise
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(
            "HTTP %s %s req=%s status=%s duration_ms=%.1f",
            request.method, request.path, req_id,
            getattr(response, "status", "?"), elapsed_ms,
        )
        return response

    @web.middleware
    async def _password_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        # /ws checks the cookie itself so it can close with a WebSocket code.
        if (
            not self._password
            or request.path in ("/api/login", "/ws")
            or self._is_authorized(request)
        ):
            return await handler(request)
        if request.path in ("/", "/index.html"):
            return web.FileResponse(self._login_page())
        if request.path.endswith(_PUBLIC_SUFFIXES):
            return await handler(request)
        return web.json_response({"error": "Unauthorized"}, status=401)

    def _is_authorized(self, request: web.Request) -> bool:
        if not self._password:
            return True
        supplied = request.cookies.get(AUTH_COOKIE)
        return supplied is not None and hmac.compare_digest(
            supplied.encode("utf-8"), self._password.encode("utf-8")
        )

    def _login_page(self) -> Path:
        candidate = self._static_dir / "login.html"
        return candidate if candidate.is_file() else _PACKAGED_LOGIN_PAGE

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_post("/api/login", self._handle_login)
        r.add_get("/api/messages", self._handle_messages)
        r.add_get("/api/model-options", self._handle_model_options)
        r.add_get("/ws", self._handle_ws)
        r.add_get("/", self._handle_index)
        if self._static_dir.is_dir():
            r.add_static("/", self._static_dir)
        else:
            logger.warning("Static directory %s does not exist; not serving assets", self._static_dir)

    # ── HTTP handlers ──

    async def _handle_login(self, request: web.Request) -> web.Response:
        if not self._password:
            return web.json_response({"success": True, "message": "No authentication required"})

        try:
            body = await request.json()
        except ValueError:
            body = {}
        supplied = body.get("password") if isinstance(body, dict) else None
        if not isinstance(supplied, str) or not hmac.compare_digest(
            supplied.encode("utf-8"), self._password.encode("utf-8")
        ):
            logger.warning("Rejected login attempt from %s", request.remote)
            return web.json_response({"success": False, "error": "Invalid password"}, status=401)

        secure = request.secure or request.headers.get("X-Forwarded-Proto") == "https"
        response = web.json_response({"success": True})
        response.set_cookie(
            AUTH_COOKIE,
            self._password,
            max_age=AUTH_COOKIE_MAX_AGE,
            httponly=True,
            secure=secure,
            samesite="None" if secure else "Lax",
        )
        return response

    async def _handle_messages(self, request: web.Request) -> web.Response:
        messages = self._orchestrator.messages.all()
        return web.json_response([m.to_dict() for m in messages])

    async def _handle_model_options(self, request: web.Request) -> web.Response:
        return web.json_response(self._model_options)

    async def _handle_index(self, request: web.Request) -> web.StreamResponse:
        index = self._static_dir / "index.html"
        if index.is_file():
            return web.FileResponse(index)
        raise web.HTTPNotFound(text="No chat client installed")

    # ── WebSocket ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        if not self._is_authorized(request):
            logger.warning("Rejected WebSocket from %s: bad credentials", request.remote)
            await ws.close(code=CLOSE_UNAUTHORIZED, message=b"Unauthorized")
            return ws
        if self.has_active_client:
            logger.warning("Rejected WebSocket from %s: session already active", request.remote)
            await ws.close(code=CLOSE_SESSION_ACTIVE, message=b"Another session is already active")
            return ws

        self._active_ws = ws
        logger.info("Client connected from %s", request.remote)
        self._orchestrator.handle_client_connected()

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._dispatch(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.error("WebSocket error: %s", ws.exception())
        finally:
            if self._active_ws is ws:
                self._active_ws = None
            logger.info("Client disconnected")
        return ws

    def _dispatch(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.error("Invalid JSON from client: %.200s", raw)
            return
        if not isinstance(message, dict):
            logger.error("Ignoring non-object message from client: %.200s", raw)
            return
        # Each action runs as its own task so a long prompt never delays
        # the BLOCKED rejection of the next one.
        task = asyncio.create_task(self._orchestrator.handle_client_message(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver_outbound(self) -> None:
        async for event_type, payload in self._outbound.consume():
            ws = self._active_ws
            if ws is None or ws.closed:
                logger.debug("No client connected; dropping %s", event_type)
                continue
            try:
                await ws.send_json({"type": event_type, **payload})
            except (ConnectionResetError, RuntimeError) as exc:
                logger.warning("Failed to deliver %s: %s", event_type, exc)

    # ── Lifecycle ──

    async def _on_startup(self, app: web.Application) -> None:
        self._delivery_task = asyncio.create_task(self._deliver_outbound(), name="outbound-delivery")

    async def _on_shutdown(self, app: web.Application) -> None:
        self._outbound.close()
        ws = self._active_ws
        if ws is not None and not ws.closed:
            await ws.close(code=1001, message=b"Server shutting down")
        for task in list(self._tasks):
            task.cancel()
        if self._delivery_task is not None:
            self._delivery_task.cancel()
        await asyncio.gather(
            *self._tasks,
            *(t for t in [self._delivery_task] if t is not None),
            return_exceptions=True,
        )

    async def start(self) -> None:
        """Bind and start serving. Returns once the socket is listening."""
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("Chat server listening on http://%s:%d", self._host, self._port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Chat server stopped")
