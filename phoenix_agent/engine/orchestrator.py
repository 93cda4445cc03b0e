"""Session orchestrator: the single agent session's state machine.

Owns ``authenticated`` and ``processing``, translates client actions
into BackendStrategy calls and strategy outcomes into outbound events.
It never touches the transport: everything leaves through the ``emit``
sink handed to the constructor.

Concurrency model: the transport dispatches each inbound action as its
own task on one event loop. ``processing`` and the strategy's auth
session are reject-if-busy flags, not locks; nothing ever waits on them.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from phoenix_agent.engine.bridge import ConnectionBridge
from phoenix_agent.engine.errors import AuthInProgressError, PromptExecutionError
from phoenix_agent.engine.events import (
    AUTH_IN_PROGRESS,
    AUTHENTICATED,
    BLOCKED,
    EMPTY_MESSAGE,
    NEED_AUTH,
    NO_AUTH_SESSION,
    UNAUTHENTICATED,
    UNKNOWN_ACTION,
    AuthStatus,
    AuthSuccess,
    AuthUrlGenerated,
    ChatMessage,
    DeviceCode,
    EmitCallback,
    ErrorEvent,
    LogoutOutput,
    LogoutSuccess,
    ModelUpdated,
    OutboundEvent,
    StreamChunk,
    StreamEnd,
    StreamStart,
    event_to_payload,
)
from phoenix_agent.engine.prompt import CurrentMessagePrompt, PromptBuilder
from phoenix_agent.engine.strategies.base import BackendStrategy
from phoenix_agent.shared.models import MessageRole
from phoenix_agent.shared.services import ConversationStore, ModelPreferenceStore

logger = logging.getLogger(__name__)

# Assistant body stored when a prompt finished without any output
NO_RESPONSE_PLACEHOLDER = "(no response)"

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class Orchestrator:
    """State machine for one operator talking to one backend."""

    def __init__(
        self,
        strategy: BackendStrategy,
        messages: ConversationStore,
        model_store: ModelPreferenceStore,
        emit: EmitCallback,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        self.strategy = strategy
        self.messages = messages
        self.model_store = model_store
        self._emit_sink = emit
        self._prompt_builder = prompt_builder or CurrentMessagePrompt()

        self.authenticated = False
        self.processing = False

        # Bumped whenever an auth/logout attempt is started or
        # abandoned; bridges from older generations go silent.
        self._auth_generation = 0
        # Owner of `processing`: a prompt only releases the flag while its
        # token is current. Logout hands the flag back early.
        self._prompt_generation = 0
        self._probe_task: asyncio.Task | None = None

        self._handlers: dict[str, Handler] = {
            "check_auth_status": self._check_auth_status,
            "initiate_auth": self._initiate_auth,
            "submit_auth_code": self._submit_auth_code,
            "cancel_auth": self._cancel_auth,
            "reauthenticate": self._reauthenticate,
            "logout": self._logout,
            "send_chat_message": self._send_chat_message,
            "get_model": self._get_model,
            "set_model": self._set_model,
        }

    @property
    def auth_generation(self) -> int:
        return self._auth_generation

    # ── Lifecycle ──

    def start(self) -> asyncio.Task:
        """Schedule the one-shot initial auth probe. Needs a running loop."""
        if self._probe_task is None:
            self._probe_task = asyncio.create_task(
                self._initial_probe(), name="initial-auth-probe"
            )
        return self._probe_task

    async def _initial_probe(self) -> None:
        self.authenticated = await self.strategy.check_auth_status()
        logger.info(
            "Initial %s auth status: %s",
            self.strategy.name,
            AUTHENTICATED if self.authenticated else UNAUTHENTICATED,
        )
        self._emit_status()

    def shutdown(self) -> None:
        """Abandon any outstanding auth attempt and the pending probe."""
        self._invalidate_bridges()
        self.strategy.cancel_auth()
        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
        logger.info("Orchestrator shut down")

    # ── Transport entry points ──

    def handle_client_connected(self) -> None:
        self._emit_status()

    async def handle_client_message(self, message: dict[str, Any]) -> None:
        """Dispatch one inbound action. Never raises."""
        action = message.get("action")
        handler = self._handlers.get(action) if isinstance(action, str) else None
        if handler is None:
            logger.warning("Unknown client action: %r", action)
            self._emit(ErrorEvent(message=UNKNOWN_ACTION))
            return

        logger.debug("Handling action %s", action)
        try:
            await handler(message)
        except Exception as exc:
            logger.exception("Error handling action %s", action)
            self._emit(ErrorEvent(message=str(exc) or type(exc).__name__))

    # ── Emission ──

    def _emit(self, event: OutboundEvent) -> None:
        event_type, payload = event_to_payload(event)
        try:
            self._emit_sink(event_type, payload)
        except Exception:
            logger.exception("Emit sink failed for %s", event_type)

    def _emit_status(self) -> None:
        self._emit(AuthStatus(
            status=AUTHENTICATED if self.authenticated else UNAUTHENTICATED,
            processing=self.processing,
        ))

    # ── Bridges ──

    def _invalidate_bridges(self) -> None:
        self._auth_generation += 1

    def _new_bridge(self, label: str) -> ConnectionBridge:
        self._invalidate_bridges()
        generation = self._auth_generation
        return ConnectionBridge(
            on_auth_url=lambda url: self._emit(AuthUrlGenerated(url=url)),
            on_device_code=lambda code, url: self._emit(DeviceCode(code=code, url=url)),
            on_auth_success=self._on_auth_success,
            on_auth_status=self._on_auth_status,
            on_error=lambda text: self._emit(ErrorEvent(message=text)),
            on_logout_output=lambda text: self._emit(LogoutOutput(text=text)),
            on_logout_success=lambda: self._emit(LogoutSuccess()),
            is_current=lambda: generation == self._auth_generation,
            label=f"{label} bridge #{generation}",
        )

    def _on_auth_success(self) -> None:
        logger.info("%s authentication succeeded", self.strategy.name)
        self.authenticated = True
        self._emit(AuthSuccess())

    def _on_auth_status(self, state: str) -> None:
        self.authenticated = state == AUTHENTICATED
        self._emit_status()

    # ── Auth actions ──

    async def _check_auth_status(self, message: dict[str, Any]) -> None:
        self.authenticated = await self.strategy.check_auth_status()
        self._emit_status()

    async def _initiate_auth(self, message: dict[str, Any]) -> None:
        if self.strategy.auth_pending:
            logger.warning("Rejecting auth request: one is already in progress")
            self._emit(ErrorEvent(message=AUTH_IN_PROGRESS))
            return
        if await self.strategy.check_auth_status():
            logger.info("Already authenticated; skipping %s login", self.strategy.name)
            self.authenticated = True
            self._emit(AuthSuccess())
            return
        await self._start_auth()

    async def _start_auth(self) -> None:
        if self.strategy.auth_pending:
            logger.warning("Rejecting auth request: one is already in progress")
            self._emit(ErrorEvent(message=AUTH_IN_PROGRESS))
            return
        try:
            await self.strategy.execute_auth(self._new_bridge("auth"))
        except AuthInProgressError as exc:
            logger.warning("%s", exc)
            self._emit(ErrorEvent(message=AUTH_IN_PROGRESS))

    async def _submit_auth_code(self, message: dict[str, Any]) -> None:
        code = message.get("code")
        delivered = await self.strategy.submit_auth_code(code if isinstance(code, str) else "")
        if delivered:
            return
        if self.strategy.auth_pending:
            self._emit(ErrorEvent(message="Could not deliver the code to the login process"))
        else:
            self._emit(ErrorEvent(message=NO_AUTH_SESSION))

    async def _cancel_auth(self, message: dict[str, Any]) -> None:
        self._invalidate_bridges()
        self.strategy.cancel_auth()
        self.authenticated = False
        self._emit_status()

    async def _reauthenticate(self, message: dict[str, Any]) -> None:
        self._invalidate_bridges()
        self.strategy.cancel_auth()
        try:
            self.strategy.clear_credentials()
        except OSError:
            logger.exception("Error clearing %s credentials", self.strategy.name)
        self.authenticated = False
        self._emit_status()
        await self._start_auth()

    async def _logout(self, message: dict[str, Any]) -> None:
        self._invalidate_bridges()
        self.strategy.cancel_auth()
        self._prompt_generation += 1
        self.processing = False
        self.authenticated = False
        self._emit_status()
        await self.strategy.execute_logout(self._new_bridge("logout"))

    # ── Chat ──

    async def _send_chat_message(self, message: dict[str, Any]) -> None:
        if not self.authenticated:
            self._emit(ErrorEvent(message=NEED_AUTH))
            return
        if self.processing:
            self._emit(ErrorEvent(message=BLOCKED))
            return
        text = message.get("text")
        if not isinstance(text, str) or not text.strip():
            self._emit(ErrorEvent(message=EMPTY_MESSAGE))
            return

        # Set before the first await so a concurrent send sees BLOCKED.
        self.processing = True
        self._prompt_generation += 1
        token = self._prompt_generation
        try:
            await self._run_prompt(text)
        finally:
            if token == self._prompt_generation:
                self.processing = False
            else:
                logger.info("Prompt finished after logout; leaving processing flag alone")

    async def _run_prompt(self, text: str) -> None:
        history = self.messages.all()
        user_message = await asyncio.to_thread(self.messages.add, MessageRole.USER, text)
        self._emit(ChatMessage(**user_message.to_dict()))

        prompt = self._prompt_builder.build(text, history)
        model = self.model_store.get()
        chunks: list[str] = []

        def on_chunk(fragment: str) -> None:
            if not fragment:
                return
            chunks.append(fragment)
            self._emit(StreamChunk(text=fragment))

        logger.info(
            "Running prompt on %s (model=%s, %d chars)",
            self.strategy.name, model or "<default>", len(prompt),
        )
        self._emit(StreamStart())
        try:
            await self.strategy.execute_prompt_streaming(prompt, model or None, on_chunk)
        except PromptExecutionError as exc:
            logger.error("Prompt failed (exit code %s): %s", exc.exit_code, exc.message)
            self._emit(ErrorEvent(message=exc.message))
            return

        body = "".join(chunks) if chunks else NO_RESPONSE_PLACEHOLDER
        reply = await asyncio.to_thread(self.messages.add, MessageRole.ASSISTANT, body)
        self._emit(StreamEnd(message=reply.to_dict()))

    # ── Model preference ──

    async def _get_model(self, message: dict[str, Any]) -> None:
        self._emit(ModelUpdated(model=self.model_store.get()))

    async def _set_model(self, message: dict[str, Any]) -> None:
        value = message.get("model")
        model = self.model_store.set(value if isinstance(value, str) else "")
        self._emit(ModelUpdated(model=model))
