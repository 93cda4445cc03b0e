"""Abstract base for backend strategies.

Each strategy wraps one AI command-line tool (Claude Code, Gemini CLI,
Codex CLI, opencode) and owns that tool's subprocesses: the auth flow,
the auth status probe, logout and prompt execution. The Orchestrator
only ever talks to this interface.

Contract summary:
    check_auth_status()      resolves to bool, never raises
    execute_auth(bridge)     reports through the bridge; raises
                             AuthInProgressError if one is outstanding
    submit_auth_code(code)   True when delivered, False when no session
    cancel_auth()            synchronous, idempotent
    clear_credentials()      idempotent
    execute_logout(bridge)   always ends with bridge.logout_success()
    get_model_args(model)    pure
    execute_prompt_streaming(prompt, model, on_chunk)
                             raises PromptExecutionError on failure
"""
from __future__ import annotations

import abc
import asyncio
import logging
import re
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from phoenix_agent.engine.bridge import ConnectionBridge
from phoenix_agent.engine.errors import AuthInProgressError, PromptExecutionError
from phoenix_agent.engine.events import UNAUTHENTICATED

from .classifier import AUTH_REQUIRED, AUTH_URL, DEVICE_CODE, OutputEvent, PatternClassifier
from .process import build_env, kill_process, pump_stream, run_probe, strip_ansi

if TYPE_CHECKING:
    from phoenix_agent.engine.config import AgentConfig

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]

# Output that means the requested model does not exist. Matched
# case-insensitively against stderr (and stdout on non-zero exit).
DEFAULT_FATAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"model[ _-]?not[ _-]?found", re.IGNORECASE),
    re.compile(r"ModelNotFoundError", re.IGNORECASE),
    re.compile(r"\bunknown model\b", re.IGNORECASE),
    re.compile(r"\binvalid model\b", re.IGNORECASE),
)


@dataclass
class AuthSession:
    """State of one outstanding authentication attempt."""
    bridge: ConnectionBridge
    process: asyncio.subprocess.Process | None = None
    task: asyncio.Task | None = field(default=None, repr=False)
    raw_output: str = ""
    output: str = ""
    reported: set[str] = field(default_factory=set)
    scratch: dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False
    quiet_timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def stop_quiet_timer(self) -> None:
        if self.quiet_timer is not None:
            self.quiet_timer.cancel()
            self.quiet_timer = None


class BackendStrategy(abc.ABC):
    """Polymorphic adapter for one AI CLI backend."""

    #: Executable spawned for every operation
    default_command: str = ""
    #: Flag placed before the model name by get_model_args()
    model_flag: str = "--model"
    #: Whether execute_logout runs a backend-native logout
    supports_logout: bool = False
    #: Recognises auth URLs / device codes / "login required" output
    auth_classifier: PatternClassifier = PatternClassifier(())
    fatal_patterns: tuple[re.Pattern[str], ...] = DEFAULT_FATAL_PATTERNS
    #: Seconds of auth output silence after which a match still held back
    #: at the end of the output (a URL printed before a stdin prompt) is reported
    auth_quiet_period: float = 1.0

    def __init__(
        self,
        *,
        command: str | None = None,
        playground_dir: str | Path | None = None,
        probe_timeout: float = 30.0,
    ) -> None:
        self._command = command or self.default_command
        self._playground_dir = Path(playground_dir) if playground_dir else Path.cwd() / "playground"
        self._probe_timeout = probe_timeout
        self._auth_session: AuthSession | None = None
        # Backend-native conversation continuity across prompt executions
        self.has_session = False

    @classmethod
    def from_config(cls, config: AgentConfig) -> BackendStrategy:
        return cls(
            playground_dir=config.playground_dir,
            probe_timeout=config.auth_probe_timeout,
        )

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Registry identifier (e.g. 'claude-code')."""

    @property
    def command(self) -> str:
        return self._command

    def is_available(self) -> bool:
        """True when the backend executable is on PATH."""
        return bool(self._command) and shutil.which(self._command) is not None

    @property
    def auth_pending(self) -> bool:
        return self._auth_session is not None

    # ── Auth status ──

    async def check_auth_status(self) -> bool:
        """Probe whether the backend is authenticated. Never raises."""
        try:
            result = await self._check_auth_status()
        except Exception:
            logger.exception("Error checking %s auth status", self.name)
            return False
        logger.info("%s auth status: %s", self.name, "authenticated" if result else "unauthenticated")
        return result

    @abc.abstractmethod
    async def _check_auth_status(self) -> bool:
        ...

    async def _probe_auth_process(
        self,
        args: list[str],
        env: dict[str, str] | None = None,
    ) -> bool:
        """Spawn a short-lived probe and decide from its output and exit code.

        Any auth URL or "login required" line means unauthenticated; the
        probe is killed as soon as one shows up, or once the probe
        timeout passes.
        """
        try:
            proc = await self._spawn(args, env=env)
        except OSError as exc:
            logger.error("Could not start %s auth probe: %s", self._command, exc)
            return False

        detected, code, output = await run_probe(
            proc,
            lambda buffer: self.auth_classifier.detects(buffer, AUTH_URL, AUTH_REQUIRED),
            self._probe_timeout,
        )
        if detected or code is None:
            return False
        return self.probe_succeeded(code, output)

    def probe_succeeded(self, code: int, output: str) -> bool:
        """Decide a probe that exited without asking for login."""
        return code == 0

    # ── Auth flow ──

    async def execute_auth(self, bridge: ConnectionBridge) -> None:
        """Start the interactive login subprocess and supervise it."""
        if self._auth_session is not None:
            raise AuthInProgressError(self.name)

        session = AuthSession(bridge=bridge)
        self._auth_session = session
        logger.info("Starting %s authentication", self.name)

        try:
            proc = await self._spawn(self.auth_args(), env=self.auth_env(), stdin=True)
        except OSError as exc:
            if self._auth_session is session:
                self._auth_session = None
            logger.error("Could not start %s auth process: %s", self._command, exc)
            bridge.error(f"Could not start '{self._command}': {exc}")
            bridge.auth_status(UNAUTHENTICATED)
            return

        if session.cancelled:
            kill_process(proc)
            return

        session.process = proc
        session.task = asyncio.create_task(
            self._supervise_auth(session), name=f"{self.name}-auth"
        )

    def auth_args(self) -> list[str]:
        """Arguments of the login subprocess."""
        raise NotImplementedError(f"{self.name} does not spawn an auth process")

    def auth_env(self) -> dict[str, str] | None:
        return None

    def auth_succeeded(self, code: int, output: str) -> bool:
        """Exit-code predicate for the login subprocess."""
        return code == 0

    async def _supervise_auth(self, session: AuthSession) -> None:
        proc = session.process
        assert proc is not None

        def on_text(text: str) -> None:
            self._feed_auth_output(session, text)

        code: int | None = None
        try:
            await asyncio.gather(
                pump_stream(proc.stdout, on_text),
                pump_stream(proc.stderr, on_text),
            )
            code = await proc.wait()
        except (OSError, ValueError) as exc:
            logger.error("%s auth process I/O failed: %s", self.name, exc)

        session.stop_quiet_timer()
        if session.cancelled or self._auth_session is not session:
            logger.info("%s auth process ended after cancellation", self.name)
            return

        # A URL printed right before exit has no trailing output yet.
        for event in self.auth_classifier(session.output, final=True):
            self._dispatch_auth_event(session, event)

        self._auth_session = None
        logger.info("%s auth process exited with code %s", self.name, code)
        if code is not None and self.auth_succeeded(code, session.output):
            session.bridge.auth_success()
        else:
            logger.error("%s auth failed with exit code %s", self.name, code)
            session.bridge.auth_status(UNAUTHENTICATED)

    def _feed_auth_output(self, session: AuthSession, text: str) -> None:
        session.raw_output += text
        # Strip after joining: an escape may straddle two reads
        session.output = strip_ansi(session.raw_output)
        if text.strip():
            logger.debug("[%s auth output] %s", self.name, strip_ansi(text).strip())
        if session.cancelled:
            return
        for event in self.auth_classifier(session.output):
            self._dispatch_auth_event(session, event)

        session.stop_quiet_timer()
        session.quiet_timer = asyncio.get_running_loop().call_later(
            self.auth_quiet_period, self._flush_quiet_auth_output, session
        )

    def _flush_quiet_auth_output(self, session: AuthSession) -> None:
        """Report matches held back at the end of output once the CLI goes quiet."""
        session.quiet_timer = None
        if session.cancelled or self._auth_session is not session:
            return
        for event in self.auth_classifier(session.output, final=True):
            self._dispatch_auth_event(session, event)

    def _dispatch_auth_event(self, session: AuthSession, event: OutputEvent) -> None:
        if event.kind not in (AUTH_URL, DEVICE_CODE) or event.kind in session.reported:
            return
        session.reported.add(event.kind)
        self._on_auth_event(session, event)

    def _on_auth_event(self, session: AuthSession, event: OutputEvent) -> None:
        """Report a newly recognised URL or device code through the bridge."""
        if event.kind == AUTH_URL:
            session.scratch["auth_url"] = event.value
            session.bridge.auth_url_generated(event.value)
        elif event.kind == DEVICE_CODE:
            session.bridge.device_code(event.value, session.scratch.get("auth_url"))

    async def submit_auth_code(self, code: str) -> bool:
        """Write operator input to the login process's stdin."""
        session = self._auth_session
        proc = session.process if session else None
        if proc is None or proc.stdin is None:
            logger.error("No active %s authentication process to submit code to", self.name)
            return False

        logger.info("Writing auth code to %s process", self.name)
        try:
            proc.stdin.write(((code or "").strip() + "\n").encode("utf-8"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.error("Could not write auth code to %s: %s", self.name, exc)
            return False
        return True

    def cancel_auth(self) -> None:
        """Terminate the outstanding auth attempt, if any."""
        session = self._auth_session
        if session is None:
            return
        self._auth_session = None
        session.cancelled = True
        session.stop_quiet_timer()
        logger.info("Cancelling %s auth process", self.name)
        kill_process(session.process)
        if session.task is not None and not session.task.done():
            session.task.cancel()

    @abc.abstractmethod
    def clear_credentials(self) -> None:
        """Delete locally cached credentials. Idempotent."""

    async def execute_logout(self, bridge: ConnectionBridge) -> None:
        """Forget local credentials. Strategies with a native logout override this."""
        self.cancel_auth()
        try:
            self.clear_credentials()
        except OSError:
            logger.exception("Error clearing %s credentials during logout", self.name)
        self.has_session = False
        bridge.logout_success()

    # ── Prompt execution ──

    def get_model_args(self, model: str | None) -> list[str]:
        model = (model or "").strip()
        if not model:
            return []
        return [self.model_flag, model]

    def prompt_args(self, prompt: str, model: str | None) -> list[str]:
        """Arguments for one prompt invocation, honouring has_session."""
        raise NotImplementedError(f"{self.name} does not spawn prompt processes")

    def prompt_env(self) -> dict[str, str] | None:
        return None

    async def execute_prompt_streaming(
        self,
        prompt: str,
        model: str | None,
        on_chunk: ChunkCallback,
    ) -> None:
        """Run one backend invocation, streaming stdout to *on_chunk*."""
        args = self.prompt_args(prompt, model)
        cwd = self._ensure_playground()
        try:
            proc = await self._spawn(args, env=self.prompt_env(), cwd=cwd)
        except OSError as exc:
            raise PromptExecutionError(
                f"Could not start '{self._command}': {exc}"
            ) from exc

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        def on_stdout(text: str) -> None:
            stdout_parts.append(text)
            on_chunk(text)

        try:
            await asyncio.gather(
                pump_stream(proc.stdout, on_stdout),
                pump_stream(proc.stderr, stderr_parts.append),
            )
            code = await proc.wait()
        finally:
            kill_process(proc)

        if code != 0:
            logger.warning("%s process exited with code %s", self.name, code)
        failure = self.prompt_failure(code, "".join(stdout_parts), "".join(stderr_parts))
        if failure is not None:
            raise PromptExecutionError(failure, exit_code=code)
        self.has_session = True

    def prompt_failure(self, code: int, stdout: str, stderr: str) -> str | None:
        """Return an error message when the invocation failed, else None.

        A non-zero exit on its own is not fatal: some CLIs exit non-zero
        on benign conditions. Failure needs error text on stderr or a
        recognised fatal signature.
        """
        err = strip_ansi(stderr).strip()
        line = self._fatal_line(err)
        if line is None and code != 0:
            line = self._fatal_line(strip_ansi(stdout))
        if line is not None:
            return err or line
        if code != 0 and err:
            return err
        return None

    def _fatal_line(self, text: str) -> str | None:
        for raw in text.splitlines():
            if any(pattern.search(raw) for pattern in self.fatal_patterns):
                return raw.strip()
        return None

    # ── Helpers ──

    def _ensure_playground(self) -> str:
        self._playground_dir.mkdir(parents=True, exist_ok=True)
        return str(self._playground_dir)

    async def _spawn(
        self,
        args: list[str],
        *,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        stdin: bool = False,
    ) -> asyncio.subprocess.Process:
        """Start the backend CLI (argument array, never a shell)."""
        logger.debug("Spawning %s %s", self._command, " ".join(args[:3]))
        return await asyncio.create_subprocess_exec(
            self._command,
            *args,
            stdin=asyncio.subprocess.PIPE if stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=build_env(env),
            cwd=cwd,
        )
