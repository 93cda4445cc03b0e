"""Shared fixtures: a scriptable stand-in for asyncio subprocesses."""
from __future__ import annotations

import asyncio

import pytest


class FakeStdin:
    def __init__(self) -> None:
        self.data = b""
        self.closed = False

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Quacks like ``asyncio.subprocess.Process`` with real StreamReaders.

    Output given to the constructor is buffered up front. With
    ``hold=True`` the process stays alive until finish() or kill().
    """

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        returncode: int = 0,
        *,
        hold: bool = False,
    ) -> None:
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.stdin = FakeStdin()
        self.returncode: int | None = None
        self.killed = False
        self._exit_code = returncode
        self._exited = asyncio.Event()
        if stdout:
            self.stdout.feed_data(stdout)
        if stderr:
            self.stderr.feed_data(stderr)
        if not hold:
            self.finish()

    def feed_stdout(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def feed_stderr(self, data: bytes) -> None:
        self.stderr.feed_data(data)

    def finish(self, code: int | None = None) -> None:
        if self.returncode is not None:
            return
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self.returncode = self._exit_code if code is None else code
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.finish(-9)


async def settle(rounds: int = 10) -> None:
    """Let pending reader tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_process():
    return FakeProcess


@pytest.fixture
def settle_loop():
    return settle


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point every backend's credential location into tmp_path."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in ("CLAUDE_CONFIG_DIR", "GEMINI_DIR", "CODEX_HOME", "XDG_DATA_HOME", "OPENCODE_PROVIDER"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def playground(tmp_path):
    path = tmp_path / "playground"
    path.mkdir()
    return path


@pytest.fixture
def recording_bridge():
    """ConnectionBridge whose callbacks are MagicMocks."""
    from unittest.mock import MagicMock

    from phoenix_agent.engine.bridge import ConnectionBridge

    return ConnectionBridge(
        on_auth_url=MagicMock(),
        on_device_code=MagicMock(),
        on_auth_success=MagicMock(),
        on_auth_status=MagicMock(),
        on_error=MagicMock(),
        on_logout_output=MagicMock(),
        on_logout_success=MagicMock(),
    )
