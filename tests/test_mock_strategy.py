"""Tests for MockStrategy."""
from __future__ import annotations

import asyncio

import pytest

from phoenix_agent.engine.errors import AuthInProgressError, PromptExecutionError
from phoenix_agent.engine.strategies.mock import LOGOUT_TRANSCRIPT, RESPONSE_PREFIX, MockStrategy


def test_response_echoes_last_line():
    strategy = MockStrategy()
    assert strategy.response_for("hello") == f"{RESPONSE_PREFIX} You said: hello"
    assert strategy.response_for("system text\n\nCurrent message:\nhi there\n", "pro") == (
        f"{RESPONSE_PREFIX} (pro) You said: hi there"
    )


@pytest.mark.asyncio
async def test_prompt_streams_word_chunks():
    strategy = MockStrategy(delay=0)
    chunks: list[str] = []
    await strategy.execute_prompt_streaming("ping pong", None, chunks.append)

    assert len(chunks) > 1
    assert "".join(chunks) == strategy.response_for("ping pong")
    assert strategy.prompts == ["ping pong"]
    assert strategy.has_session is True


@pytest.mark.asyncio
async def test_unknown_model_fails():
    strategy = MockStrategy(delay=0)
    chunks: list[str] = []
    with pytest.raises(PromptExecutionError, match="ModelNotFoundError") as info:
        await strategy.execute_prompt_streaming("hi", "missing-model", chunks.append)
    assert info.value.exit_code == 1
    assert chunks == []


@pytest.mark.asyncio
async def test_auth_completes_after_delay(recording_bridge):
    strategy = MockStrategy(delay=0)
    strategy.clear_credentials()
    assert await strategy.check_auth_status() is False

    await strategy.execute_auth(recording_bridge)
    assert await strategy.submit_auth_code("anything") is True
    with pytest.raises(AuthInProgressError):
        await strategy.execute_auth(recording_bridge)

    await strategy._auth_session.task
    recording_bridge.on_auth_success.assert_called_once_with()
    assert await strategy.check_auth_status() is True
    assert await strategy.submit_auth_code("late") is False


@pytest.mark.asyncio
async def test_cancelled_auth_never_reports(recording_bridge):
    strategy = MockStrategy(delay=0.01)
    await strategy.execute_auth(recording_bridge)
    task = strategy._auth_session.task

    strategy.cancel_auth()
    with pytest.raises(asyncio.CancelledError):
        await task
    recording_bridge.on_auth_success.assert_not_called()


@pytest.mark.asyncio
async def test_logout_transcript(recording_bridge):
    strategy = MockStrategy(delay=0)
    strategy.has_session = True

    await strategy.execute_logout(recording_bridge)

    lines = [call.args[0] for call in recording_bridge.on_logout_output.call_args_list]
    assert lines == list(LOGOUT_TRANSCRIPT)
    recording_bridge.on_logout_success.assert_called_once_with()
    assert strategy.has_session is False
    assert await strategy.check_auth_status() is False


def test_always_available():
    assert MockStrategy(command="definitely-not-on-path").is_available() is True
