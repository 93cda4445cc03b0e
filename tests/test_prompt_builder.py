"""Tests for prompt construction."""
from __future__ import annotations

from phoenix_agent.engine.config import AgentConfig
from phoenix_agent.engine.prompt import (
    CurrentMessagePrompt,
    HistoryFramedPrompt,
    SystemPrompt,
    build_prompt_builder,
)
from phoenix_agent.shared.models import Message


def _history(*pairs):
    return [Message(role=role, body=body) for role, body in pairs]


def test_system_prompt_load(tmp_path):
    path = tmp_path / "SYSTEM_PROMPT.md"
    path.write_text("  Be brief.\n\n")
    assert SystemPrompt.load(path).text == "Be brief."
    assert SystemPrompt.load(tmp_path / "missing.md").text == ""
    assert SystemPrompt.load(None).text == ""


def test_current_message_prompt():
    builder = CurrentMessagePrompt(SystemPrompt("Be brief."))
    history = _history(("user", "earlier"), ("assistant", "reply"))
    assert builder.build("hello", history) == "Be brief.\n\nhello"
    assert CurrentMessagePrompt().build("hello", history) == "hello"


def test_history_framed_prompt():
    builder = HistoryFramedPrompt(SystemPrompt("Sys"), max_messages=2)
    history = _history(("user", "first"), ("assistant", "one"), ("user", "second"))

    assert builder.build("third", history) == (
        "Sys\n\n"
        "Conversation so far:\n"
        "Assistant: one\n"
        "User: second\n"
        "\n"
        "Current message:\n"
        "third"
    )


def test_history_framed_prompt_without_history():
    builder = HistoryFramedPrompt(SystemPrompt("Sys"))
    assert builder.build("hi", []) == "Sys\n\nhi"
    assert HistoryFramedPrompt(max_messages=0).build("hi", _history(("user", "x"))) == "hi"


def test_build_prompt_builder_follows_config(tmp_path):
    missing = str(tmp_path / "none.md")
    plain = build_prompt_builder(AgentConfig(system_prompt_path=missing))
    framed = build_prompt_builder(
        AgentConfig(system_prompt_path=missing, include_history=True, history_max_messages=5)
    )
    assert isinstance(plain, CurrentMessagePrompt)
    assert isinstance(framed, HistoryFramedPrompt)
