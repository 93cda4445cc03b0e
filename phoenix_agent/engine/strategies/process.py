"""Subprocess plumbing shared by the CLI-backed strategies.

Everything here is asyncio-native: reading a pipe, probing with a
deadline and killing a child never blocks the event loop.
"""
from __future__ import annotations

import asyncio
import codecs
import logging
import os
import re
from collections.abc import Callable

logger = logging.getLogger(__name__)

ANSI_RE = re.compile(r"\x1B(?:\[[0-9;?]*[a-zA-Z]|\][^\x07]*\x07)")
# An escape sequence cut off by the end of a read
PARTIAL_ANSI_RE = re.compile(r"\x1B(?:\[[0-9;?]*|\][^\x07]*)?\Z")

READ_CHUNK_SIZE = 4096


def strip_ansi(text: str) -> str:
    """Remove terminal colour/cursor escape sequences.

    A sequence left incomplete at the end of *text* is dropped too, so
    callers that re-strip an accumulated buffer never see its prefix.
    """
    return PARTIAL_ANSI_RE.sub("", ANSI_RE.sub("", text))


def build_env(overrides: dict[str, str] | None = None) -> dict[str, str]:
    """Copy of the current environment with *overrides* applied."""
    env = os.environ.copy()
    if overrides:
        env.update(overrides)
    return env


async def pump_stream(
    stream: asyncio.StreamReader | None,
    on_text: Callable[[str], None],
    *,
    chunk_size: int = READ_CHUNK_SIZE,
) -> None:
    """Forward decoded text from *stream* to *on_text* in arrival order.

    Uses an incremental decoder so a multi-byte character split across
    two reads is delivered intact.
    """
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(chunk_size)
        if not data:
            break
        text = decoder.decode(data)
        if text:
            on_text(text)
    tail = decoder.decode(b"", final=True)
    if tail:
        on_text(tail)


def kill_process(proc: asyncio.subprocess.Process | None) -> None:
    """Kill *proc* if it is still running. Safe to call repeatedly."""
    if proc is None or proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def run_probe(
    proc: asyncio.subprocess.Process,
    detect: Callable[[str], bool],
    timeout: float,
) -> tuple[bool, int | None, str]:
    """Watch a probe process until it exits, *detect* fires, or *timeout* passes.

    Returns ``(detected, exit_code, output)``. The process is killed when
    detection fires or the deadline passes; exit_code is None in both
    of those cases.
    """
    raw: list[str] = []
    detected = asyncio.Event()

    def output() -> str:
        # Strip after joining: an escape may straddle two reads
        return strip_ansi("".join(raw))

    def on_text(text: str) -> None:
        raw.append(text)
        if not detected.is_set() and detect(output()):
            detected.set()

    async def watch() -> int:
        await asyncio.gather(
            pump_stream(proc.stdout, on_text),
            pump_stream(proc.stderr, on_text),
        )
        return await proc.wait()

    exit_task = asyncio.ensure_future(watch())
    detect_task = asyncio.ensure_future(detected.wait())
    try:
        done, _ = await asyncio.wait(
            {exit_task, detect_task},
            timeout=timeout if timeout and timeout > 0 else None,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if detect_task in done:
            return True, None, output()
        if exit_task in done:
            return False, exit_task.result(), output()
        logger.warning("Probe timed out after %.1fs; killing it", timeout)
        return False, None, output()
    finally:
        kill_process(proc)
        for task in (exit_task, detect_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(exit_task, detect_task, return_exceptions=True)
