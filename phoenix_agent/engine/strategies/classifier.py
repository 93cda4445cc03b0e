"""Output classifiers: turn free-text CLI output into auth events.

Scraping is inherently fragile, so each backend owns a classifier
built from a small table of ``(kind, pattern)`` rules. Swapping a
backend to a structured protocol only means replacing its classifier.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

AUTH_URL = "auth_url"
DEVICE_CODE = "device_code"
AUTH_REQUIRED = "auth_required"
AUTH_FAILED = "auth_failed"


@dataclass(frozen=True)
class OutputEvent:
    """A structured fact recognised in process output."""
    kind: str
    value: str


class PatternClassifier:
    """Classify accumulated output with an ordered list of regex rules.

    A match that reaches the very end of the buffer may still be growing
    (a URL split across two pipe reads), so it is only reported once
    more output follows it or when ``final`` is set.
    """

    def __init__(self, rules: Sequence[tuple[str, re.Pattern[str]]]) -> None:
        self._rules = tuple(rules)

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(kind for kind, _ in self._rules)

    def __call__(self, buffer: str, *, final: bool = False) -> list[OutputEvent]:
        events: list[OutputEvent] = []
        for kind, pattern in self._rules:
            match = pattern.search(buffer)
            if match is None:
                continue
            if not final and match.end() >= len(buffer):
                continue
            value = match.group(1) if pattern.groups else match.group(0)
            events.append(OutputEvent(kind=kind, value=value))
        return events

    def detects(self, buffer: str, *kinds: str) -> bool:
        """True when any rule of the given kinds matches, complete or not."""
        wanted = set(kinds) if kinds else set(self.kinds)
        return any(
            event.kind in wanted for event in self(buffer, final=True)
        )
