"""
auth/messages.py -- User-facing message sink, decoupled from logging.

Services record what the user should be told; the HTTP layer decides how to
show it. Messages collected during a request can be returned in the response
body directly, or flashed into the session so the next page render picks
them up (the session guard uses the latter, since it runs in middleware and
has no response body of its own).

Messages are plain strings and must never contain registry data or account
details beyond what the user typed.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field

FLASH_KEY = "_flash"

STATUS = "status"
WARNING = "warning"
ERROR = "error"


@dataclass
class Message:
    level: str
    text: str


@dataclass
class Messenger:
    """Collects status / warning / error messages for the current user."""

    messages: list[Message] = field(default_factory=list)

    def add_status(self, text: str) -> None:
        self._add(STATUS, text)

    def add_warning(self, text: str) -> None:
        self._add(WARNING, text)

    def add_error(self, text: str) -> None:
        self._add(ERROR, text)

    def _add(self, level: str, text: str) -> None:
        # Identical messages in one request are shown once.
        if not any(m.level == level and m.text == text for m in self.messages):
            self.messages.append(Message(level, text))

    def by_level(self, level: str) -> list[str]:
        return [m.text for m in self.messages if m.level == level]

    def as_dicts(self) -> list[dict]:
        return [{"level": m.level, "text": m.text} for m in self.messages]

    def flash(self, session: MutableMapping) -> None:
        """Append collected messages to the session for the next request, then clear."""
        if not self.messages:
            return
        pending = list(session.get(FLASH_KEY, []))
        for m in self.as_dicts():
            if m not in pending:
                pending.append(m)
        session[FLASH_KEY] = pending
        self.messages.clear()


def pop_flashed(session: MutableMapping) -> list[dict]:
    """Remove and return messages flashed into the session."""
    return list(session.pop(FLASH_KEY, []))
