"""Session context: the current/last thread cursor.

The cursor is a plain value handed to every call that needs "the active
thread", never module state. Between CLI invocations it is persisted in the
setting table under ``current_thread`` / ``last_thread``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auditmark.scope import Settings

_CURRENT_KEY = "current_thread"
_LAST_KEY = "last_thread"


def _as_id(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class SessionContext:
    current: int | None = None
    last: int | None = None

    def switch(self, node_id: int) -> None:
        """Make node_id current; the previous current becomes last."""
        self.last = self.current
        self.current = node_id

    def forget(self, node_id: int) -> None:
        """Drop references to a node that no longer exists."""
        if self.current == node_id:
            self.current = None
        if self.last == node_id:
            self.last = None

    @classmethod
    def load(cls, settings: Settings) -> SessionContext:
        return cls(
            current=_as_id(settings.get(_CURRENT_KEY)),
            last=_as_id(settings.get(_LAST_KEY)),
        )

    def save(self, settings: Settings) -> None:
        settings.set(_CURRENT_KEY, "" if self.current is None else str(self.current))
        settings.set(_LAST_KEY, "" if self.last is None else str(self.last))
