"""The two fixed roles a connection can claim."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Logical participant in a relay pair.

    The listener consumes audio and drives sessions; the source captures
    audio and streams it. Exactly one live connection may hold each role.
    """

    LISTENER = "listener"
    SOURCE = "source"

    @property
    def peer(self) -> Role:
        """The other role of the pair."""
        return Role.SOURCE if self is Role.LISTENER else Role.LISTENER

    @classmethod
    def parse(cls, name: object) -> Role | None:
        """Resolve a wire name to a Role, or None if it names neither."""
        if not isinstance(name, str):
            return None
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None
