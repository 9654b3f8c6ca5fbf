from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .file import MtprotoSession


class SessionStore(Protocol):
    """Where a client keeps its auth key and endpoint between runs."""

    def load(self, name: str) -> MtprotoSession | None: ...
    def save(self, session: MtprotoSession) -> None: ...
