from __future__ import annotations

from dataclasses import dataclass, field, replace

from .file import MtprotoSession


@dataclass(slots=True)
class MemorySessionStore:
    """Process-local store; sessions are copied in and out so callers cannot alias them."""

    sessions: dict[str, MtprotoSession] = field(default_factory=dict)
    saves: int = 0

    def load(self, name: str) -> MtprotoSession | None:
        session = self.sessions.get(name)
        return replace(session) if session is not None else None

    def save(self, session: MtprotoSession) -> None:
        session.validate()
        self.sessions[session.name] = replace(session)
        self.saves += 1
