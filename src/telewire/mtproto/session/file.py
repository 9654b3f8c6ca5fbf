from __future__ import annotations

import base64
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from telewire.mtproto.core.auth_key import AUTH_KEY_SIZE

logger = logging.getLogger(__name__)

_SESSION_VERSION = 2
_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class SessionError(Exception):
    pass


@dataclass(slots=True)
class MtprotoSession:
    """
    Persistent client state.

    Stores what is needed to skip the key exchange on the next run and to talk
    to the right data center:
    - endpoint (dc_id, host, port); a key is only valid for the dc it was made on
    - auth_key and the last known server_salt (8 bytes little-endian)
    - time_offset: server clock minus local clock, seconds
    - user_id once the key is bound to an account

    Message ids and seqno counters are per connection and never stored.
    """

    name: str
    dc_id: int
    host: str
    port: int
    auth_key: bytes | None = None
    server_salt: bytes | None = None
    time_offset: int = 0
    user_id: int | None = None
    version: int = _SESSION_VERSION

    def validate(self) -> None:
        if self.version != _SESSION_VERSION:
            raise SessionError(f"Unsupported session version: {self.version}")
        if not _NAME_RE.match(self.name or ""):
            raise SessionError(f"Invalid session name: {self.name!r}")
        if not isinstance(self.dc_id, int) or self.dc_id <= 0:
            raise SessionError("Invalid dc_id")
        if not self.host:
            raise SessionError("Invalid host")
        if not isinstance(self.port, int) or not (0 < self.port < 65536):
            raise SessionError("Invalid port")
        if self.auth_key is not None and len(self.auth_key) != AUTH_KEY_SIZE:
            raise SessionError(f"Invalid auth_key (must be {AUTH_KEY_SIZE} bytes)")
        if self.server_salt is not None and len(self.server_salt) != 8:
            raise SessionError("Invalid server_salt (must be 8 bytes)")
        if not isinstance(self.time_offset, int):
            raise SessionError("Invalid time_offset")

    def to_json_dict(self) -> dict[str, object]:
        self.validate()
        return {
            "version": self.version,
            "name": self.name,
            "dc_id": self.dc_id,
            "host": self.host,
            "port": self.port,
            "auth_key_b64": (
                base64.b64encode(self.auth_key).decode("ascii")
                if self.auth_key is not None
                else None
            ),
            "server_salt_hex": self.server_salt.hex() if self.server_salt is not None else None,
            "time_offset": self.time_offset,
            "user_id": self.user_id,
        }

    @classmethod
    def from_json_dict(cls, data: dict[str, object]) -> MtprotoSession:
        try:
            auth_key_b64 = data.get("auth_key_b64")
            salt_hex = data.get("server_salt_hex")
            user_id = data.get("user_id")
            sess = cls(
                version=int(data.get("version", _SESSION_VERSION)),  # type: ignore[arg-type]
                name=str(data["name"]),
                dc_id=int(data["dc_id"]),  # type: ignore[arg-type]
                host=str(data["host"]),
                port=int(data["port"]),  # type: ignore[arg-type]
                auth_key=(
                    base64.b64decode(str(auth_key_b64), validate=True)
                    if auth_key_b64 is not None
                    else None
                ),
                server_salt=bytes.fromhex(str(salt_hex)) if salt_hex is not None else None,
                time_offset=int(data.get("time_offset", 0)),  # type: ignore[arg-type]
                user_id=int(user_id) if user_id is not None else None,  # type: ignore[arg-type]
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SessionError("Invalid session JSON shape") from e
        sess.validate()
        return sess


def load_session_file(path: str | Path) -> MtprotoSession:
    p = Path(path)
    raw = p.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SessionError(f"Failed to parse session JSON: {p}") from e
    if not isinstance(data, dict):
        raise SessionError("Session JSON must be an object")
    return MtprotoSession.from_json_dict(data)


def save_session_file(path: str | Path, session: MtprotoSession) -> None:
    """Write atomically (temp file + rename), readable by the owner only."""

    session.validate()
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    tmp = p.with_name(f"{p.name}.{os.getpid()}.{uuid4().hex}.tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps(session.to_json_dict(), indent=2, sort_keys=True) + "\n")
        tmp.replace(p)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


@dataclass(frozen=True, slots=True)
class FileSessionStore:
    """One `<name>.session.json` per session under `directory`."""

    directory: Path

    def path_for(self, name: str) -> Path:
        if not _NAME_RE.match(name):
            raise SessionError(f"Invalid session name: {name!r}")
        return Path(self.directory) / f"{name}.session.json"

    def load(self, name: str) -> MtprotoSession | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        session = load_session_file(path)
        if session.name != name:
            raise SessionError(f"{path} holds session {session.name!r}, expected {name!r}")
        return session

    def save(self, session: MtprotoSession) -> None:
        save_session_file(self.path_for(session.name), session)
        logger.debug("Saved session %s (dc %d)", session.name, session.dc_id)
