from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class TransportError(Exception):
    pass


class FrameIntegrityError(TransportError):
    """A received frame failed its checksum, sequence or message-key check."""


class Framing(Protocol):
    """
    Transport framing is responsible only for:
    - turning raw MTProto packet bytes into framed bytes (encode)
    - reading framed bytes and extracting a raw packet (decode)
    """

    def encode(self, payload: bytes) -> bytes: ...
    def decode_from_buffer(self, buffer: bytearray) -> bytes | None: ...
    def reset(self) -> None: ...


class Connection(Protocol):
    """Ordered, reliable byte stream (a TCP socket, or an in-memory pipe in tests)."""

    async def connect(self, host: str, port: int) -> None: ...
    async def send_bytes(self, data: bytes) -> None: ...

    async def recv_bytes(self, n: int) -> bytes:
        """Return up to `n` bytes; `b""` means the peer closed the stream."""
        ...

    async def close(self) -> None: ...


class PacketTransport(Protocol):
    async def send(self, payload: bytes) -> None: ...
    async def recv(self) -> bytes: ...


@dataclass(frozen=True, slots=True)
class Endpoint:
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def transport_error_code(payload: bytes) -> int | None:
    """
    Servers answer some failures with a bare negative int32 instead of a packet
    (-404: unknown auth key, -429: too many connections, ...).
    """

    if len(payload) != 4:
        return None
    code = int.from_bytes(payload, "little", signed=True)
    return code if code < 0 else None
