from __future__ import annotations

from dataclasses import dataclass

from telewire.core.bytes import u64_to_le_bytes
from telewire.mtproto.crypto.hashes import sha1

AUTH_KEY_SIZE = 256


class AuthKeyError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class AuthKey:
    """
    Shared 2048-bit secret produced by the DH exchange.

    `key_id` is the lower 64 bits of sha1(key) (unsigned, little-endian) and
    prefixes every encrypted packet; `aux_hash` is the upper 64 bits and feeds
    the new_nonce_hash checks and retry ids of the handshake.
    """

    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) != AUTH_KEY_SIZE:
            raise AuthKeyError(f"auth key must be {AUTH_KEY_SIZE} bytes, got {len(self.data)}")

    def __repr__(self) -> str:
        return f"AuthKey(key_id=0x{self.key_id:016x})"

    @property
    def key_id(self) -> int:
        return int.from_bytes(sha1(self.data)[-8:], "little", signed=False)

    @property
    def key_id_bytes(self) -> bytes:
        return u64_to_le_bytes(self.key_id)

    @property
    def aux_hash(self) -> bytes:
        return sha1(self.data)[:8]
