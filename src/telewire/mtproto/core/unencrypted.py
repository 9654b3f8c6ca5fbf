from __future__ import annotations

import struct
from dataclasses import dataclass


class UnencryptedMessageError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class UnencryptedMessage:
    """
    Plaintext envelope used only during the auth key exchange.

    Layout: auth_key_id=0 (8) + msg_id (8) + length (4) + body.
    """

    msg_id: int
    body: bytes

    def pack(self) -> bytes:
        if self.msg_id % 4 != 0:
            raise UnencryptedMessageError("msg_id must be divisible by 4")
        if len(self.body) % 4 != 0:
            raise UnencryptedMessageError("body length must be divisible by 4")
        return struct.pack("<qqi", 0, int(self.msg_id), len(self.body)) + self.body


def unpack_unencrypted(data: bytes) -> UnencryptedMessage:
    if len(data) < 20:
        raise UnencryptedMessageError("packet too small")
    auth_key_id, msg_id, ln = struct.unpack_from("<qqi", data, 0)
    if auth_key_id != 0:
        raise UnencryptedMessageError("auth_key_id is not 0 (not an unencrypted packet)")
    if ln < 0:
        raise UnencryptedMessageError("negative message length")
    if 20 + ln != len(data):
        raise UnencryptedMessageError("length mismatch")
    return UnencryptedMessage(msg_id=msg_id, body=data[20:])
