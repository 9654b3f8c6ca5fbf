from __future__ import annotations

import struct
from dataclasses import dataclass, field

from telewire.mtproto.core.auth_key import AuthKey
from telewire.mtproto.core.msg_id import MsgIdGenerator
from telewire.mtproto.crypto.aes_ige import AesIge
from telewire.mtproto.crypto.hashes import sha256
from telewire.mtproto.crypto.random import RandomSource, random_bytes
from telewire.mtproto.transport.base import FrameIntegrityError


class MtprotoStateError(Exception):
    pass


class MsgKeyMismatchError(MtprotoStateError, FrameIntegrityError):
    """Decrypted payload does not hash to the msg_key it was sent with."""


def _slice_offset(*, client: bool) -> int:
    # client -> server uses x=0, server -> client uses x=8.
    return 0 if client else 8


def compute_msg_key(auth_key: AuthKey, plaintext: bytes, *, client: bool) -> bytes:
    x = _slice_offset(client=client)
    return sha256(auth_key.data[88 + x : 120 + x] + plaintext)[8:24]


def derive_aes_key_iv(auth_key: AuthKey, msg_key: bytes, *, client: bool) -> tuple[bytes, bytes]:
    """
    MTProto 2.0 key derivation.

    See: https://core.telegram.org/mtproto/description#defining-aes-key-and-initialization-vector
    """

    if len(msg_key) != 16:
        raise MtprotoStateError("msg_key must be 16 bytes")
    x = _slice_offset(client=client)
    key = auth_key.data
    sha256a = sha256(msg_key + key[x : x + 36])
    sha256b = sha256(key[x + 40 : x + 76] + msg_key)

    aes_key = sha256a[:8] + sha256b[8:24] + sha256a[24:32]
    aes_iv = sha256b[:8] + sha256a[8:24] + sha256b[24:32]
    return aes_key, aes_iv


@dataclass(slots=True)
class MtprotoState:
    """
    MTProto 2.0 encryption state of one connection.

    Holds the auth key, the current server salt (8 bytes little-endian), the
    session id and the outgoing seqno counter. Both directions are supported so
    an in-memory server in tests can share the implementation.
    """

    auth_key: AuthKey
    server_salt: bytes
    msg_id_gen: MsgIdGenerator
    session_id: bytes = b""
    rand: RandomSource = field(default=random_bytes, repr=False)
    _seq: int = 0

    def __post_init__(self) -> None:
        if len(self.server_salt) != 8:
            raise MtprotoStateError("server_salt must be 8 bytes")
        if not self.session_id:
            self.session_id = self.rand(8)
        if len(self.session_id) != 8:
            raise MtprotoStateError("session_id must be 8 bytes")

    @property
    def auth_key_id(self) -> int:
        return self.auth_key.key_id

    def next_seq_no(self, *, content_related: bool) -> int:
        if content_related:
            out = self._seq * 2 + 1
            self._seq += 1
            return out
        return self._seq * 2

    def pack_message(self, body: bytes, *, content_related: bool = True) -> tuple[int, int, bytes]:
        """Allocate msg_id/seqno for `body`; return them with the inner message bytes."""

        msg_id = self.msg_id_gen.next()
        seqno = self.next_seq_no(content_related=content_related)
        return msg_id, seqno, struct.pack("<qii", msg_id, seqno, len(body)) + body

    def encrypt_inner_message(self, inner: bytes, *, to_server: bool = True) -> bytes:
        """
        Encrypt an inner message (msg_id+seqno+len+body) into a packet:
          auth_key_id (8) + msg_key (16) + aes_ige(salt + session_id + inner + padding)
        """

        if len(inner) % 4 != 0:
            raise MtprotoStateError("inner message must be 4-byte aligned")

        data = self.server_salt + self.session_id + inner
        # At least 12 bytes of padding, total a multiple of 16.
        pad_len = (-(len(data) + 12) % 16) + 12
        plaintext = data + self.rand(pad_len)

        msg_key = compute_msg_key(self.auth_key, plaintext, client=to_server)
        aes_key, aes_iv = derive_aes_key_iv(self.auth_key, msg_key, client=to_server)
        ct = AesIge(key=aes_key, iv=aes_iv).encrypt(plaintext)
        return self.auth_key.key_id_bytes + msg_key + ct

    def decrypt_packet(self, packet: bytes, *, from_server: bool = True) -> bytes:
        """
        Decrypt a packet and return the inner message bytes (msg_id+seqno+len+body+padding)
        after validating auth_key_id, msg_key and session_id.
        """

        if len(packet) < 24 + 32 or (len(packet) - 24) % 16 != 0:
            raise MtprotoStateError("encrypted packet has invalid length")

        key_id = struct.unpack_from("<Q", packet, 0)[0]
        if key_id != self.auth_key_id:
            raise MtprotoStateError("auth_key_id mismatch in incoming packet")

        msg_key = packet[8:24]
        client = not from_server
        aes_key, aes_iv = derive_aes_key_iv(self.auth_key, msg_key, client=client)
        plain = AesIge(key=aes_key, iv=aes_iv).decrypt(packet[24:])

        if compute_msg_key(self.auth_key, plain, client=client) != msg_key:
            raise MsgKeyMismatchError("msg_key mismatch after decryption")

        if plain[8:16] != self.session_id:
            raise MtprotoStateError("session_id mismatch in incoming packet")

        # The salt is not enforced here: the server announces changes itself.
        return plain[16:]
