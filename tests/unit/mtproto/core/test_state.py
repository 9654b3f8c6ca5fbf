from __future__ import annotations

import hashlib
import struct

import pytest

from telewire.mtproto.core.auth_key import AuthKey, AuthKeyError
from telewire.mtproto.core.msg_id import MsgIdGenerator
from telewire.mtproto.core.state import (
    MsgKeyMismatchError,
    MtprotoState,
    MtprotoStateError,
    derive_aes_key_iv,
)
from telewire.mtproto.crypto.aes_ige import AesIge
from telewire.mtproto.transport.base import FrameIntegrityError

AUTH_KEY = AuthKey(bytes((i * 37 + 11) % 256 for i in range(256)))
SALT = bytes.fromhex("0102030405060708")
SESSION_ID = bytes.fromhex("a1a2a3a4a5a6a7a8")


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _state() -> MtprotoState:
    return MtprotoState(
        auth_key=AUTH_KEY,
        server_salt=SALT,
        msg_id_gen=MsgIdGenerator(clock=lambda: 1_700_000_000.0),
        session_id=SESSION_ID,
        rand=lambda n: b"\x00" * n,
    )


def test_auth_key_id_and_aux_hash() -> None:
    digest = hashlib.sha1(AUTH_KEY.data).digest()
    assert AUTH_KEY.key_id == int.from_bytes(digest[-8:], "little")
    assert AUTH_KEY.key_id_bytes == digest[-8:]
    assert AUTH_KEY.aux_hash == digest[:8]
    assert AUTH_KEY.key_id_bytes == bytes.fromhex("9fb90628b1c1f319")
    assert "key_id=0x" in repr(AUTH_KEY)
    with pytest.raises(AuthKeyError):
        AuthKey(b"\x00" * 255)


def test_client_packet_known_vector() -> None:
    inner = struct.pack("<qii", 0x6553F10000000004, 1, 8) + b"\xde\xad\xbe\xef" * 2
    packet = _state().encrypt_inner_message(inner)

    msg_key = bytes.fromhex("45f637c3370d1e81f3fb94561b4a2397")
    assert derive_aes_key_iv(AUTH_KEY, msg_key, client=True) == (
        bytes.fromhex("47ac3e94bac9efb783cbd93e17c7649b14856301d54d33b38e42df741377254c"),
        bytes.fromhex("246c6b4ba7ee830f0008995b7e47d360b282f7db7c65b25d9c0bc7ff611b8e88"),
    )
    assert packet == bytes.fromhex(
        "9fb90628b1c1f319"
        "45f637c3370d1e81f3fb94561b4a2397"
        "94dc07dec1f6f3cf2c0e4f93ff38bcd30a29fd238a66a171d74c5762f20f8c76"
        "d7bee862270fbba1a8e2f523cc1261a62ec80f26be7204c240be3923c60d54b6"
    )


def test_client_packet_layout_follows_the_formulas() -> None:
    inner = struct.pack("<qii", 0x6553F10000000004, 1, 8) + b"\xde\xad\xbe\xef" * 2
    packet = _state().encrypt_inner_message(inner)

    plaintext = SALT + SESSION_ID + inner
    plaintext += b"\x00" * ((-(len(plaintext) + 12) % 16) + 12)
    key = AUTH_KEY.data
    msg_key = _sha256(key[88:120] + plaintext)[8:24]
    a = _sha256(msg_key + key[0:36])
    b = _sha256(key[40:76] + msg_key)
    aes_key = a[:8] + b[8:24] + a[24:32]
    aes_iv = b[:8] + a[8:24] + b[24:32]

    assert packet[8:24] == msg_key
    assert packet[24:] == AesIge(key=aes_key, iv=aes_iv).encrypt(plaintext)


def test_server_direction_uses_offset_8() -> None:
    assert derive_aes_key_iv(AUTH_KEY, b"\x33" * 16, client=False) == (
        bytes.fromhex("4c3c9b24e02fb352e225e2ec737a4fc706f2b0f154148dcbdde619f6c618de03"),
        bytes.fromhex("8c583cfa327f070bd19a4fad0e3792f8daa4b1256d494c3f83ccd8deb27e0359"),
    )


def test_padding_is_at_least_12_bytes_and_block_aligned() -> None:
    state = _state()
    for body_len in range(0, 64, 4):
        inner = struct.pack("<qii", 4, 1, body_len) + b"\x00" * body_len
        packet = state.encrypt_inner_message(inner)
        ct_len = len(packet) - 24
        assert ct_len % 16 == 0
        assert ct_len - (16 + len(inner)) >= 12


def test_decrypt_server_packet() -> None:
    server = _state()
    inner = struct.pack("<qii", (1_700_000_000 << 32) | 1, 1, 4) + b"\x01\x00\x00\x00"
    packet = server.encrypt_inner_message(inner, to_server=False)
    out = _state().decrypt_packet(packet)
    assert out[: len(inner)] == inner


def test_tampered_ciphertext_is_msg_key_mismatch() -> None:
    packet = bytearray(_state().encrypt_inner_message(b"\x00" * 20, to_server=False))
    packet[40] ^= 0x01
    with pytest.raises(MsgKeyMismatchError) as ei:
        _state().decrypt_packet(bytes(packet))
    assert isinstance(ei.value, FrameIntegrityError)


def test_client_packet_does_not_decrypt_as_server_packet() -> None:
    packet = _state().encrypt_inner_message(b"\x00" * 20)
    with pytest.raises(MsgKeyMismatchError):
        _state().decrypt_packet(packet)


def test_foreign_key_id_and_session_are_rejected() -> None:
    packet = _state().encrypt_inner_message(b"\x00" * 20, to_server=False)
    with pytest.raises(MtprotoStateError, match="auth_key_id"):
        _state().decrypt_packet(b"\x00" * 8 + packet[8:])

    other_session = MtprotoState(
        auth_key=AUTH_KEY,
        server_salt=SALT,
        msg_id_gen=MsgIdGenerator(),
        session_id=b"\x00" * 8,
    )
    with pytest.raises(MtprotoStateError, match="session_id"):
        other_session.decrypt_packet(packet)


def test_seq_no_counts_content_related_messages() -> None:
    state = _state()
    assert state.next_seq_no(content_related=True) == 1
    assert state.next_seq_no(content_related=False) == 2
    assert state.next_seq_no(content_related=True) == 3
    assert state.next_seq_no(content_related=True) == 5
    assert state.next_seq_no(content_related=False) == 6


def test_pack_message_allocates_ids() -> None:
    state = _state()
    first_id, first_seq, inner = state.pack_message(b"\xaa" * 8)
    second_id, second_seq, _ = state.pack_message(b"\xbb" * 4, content_related=False)
    assert inner == struct.pack("<qii", first_id, 1, 8) + b"\xaa" * 8
    assert second_id > first_id
    assert (first_seq, second_seq) == (1, 2)


def test_random_session_id_when_not_given() -> None:
    state = MtprotoState(auth_key=AUTH_KEY, server_salt=SALT, msg_id_gen=MsgIdGenerator())
    assert len(state.session_id) == 8
    with pytest.raises(MtprotoStateError):
        MtprotoState(auth_key=AUTH_KEY, server_salt=b"\x00", msg_id_gen=MsgIdGenerator())
