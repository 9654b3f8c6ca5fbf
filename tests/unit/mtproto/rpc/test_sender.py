from __future__ import annotations

import asyncio
import logging
import struct
from collections.abc import Callable
from typing import Any

import pytest
from mtproto_fakes import (
    EncryptedPeer,
    EncryptedServerTransport,
    Handler,
    RawBody,
    RawPacket,
    Sealed,
    answer_with,
    no_reply,
)

from telewire.core.bytes import u64_to_le_bytes
from telewire.mtproto.core.auth_key import AuthKey
from telewire.mtproto.core.msg_id import MsgIdGenerator
from telewire.mtproto.core.state import MtprotoState
from telewire.mtproto.rpc.errors import (
    DcMigrateError,
    FloodWaitError,
    RpcDecodeError,
    RpcErrorException,
    RpcSenderError,
    RpcTimeoutError,
)
from telewire.mtproto.rpc.sender import MtprotoEncryptedSender, ReceivedMessage
from telewire.mtproto.transport.base import FrameIntegrityError, TransportError
from telewire.tl.codec import (
    RPC_RESULT_CONSTRUCTOR_ID,
    ContainerMessage,
    MsgContainer,
    RpcResult,
    TLCodecError,
)
from telewire.tl.schema import build_registry
from telewire.tl.schema.api import HelpGetNearestDc, NearestDc
from telewire.tl.schema.mtproto import (
    BadMsgNotification,
    BadServerSalt,
    NewSessionCreated,
    Ping,
    Pong,
    RpcError,
)

REGISTRY = build_registry()
AUTH_KEY = AuthKey(bytes((i * 131 + 7) % 256 for i in range(256)))
SALT = b"\x10" * 8
NEAREST = NearestDc(country="NL", this_dc=2, nearest_dc=4)
UPDATE = NearestDc(country="XX", this_dc=1, nearest_dc=1)
# Right key id, garbage msg_key and ciphertext.
FORGED = AUTH_KEY.key_id_bytes + bytes(16) + bytes(48)


def _connect(
    handler: Handler,
    *,
    clock: Callable[[], float] = lambda: 1_700_000_000.0,
    queue: asyncio.Queue[ReceivedMessage] | None = None,
) -> tuple[MtprotoEncryptedSender, EncryptedServerTransport]:
    transport = EncryptedServerTransport(EncryptedPeer(REGISTRY, AUTH_KEY), handler)
    gen = MsgIdGenerator(clock=clock)
    state = MtprotoState(auth_key=AUTH_KEY, server_salt=SALT, msg_id_gen=gen)
    sender = MtprotoEncryptedSender(
        transport, state=state, msg_id_gen=gen, registry=REGISTRY, incoming_queue=queue
    )
    return sender, transport


def test_invoke_returns_matching_result() -> None:
    async def run() -> tuple[Any, EncryptedServerTransport]:
        sender, transport = _connect(answer_with(NEAREST))
        return await sender.invoke_tl(HelpGetNearestDc()), transport

    result, transport = asyncio.run(run())
    assert result == NEAREST
    assert [obj for _, obj in transport.received] == [HelpGetNearestDc()]
    assert transport.peer.salt == SALT


def test_ping_is_answered_by_pong() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [Pong(msg_id=msg_id, ping_id=obj.ping_id)]

    async def run() -> Any:
        sender, _ = _connect(handler)
        return await sender.invoke_tl(Ping(ping_id=-99))

    assert asyncio.run(run()).ping_id == -99


def test_container_is_unwrapped_and_each_message_dispatched() -> None:
    server_id = (1_700_000_100 << 32) | 1

    def handler(msg_id: int, obj: Any) -> list[Any]:
        if not isinstance(obj, HelpGetNearestDc):
            return [RpcResult(req_msg_id=msg_id, result=NEAREST)]
        return [
            MsgContainer(
                messages=[
                    ContainerMessage(
                        msg_id=server_id,
                        seqno=0,
                        obj=NewSessionCreated(
                            first_msg_id=msg_id, unique_id=5, server_salt=0x0807060504030201
                        ),
                    ),
                    ContainerMessage(msg_id=server_id + 4, seqno=1, obj=UPDATE),
                    ContainerMessage(
                        msg_id=server_id + 8,
                        seqno=3,
                        obj=RpcResult(req_msg_id=msg_id, result=NEAREST),
                    ),
                ]
            )
        ]

    async def run() -> tuple[Any, MtprotoEncryptedSender, EncryptedServerTransport, list[Any]]:
        queue: asyncio.Queue[ReceivedMessage] = asyncio.Queue()
        sender, transport = _connect(handler, queue=queue)
        result = await sender.invoke_tl(HelpGetNearestDc())
        await sender.invoke_tl(Ping(ping_id=1), timeout=1.0)
        updates = [queue.get_nowait().obj for _ in range(queue.qsize())]
        return result, sender, transport, updates

    result, sender, transport, updates = asyncio.run(run())
    assert result == NEAREST
    assert sender.state.server_salt == bytes.fromhex("0102030405060708")
    assert updates == [UPDATE]
    # Content-related inner messages are acknowledged before the next request.
    assert {server_id + 4, server_id + 8} <= set(transport.acks)
    assert server_id not in transport.acks


@pytest.mark.parametrize(
    ("code", "message", "exc_type"),
    [
        (303, "USER_MIGRATE_4", DcMigrateError),
        (420, "FLOOD_WAIT_7", FloodWaitError),
        (400, "PEER_ID_INVALID", RpcErrorException),
    ],
)
def test_rpc_error_is_mapped_and_sender_stays_usable(
    code: int, message: str, exc_type: type[Exception]
) -> None:
    async def run() -> MtprotoEncryptedSender:
        sender, _ = _connect(answer_with(RpcError(error_code=code, error_message=message)))
        with pytest.raises(exc_type) as ei:
            await sender.invoke_tl(HelpGetNearestDc())
        assert ei.value.code == code
        return sender

    assert asyncio.run(run()).usable


def test_redirect_exposes_target_dc() -> None:
    async def run() -> DcMigrateError:
        sender, _ = _connect(answer_with(RpcError(error_code=303, error_message="PHONE_MIGRATE_5")))
        try:
            await sender.invoke_tl(HelpGetNearestDc())
        except DcMigrateError as e:
            return e
        raise AssertionError("expected a redirect")

    assert asyncio.run(run()).dc_id == 5


def test_bad_server_salt_updates_salt_and_resends() -> None:
    new_salt = 0x1122334455667788

    seen: list[int] = []

    def handler(msg_id: int, obj: Any) -> list[Any]:
        seen.append(msg_id)
        if len(seen) == 1:
            return [
                BadServerSalt(
                    bad_msg_id=msg_id, bad_msg_seqno=1, error_code=48, new_server_salt=new_salt
                )
            ]
        return [RpcResult(req_msg_id=msg_id, result=NEAREST)]

    async def run() -> tuple[Any, MtprotoEncryptedSender, EncryptedServerTransport]:
        sender, transport = _connect(handler)
        return await sender.invoke_tl(HelpGetNearestDc()), sender, transport

    result, sender, transport = asyncio.run(run())
    assert result == NEAREST
    first, second = transport.received
    assert first[1] == second[1] == HelpGetNearestDc()
    assert second[0] > first[0]
    assert transport.peer.salt == u64_to_le_bytes(new_salt)
    assert sender.state.server_salt == u64_to_le_bytes(new_salt)


def test_resends_are_capped() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [BadServerSalt(bad_msg_id=msg_id, bad_msg_seqno=1, error_code=48, new_server_salt=1)]

    async def run() -> EncryptedServerTransport:
        sender, transport = _connect(handler)
        with pytest.raises(RpcSenderError, match="too many resends"):
            await sender.invoke_tl(HelpGetNearestDc())
        return transport

    assert len(asyncio.run(run()).received) == 4


def test_bad_msg_notification_16_resyncs_clock_and_resends() -> None:
    server_now = 1_100
    seen: list[int] = []

    def handler(msg_id: int, obj: Any) -> list[Any]:
        seen.append(msg_id)
        if len(seen) == 1:
            note = BadMsgNotification(bad_msg_id=msg_id, bad_msg_seqno=1, error_code=16)
            return [Sealed(note, msg_id=(server_now << 32) | 1)]
        return [RpcResult(req_msg_id=msg_id, result=NEAREST)]

    async def run() -> tuple[Any, MtprotoEncryptedSender]:
        sender, _ = _connect(handler, clock=lambda: 1_000.0)
        return await sender.invoke_tl(HelpGetNearestDc()), sender

    result, sender = asyncio.run(run())
    assert result == NEAREST
    assert sender.state.msg_id_gen.time_offset == 100
    assert [m >> 32 for m in seen] == [1_000, server_now]


def test_other_bad_msg_notification_fails_the_call() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [BadMsgNotification(bad_msg_id=msg_id, bad_msg_seqno=1, error_code=35)]

    async def run() -> None:
        sender, _ = _connect(handler)
        with pytest.raises(RpcSenderError, match="bad_msg_notification 35"):
            await sender.invoke_tl(HelpGetNearestDc())

    asyncio.run(run())


def test_msg_key_mismatch_drops_only_that_packet() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [RawPacket(FORGED), RpcResult(req_msg_id=msg_id, result=NEAREST)]

    async def run() -> tuple[Any, MtprotoEncryptedSender]:
        sender, _ = _connect(handler)
        return await sender.invoke_tl(HelpGetNearestDc()), sender

    result, sender = asyncio.run(run())
    assert result == NEAREST
    assert sender.usable


def test_repeated_integrity_failures_are_fatal() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [RawPacket(FORGED) for _ in range(4)]

    async def run() -> MtprotoEncryptedSender:
        sender, _ = _connect(handler)
        with pytest.raises(FrameIntegrityError, match="consecutive"):
            await sender.invoke_tl(HelpGetNearestDc())
        return sender

    assert not asyncio.run(run()).usable


def test_undecodable_result_fails_only_its_call() -> None:
    seen: list[int] = []

    def handler(msg_id: int, obj: Any) -> list[Any]:
        seen.append(msg_id)
        if len(seen) == 1:
            garbage = struct.pack("<IqI", RPC_RESULT_CONSTRUCTOR_ID, msg_id, 0xDEADBEEF)
            return [RawBody(garbage + b"\x00" * 8)]
        return [RpcResult(req_msg_id=msg_id, result=NEAREST)]

    async def run() -> tuple[Exception, Any, MtprotoEncryptedSender]:
        sender, _ = _connect(handler)
        try:
            await sender.invoke_tl(HelpGetNearestDc())
        except RpcDecodeError as e:
            error: Exception = e
        else:
            raise AssertionError("expected RpcDecodeError")
        return error, await sender.invoke_tl(HelpGetNearestDc()), sender

    error, second, sender = asyncio.run(run())
    assert isinstance(error, TLCodecError)
    assert second == NEAREST
    assert sender.usable


def test_unknown_unsolicited_message_is_dropped() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [
            RawBody(b"\xef\xbe\xad\xde" + b"\x00" * 4),
            RpcResult(req_msg_id=msg_id + 4000, result=UPDATE),
            RpcResult(req_msg_id=msg_id, result=NEAREST),
        ]

    async def run() -> tuple[Any, int]:
        queue: asyncio.Queue[ReceivedMessage] = asyncio.Queue()
        sender, _ = _connect(handler, queue=queue)
        return await sender.invoke_tl(HelpGetNearestDc()), queue.qsize()

    result, queued = asyncio.run(run())
    assert result == NEAREST
    assert queued == 0


def test_updates_go_to_the_queue_in_order(caplog: pytest.LogCaptureFixture) -> None:
    second_update = NearestDc(country="YY", this_dc=3, nearest_dc=3)

    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [UPDATE, second_update, RpcResult(req_msg_id=msg_id, result=NEAREST)]

    async def run(maxsize: int) -> list[Any]:
        queue: asyncio.Queue[ReceivedMessage] = asyncio.Queue(maxsize=maxsize)
        sender, _ = _connect(handler, queue=queue)
        await sender.invoke_tl(HelpGetNearestDc())
        return [queue.get_nowait().obj for _ in range(queue.qsize())]

    assert asyncio.run(run(0)) == [UPDATE, second_update]
    with caplog.at_level(logging.WARNING, logger="telewire.mtproto.rpc.sender"):
        assert asyncio.run(run(1)) == [UPDATE]
    assert "queue full" in caplog.text


def test_timeout_poisons_sender() -> None:
    async def run() -> MtprotoEncryptedSender:
        sender, _ = _connect(no_reply)
        with pytest.raises(RpcTimeoutError):
            await sender.invoke_tl(HelpGetNearestDc(), timeout=0.05)
        with pytest.raises(RpcSenderError, match="unusable"):
            await sender.invoke_tl(HelpGetNearestDc())
        return sender

    assert not asyncio.run(run()).usable


def test_transport_error_code_poisons_sender() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [RawPacket((-404).to_bytes(4, "little", signed=True))]

    async def run() -> MtprotoEncryptedSender:
        sender, _ = _connect(handler)
        with pytest.raises(TransportError, match="-404"):
            await sender.invoke_tl(HelpGetNearestDc())
        return sender

    assert not asyncio.run(run()).usable


def test_calls_are_serialized() -> None:
    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [Pong(msg_id=msg_id, ping_id=obj.ping_id)]

    async def run() -> tuple[list[Any], EncryptedServerTransport]:
        sender, transport = _connect(handler)
        results = await asyncio.gather(*(sender.invoke_tl(Ping(ping_id=i)) for i in range(5)))
        return results, transport

    results, transport = asyncio.run(run())
    assert [r.ping_id for r in results] == list(range(5))
    ids = [msg_id for msg_id, _ in transport.received]
    assert ids == sorted(ids)
