from __future__ import annotations

import asyncio
import logging
import struct
from dataclasses import dataclass, field
from typing import Any

from telewire.core.bytes import u64_to_le_bytes
from telewire.mtproto.core.msg_id import MsgIdGenerator
from telewire.mtproto.core.state import MtprotoState, MtprotoStateError
from telewire.mtproto.transport.base import (
    FrameIntegrityError,
    PacketTransport,
    TransportError,
    transport_error_code,
)
from telewire.tl.codec import (
    MSG_CONTAINER_CONSTRUCTOR_ID,
    RPC_RESULT_CONSTRUCTOR_ID,
    MsgContainer,
    RpcResult,
    TLCodecError,
    dumps,
    loads,
)
from telewire.tl.registry import TypeRegistry
from telewire.tl.schema.mtproto import (
    IGNORABLE,
    BadMsgNotification,
    BadServerSalt,
    MsgsAck,
    NewSessionCreated,
    Pong,
    RpcError,
)

from .errors import (
    RpcDecodeError,
    RpcSenderError,
    RpcTimeoutError,
    rpc_error_from_tl,
)

logger = logging.getLogger(__name__)

# bad_msg_notification codes fixed by resyncing the clock (msg_id too low / too high).
_TIME_SYNC_CODES = frozenset({16, 17})
_MAX_RESENDS = 3
_PADDING_MIN = 12
_PADDING_MAX = 1024


@dataclass(slots=True)
class ReceivedMessage:
    msg_id: int
    seqno: int
    obj: Any


@dataclass(slots=True)
class _PendingCall:
    req_bytes: bytes
    future: asyncio.Future[Any]
    name: str = "?"
    msg_ids: set[int] = field(default_factory=set)
    resends: int = 0


def _parse_inner_message(inner: bytes) -> tuple[int, int, bytes]:
    if len(inner) < 16:
        raise MtprotoStateError("Inner message too short")
    msg_id, seqno, msg_len = struct.unpack_from("<qii", inner, 0)
    if msg_len < 0 or msg_len % 4 != 0:
        raise MtprotoStateError(f"Invalid message length {msg_len}")
    padding = len(inner) - 16 - msg_len
    if not _PADDING_MIN <= padding <= _PADDING_MAX:
        raise MtprotoStateError(f"Message length {msg_len} inconsistent with payload")
    return msg_id, seqno, inner[16 : 16 + msg_len]


def _split_container(body: bytes) -> list[tuple[int, int, bytes]]:
    """Split a msg_container into raw (msg_id, seqno, body) entries without decoding them."""

    (count,) = struct.unpack_from("<i", body, 4)
    if count < 0:
        raise TLCodecError("Negative msg_container message count")
    out: list[tuple[int, int, bytes]] = []
    pos = 8
    for _ in range(count):
        if pos + 16 > len(body):
            raise TLCodecError("Truncated msg_container")
        msg_id, seqno, ln = struct.unpack_from("<qii", body, pos)
        pos += 16
        if ln < 0 or pos + ln > len(body):
            raise TLCodecError("msg_container message length exceeds payload")
        out.append((msg_id, seqno, body[pos : pos + ln]))
        pos += ln
    return out


def _peek_rpc_result_req_id(body: bytes) -> int | None:
    if len(body) >= 12 and struct.unpack_from("<I", body, 0)[0] == RPC_RESULT_CONSTRUCTOR_ID:
        return int(struct.unpack_from("<q", body, 4)[0])
    return None


class MtprotoEncryptedSender:
    """
    Encrypted request/response engine for one connection.

    Calls run one at a time: `invoke_tl` sends the request, then reads and
    dispatches inbound packets until its own answer arrives. Everything read
    on the way is handled as it comes (service messages, results for resent
    ids, updates), so nothing is lost between calls.

    A timeout or a fatal transport/integrity failure poisons the sender; the
    owner is expected to drop the connection and build a new one.
    """

    def __init__(
        self,
        transport: PacketTransport,
        *,
        state: MtprotoState,
        msg_id_gen: MsgIdGenerator,
        registry: TypeRegistry,
        incoming_queue: asyncio.Queue[ReceivedMessage] | None = None,
        max_integrity_failures: int = 3,
    ) -> None:
        self._transport = transport
        self._state = state
        self._msg_id_gen = msg_id_gen
        self._registry = registry
        self._incoming_queue = incoming_queue
        self._max_integrity_failures = max_integrity_failures

        self._lock = asyncio.Lock()
        self._pending: dict[int, _PendingCall] = {}
        self._pending_acks: list[int] = []
        self._integrity_failures = 0
        self._poisoned: str | None = None

    @property
    def state(self) -> MtprotoState:
        return self._state

    @property
    def usable(self) -> bool:
        return self._poisoned is None

    async def invoke_tl(self, req_obj: Any, *, timeout: float = 20.0) -> Any:
        """
        Send a TL request and return its decoded result.

        rpc_error answers raise `RpcErrorException` (or a subclass).
        """

        if self._poisoned is not None:
            raise RpcSenderError(f"Sender is unusable ({self._poisoned}); reconnect first")

        async with self._lock:
            loop = asyncio.get_running_loop()
            call = _PendingCall(
                req_bytes=dumps(req_obj),
                future=loop.create_future(),
                name=getattr(req_obj, "TL_NAME", type(req_obj).__name__),
            )
            try:
                await self._flush_acks()
                await self._send_call(call)
                await asyncio.wait_for(self._pump(call.future), timeout=timeout)
            except asyncio.TimeoutError as e:
                self._poison(f"{call.name} timed out")
                raise RpcTimeoutError(
                    f"Timed out waiting for {call.name} (timeout={timeout}s)"
                ) from e
            except TransportError as e:
                self._poison(f"transport failure: {e}")
                raise
            finally:
                self._forget(call)
            return call.future.result()

    async def close(self) -> None:
        self._poison("closed")

    def _poison(self, reason: str) -> None:
        if self._poisoned is None:
            self._poisoned = reason
            logger.debug("Sender poisoned: %s", reason)
        err = RpcSenderError(f"Sender is unusable ({reason})")
        for call in {id(c): c for c in self._pending.values()}.values():
            if not call.future.done():
                call.future.set_exception(err)
                # Consumed here so nobody gets "exception never retrieved".
                call.future.exception()
        self._pending.clear()

    def _forget(self, call: _PendingCall) -> None:
        for msg_id in call.msg_ids:
            self._pending.pop(msg_id, None)

    async def _send_call(self, call: _PendingCall) -> None:
        msg_id, _seqno, inner = self._state.pack_message(call.req_bytes, content_related=True)
        call.msg_ids.add(msg_id)
        self._pending[msg_id] = call
        await self._transport.send(self._state.encrypt_inner_message(inner))
        logger.debug("Sent %s as msg_id=%d", call.name, msg_id)

    async def _resend(self, bad_msg_id: int, reason: str) -> None:
        call = self._pending.get(bad_msg_id)
        if call is None or call.future.done():
            logger.debug("Nothing pending for msg_id=%d (%s)", bad_msg_id, reason)
            return
        if call.resends >= _MAX_RESENDS:
            self._settle(call, exc=RpcSenderError(f"{call.name}: too many resends ({reason})"))
            return
        call.resends += 1
        logger.debug("Resending %s after %s", call.name, reason)
        await self._send_call(call)

    async def _flush_acks(self) -> None:
        if not self._pending_acks:
            return
        ack_ids, self._pending_acks = self._pending_acks, []
        body = dumps(MsgsAck(msg_ids=ack_ids))
        _msg_id, _seqno, inner = self._state.pack_message(body, content_related=False)
        await self._transport.send(self._state.encrypt_inner_message(inner))

    async def _pump(self, until: asyncio.Future[Any]) -> None:
        while not until.done():
            await self._handle_packet(await self._transport.recv())

    async def _handle_packet(self, packet: bytes) -> None:
        code = transport_error_code(packet)
        if code is not None:
            raise TransportError(f"Server transport error {code}")

        try:
            inner = self._state.decrypt_packet(packet)
            msg_id, seqno, body = _parse_inner_message(inner)
        except (MtprotoStateError, FrameIntegrityError) as e:
            self._integrity_failures += 1
            logger.warning(
                "Dropping undecryptable packet (%d in a row): %s", self._integrity_failures, e
            )
            if self._integrity_failures > self._max_integrity_failures:
                raise FrameIntegrityError(
                    f"Too many consecutive integrity failures ({self._integrity_failures})"
                ) from e
            return

        self._integrity_failures = 0
        self._msg_id_gen.observe(msg_id)
        await self._handle_message(msg_id, seqno, body)

    async def _handle_message(self, msg_id: int, seqno: int, body: bytes) -> None:
        if seqno & 1:
            self._pending_acks.append(msg_id)

        if len(body) >= 8 and struct.unpack_from("<I", body, 0)[0] == MSG_CONTAINER_CONSTRUCTOR_ID:
            try:
                entries = _split_container(body)
            except TLCodecError as e:
                logger.warning("Dropping malformed msg_container %d: %s", msg_id, e)
                return
            for sub_id, sub_seqno, sub_body in entries:
                await self._handle_message(sub_id, sub_seqno, sub_body)
            return

        try:
            obj = loads(body, self._registry)
        except TLCodecError as e:
            req_msg_id = _peek_rpc_result_req_id(body)
            if req_msg_id is not None:
                self._fail_decode_for_req_ids(
                    req_msg_ids={req_msg_id}, outer_msg_id=msg_id, error=e
                )
            else:
                logger.warning("Dropping undecodable message %d: %s", msg_id, e)
            return

        await self._dispatch(msg_id, seqno, obj)

    def _fail_decode_for_req_ids(
        self, *, req_msg_ids: set[int], outer_msg_id: int, error: TLCodecError
    ) -> None:
        for req_msg_id in req_msg_ids:
            call = self._pending.get(req_msg_id)
            if call is None:
                logger.debug(
                    "Undecodable rpc_result for unknown msg_id=%d (outer=%d)",
                    req_msg_id,
                    outer_msg_id,
                )
                continue
            decode_error = RpcDecodeError(f"Cannot decode result of {call.name}: {error}")
            decode_error.__cause__ = error
            self._settle(call, exc=decode_error)

    def _settle(
        self, call: _PendingCall, *, result: Any = None, exc: Exception | None = None
    ) -> None:
        if not call.future.done():
            if exc is not None:
                call.future.set_exception(exc)
            else:
                call.future.set_result(result)
        self._forget(call)

    async def _dispatch(self, msg_id: int, seqno: int, obj: Any) -> None:
        if isinstance(obj, MsgContainer):
            # Only reachable through gzip_packed; plain containers are split earlier.
            for m in obj.messages:
                await self._dispatch(m.msg_id, m.seqno, m.obj)
            return

        if isinstance(obj, RpcResult):
            call = self._pending.get(obj.req_msg_id)
            if call is None:
                logger.debug("rpc_result for unknown msg_id=%d", obj.req_msg_id)
                return
            if isinstance(obj.result, RpcError):
                err = rpc_error_from_tl(obj.result.error_code, obj.result.error_message)
                self._settle(call, exc=err)
            else:
                self._settle(call, result=obj.result)
            return

        if isinstance(obj, Pong):
            call = self._pending.get(obj.msg_id)
            if call is not None:
                self._settle(call, result=obj)
            return

        if isinstance(obj, BadServerSalt):
            logger.warning("bad_server_salt for msg_id=%d; updating salt", obj.bad_msg_id)
            self._state.server_salt = u64_to_le_bytes(obj.new_server_salt)
            await self._resend(obj.bad_msg_id, "bad_server_salt")
            return

        if isinstance(obj, BadMsgNotification):
            if obj.error_code in _TIME_SYNC_CODES:
                offset = self._msg_id_gen.sync_time(msg_id)
                logger.warning(
                    "bad_msg_notification %d; clock offset now %ds", obj.error_code, offset
                )
                await self._resend(obj.bad_msg_id, f"bad_msg_notification {obj.error_code}")
                return
            call = self._pending.get(obj.bad_msg_id)
            if call is not None:
                self._settle(
                    call,
                    exc=RpcSenderError(f"{call.name}: bad_msg_notification {obj.error_code}"),
                )
            return

        if isinstance(obj, NewSessionCreated):
            self._state.server_salt = u64_to_le_bytes(obj.server_salt)
            logger.debug("new_session_created; server_salt updated")
            return

        if isinstance(obj, IGNORABLE):
            return

        if self._incoming_queue is not None:
            try:
                self._incoming_queue.put_nowait(
                    ReceivedMessage(msg_id=msg_id, seqno=seqno, obj=obj)
                )
            except asyncio.QueueFull:
                logger.warning("Update queue full; dropping %s", type(obj).__name__)
        else:
            logger.debug("Discarding unsolicited %s", type(obj).__name__)
