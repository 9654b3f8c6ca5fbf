from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from telewire.core.bytes import be_bytes_to_int, int_to_be_bytes
from telewire.mtproto.core.auth_key import AuthKey, AuthKeyError
from telewire.mtproto.core.msg_id import Clock, MsgIdGenerator
from telewire.mtproto.core.unencrypted import (
    UnencryptedMessage,
    UnencryptedMessageError,
    unpack_unencrypted,
)
from telewire.mtproto.crypto.aes_ige import AesIge, AesIgeError
from telewire.mtproto.crypto.hashes import sha1
from telewire.mtproto.crypto.random import RandomSource, random_bytes
from telewire.mtproto.crypto.rsa import RsaError, RsaPublicKey
from telewire.mtproto.transport.base import PacketTransport, transport_error_code
from telewire.tl.codec import TLCodecError, TLReader, dumps, loads
from telewire.tl.registry import TypeRegistry
from telewire.tl.schema.mtproto import (
    ClientDhInnerData,
    DhGenFail,
    DhGenOk,
    DhGenRetry,
    PQInnerData,
    PQInnerDataDc,
    ReqDhParams,
    ReqPqMulti,
    ResPq,
    ServerDhInnerData,
    ServerDhParamsFail,
    ServerDhParamsOk,
    SetClientDhParams,
)

from .dh import DhError, DhParamsCheck, make_dh_result
from .kdf import initial_server_salt, new_nonce_hash, tmp_aes_key_iv
from .pq import PqFactorizationError, factorize_pq
from .server_keys import DEFAULT_SERVER_KEYRING, ServerKeyRing

logger = logging.getLogger(__name__)

_UNENCRYPTED_ENVELOPE_MIN_LEN = 8 + 8 + 4  # auth_key_id + msg_id + length


class HandshakeStep(enum.Enum):
    REQ_PQ = "req_pq"
    FACTORIZE = "factorize"
    REQ_DH_PARAMS = "req_dh_params"
    DECRYPT_SERVER_PARAMS = "decrypt_server_params"
    COMPUTE_AUTH_KEY = "compute_auth_key"
    CONFIRM = "confirm"
    ACCEPTED = "accepted"
    FAILED = "failed"


class AuthHandshakeError(Exception):
    def __init__(self, message: str, *, step: HandshakeStep | None = None) -> None:
        super().__init__(message)
        self.step = step


class UntrustedServerKeyError(AuthHandshakeError):
    """None of the server's RSA fingerprints is in our key ring."""


class HandshakeIntegrityError(AuthHandshakeError):
    """A server answer failed a nonce, hash or DH parameter check."""


@dataclass(frozen=True, slots=True)
class AuthKeyExchangeResult:
    auth_key: AuthKey
    server_salt: bytes  # 8 bytes
    server_time: int
    time_offset: int  # server_time - local clock, seconds

    rsa_fingerprint: int  # TL long (signed)
    g: int
    dh_prime: bytes
    retries: int = 0

    @property
    def auth_key_id(self) -> int:
        return self.auth_key.key_id


def _check_nonces(obj: Any, *, nonce: bytes, server_nonce: bytes | None = None) -> None:
    if obj.nonce != nonce:
        raise HandshakeIntegrityError(f"{obj.TL_NAME}: nonce mismatch")
    if server_nonce is not None and obj.server_nonce != server_nonce:
        raise HandshakeIntegrityError(f"{obj.TL_NAME}: server_nonce mismatch")


async def send_unencrypted_request(
    transport: PacketTransport,
    req: Any,
    *,
    registry: TypeRegistry,
    msg_id_gen: MsgIdGenerator,
    recv_timeout: float | None = None,
    max_ignored_small_frames: int = 64,
) -> Any:
    """
    Lockstep plaintext exchange: one request packet, one response object.

    Frames too short to be an envelope (quick acks) are skipped, bounded.
    """

    msg = UnencryptedMessage(msg_id=msg_id_gen.next(), body=dumps(req))
    await transport.send(msg.pack())

    ignored_small = 0
    while True:
        try:
            payload = await asyncio.wait_for(transport.recv(), timeout=recv_timeout)
        except asyncio.TimeoutError as e:
            raise AuthHandshakeError(
                f"Timed out waiting for {req.TL_NAME} response (timeout={recv_timeout}s)"
            ) from e

        code = transport_error_code(payload)
        if code is not None:
            raise AuthHandshakeError(f"Server transport error {code} in reply to {req.TL_NAME}")

        if len(payload) < _UNENCRYPTED_ENVELOPE_MIN_LEN:
            ignored_small += 1
            if ignored_small > max_ignored_small_frames:
                raise AuthHandshakeError(
                    f"Too many small frames while waiting for {req.TL_NAME} response"
                )
            logger.debug("Ignoring %d-byte frame during handshake", len(payload))
            continue

        resp = unpack_unencrypted(payload)
        return loads(resp.body, registry)


def _expect(obj: Any, cls: type, step: HandshakeStep) -> Any:
    if not isinstance(obj, cls):
        raise AuthHandshakeError(
            f"Unexpected response: {type(obj).__name__} (expected {cls.__name__})", step=step
        )
    return obj


class _AuthKeyExchange:
    """One run of the key exchange; `step` tracks progress for error reporting."""

    def __init__(
        self,
        transport: PacketTransport,
        *,
        registry: TypeRegistry,
        key_ring: ServerKeyRing,
        msg_id_gen: MsgIdGenerator,
        rand: RandomSource,
        clock: Clock,
        dc_id: int | None,
        dh_check: DhParamsCheck,
        max_retries: int,
        recv_timeout: float | None,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.key_ring = key_ring
        self.msg_id_gen = msg_id_gen
        self.rand = rand
        self.clock = clock
        self.dc_id = dc_id
        self.dh_check = dh_check
        self.max_retries = max_retries
        self.recv_timeout = recv_timeout
        self.step = HandshakeStep.REQ_PQ

    async def _request(self, req: Any) -> Any:
        return await send_unencrypted_request(
            self.transport,
            req,
            registry=self.registry,
            msg_id_gen=self.msg_id_gen,
            recv_timeout=self.recv_timeout,
        )

    def _enter(self, step: HandshakeStep) -> None:
        logger.debug("Auth key exchange: %s", step.value)
        self.step = step

    async def run(self) -> AuthKeyExchangeResult:
        self._enter(HandshakeStep.REQ_PQ)
        nonce = self.rand(16)
        res_pq = _expect(await self._request(ReqPqMulti(nonce=nonce)), ResPq, self.step)
        _check_nonces(res_pq, nonce=nonce)
        server_nonce = res_pq.server_nonce

        key = self.key_ring.select(res_pq.server_public_key_fingerprints)
        if key is None:
            fps = ", ".join(
                f"0x{fp & (2**64 - 1):016x}" for fp in res_pq.server_public_key_fingerprints
            )
            raise UntrustedServerKeyError(f"No trusted RSA key among server fingerprints: {fps}")

        self._enter(HandshakeStep.FACTORIZE)
        p, q = factorize_pq(be_bytes_to_int(res_pq.pq))
        p_bytes, q_bytes = int_to_be_bytes(p), int_to_be_bytes(q)

        self._enter(HandshakeStep.REQ_DH_PARAMS)
        new_nonce = self.rand(32)
        inner_fields = dict(
            pq=res_pq.pq,
            p=p_bytes,
            q=q_bytes,
            nonce=nonce,
            server_nonce=server_nonce,
            new_nonce=new_nonce,
        )
        inner = (
            PQInnerDataDc(dc=self.dc_id, **inner_fields)
            if self.dc_id is not None
            else PQInnerData(**inner_fields)
        )
        req_dh = ReqDhParams(
            nonce=nonce,
            server_nonce=server_nonce,
            p=p_bytes,
            q=q_bytes,
            public_key_fingerprint=key.fingerprint,
            encrypted_data=key.encrypt_raw(dumps(inner), rand=self.rand),
        )
        dh_params = await self._request(req_dh)
        if isinstance(dh_params, ServerDhParamsFail):
            _check_nonces(dh_params, nonce=nonce, server_nonce=server_nonce)
            raise HandshakeIntegrityError("Server returned server_DH_params_fail")
        dh_params = _expect(dh_params, ServerDhParamsOk, self.step)
        _check_nonces(dh_params, nonce=nonce, server_nonce=server_nonce)

        self._enter(HandshakeStep.DECRYPT_SERVER_PARAMS)
        tmp_key, tmp_iv = tmp_aes_key_iv(new_nonce=new_nonce, server_nonce=server_nonce)
        aes = AesIge(key=tmp_key, iv=tmp_iv)
        server_inner = self._decrypt_server_inner(aes, dh_params.encrypted_answer)
        _check_nonces(server_inner, nonce=nonce, server_nonce=server_nonce)
        time_offset = int(server_inner.server_time) - int(self.clock())

        retry_id = 0
        for attempt in range(self.max_retries + 1):
            self._enter(HandshakeStep.COMPUTE_AUTH_KEY)
            dh = make_dh_result(
                g=server_inner.g,
                dh_prime=server_inner.dh_prime,
                g_a=server_inner.g_a,
                check=self.dh_check,
                rand=self.rand,
            )
            client_data = dumps(
                ClientDhInnerData(
                    nonce=nonce, server_nonce=server_nonce, retry_id=retry_id, g_b=dh.g_b
                )
            )
            plain = sha1(client_data) + client_data
            plain += self.rand((-len(plain)) % 16)

            self._enter(HandshakeStep.CONFIRM)
            answer = await self._request(
                SetClientDhParams(
                    nonce=nonce, server_nonce=server_nonce, encrypted_data=aes.encrypt(plain)
                )
            )
            if not isinstance(answer, (DhGenOk, DhGenRetry, DhGenFail)):
                raise AuthHandshakeError(
                    f"Unexpected response to set_client_DH_params: {type(answer).__name__}"
                )
            _check_nonces(answer, nonce=nonce, server_nonce=server_nonce)
            aux_hash = dh.auth_key.aux_hash

            if isinstance(answer, DhGenOk):
                expected = new_nonce_hash(new_nonce=new_nonce, aux_hash=aux_hash, number=1)
                if answer.new_nonce_hash1 != expected:
                    raise HandshakeIntegrityError("dh_gen_ok new_nonce_hash1 mismatch")
                self._enter(HandshakeStep.ACCEPTED)
                return AuthKeyExchangeResult(
                    auth_key=dh.auth_key,
                    server_salt=initial_server_salt(new_nonce=new_nonce, server_nonce=server_nonce),
                    server_time=int(server_inner.server_time),
                    time_offset=time_offset,
                    rsa_fingerprint=key.fingerprint,
                    g=server_inner.g,
                    dh_prime=server_inner.dh_prime,
                    retries=attempt,
                )

            if isinstance(answer, DhGenFail):
                raise HandshakeIntegrityError("Server returned dh_gen_fail")

            expected = new_nonce_hash(new_nonce=new_nonce, aux_hash=aux_hash, number=2)
            if answer.new_nonce_hash2 != expected:
                raise HandshakeIntegrityError("dh_gen_retry new_nonce_hash2 mismatch")
            retry_id = int.from_bytes(aux_hash, "little", signed=True)
            logger.debug("Server asked for dh_gen_retry (attempt %d)", attempt + 1)

        raise AuthHandshakeError(f"Server kept answering dh_gen_retry ({self.max_retries} retries)")

    def _decrypt_server_inner(self, aes: AesIge, encrypted_answer: bytes) -> ServerDhInnerData:
        if len(encrypted_answer) % 16 != 0 or len(encrypted_answer) < 32:
            raise HandshakeIntegrityError("encrypted_answer has invalid length")
        answer = aes.decrypt(encrypted_answer)

        # answer = sha1(inner) + inner + padding(0..15)
        reader = TLReader(answer[20:], self.registry)
        inner = _expect(reader.read_object(), ServerDhInnerData, self.step)
        if reader.remaining >= 16:
            raise HandshakeIntegrityError("server_DH_inner_data has excess padding")
        if sha1(answer[20 : 20 + reader.position]) != answer[:20]:
            raise HandshakeIntegrityError("server_DH_inner_data hash mismatch")
        return inner


async def exchange_auth_key(
    transport: PacketTransport,
    *,
    registry: TypeRegistry,
    rsa_keys: ServerKeyRing | Sequence[RsaPublicKey] = DEFAULT_SERVER_KEYRING,
    msg_id_gen: MsgIdGenerator | None = None,
    rand: RandomSource = random_bytes,
    clock: Clock = time.time,
    dc_id: int | None = None,
    dh_check: DhParamsCheck | None = None,
    max_retries: int = 5,
    recv_timeout: float | None = None,
) -> AuthKeyExchangeResult:
    """
    Perform the unencrypted MTProto auth key exchange:
      req_pq_multi -> req_DH_params -> set_client_DH_params

    `dc_id` switches the RSA-encrypted payload to p_q_inner_data_dc. The random
    source and clock are injectable so the whole exchange can be replayed.
    Transport failures propagate unchanged (the caller retries on a fresh
    connection); protocol failures raise `AuthHandshakeError` subclasses with
    `.step` set to where the exchange stopped.
    """

    key_ring = (
        rsa_keys if isinstance(rsa_keys, ServerKeyRing) else ServerKeyRing.from_keys(rsa_keys)
    )
    run = _AuthKeyExchange(
        transport,
        registry=registry,
        key_ring=key_ring,
        msg_id_gen=msg_id_gen if msg_id_gen is not None else MsgIdGenerator(clock=clock),
        rand=rand,
        clock=clock,
        dc_id=dc_id,
        dh_check=dh_check if dh_check is not None else DhParamsCheck(),
        max_retries=max_retries,
        recv_timeout=recv_timeout,
    )
    try:
        return await run.run()
    except AuthHandshakeError as e:
        if e.step is None:
            e.step = run.step
        logger.warning("Auth key exchange failed at %s: %s", run.step.value, e)
        raise
    except (DhError, PqFactorizationError) as e:
        raise HandshakeIntegrityError(str(e), step=run.step) from e
    except (TLCodecError, UnencryptedMessageError, RsaError, AesIgeError, AuthKeyError) as e:
        raise AuthHandshakeError(f"{type(e).__name__}: {e}", step=run.step) from e
