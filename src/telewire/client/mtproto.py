from __future__ import annotations

import asyncio
import logging
import time
import types
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from telewire.mtproto.auth.handshake import AuthKeyExchangeResult, exchange_auth_key
from telewire.mtproto.auth.server_keys import DEFAULT_SERVER_KEYRING, ServerKeyRing
from telewire.mtproto.core.auth_key import AuthKey
from telewire.mtproto.core.msg_id import Clock, MsgIdGenerator
from telewire.mtproto.core.state import MtprotoState
from telewire.mtproto.crypto.random import RandomSource, random_bytes
from telewire.mtproto.rpc.errors import DcMigrateError, RpcTimeoutError
from telewire.mtproto.rpc.sender import MtprotoEncryptedSender, ReceivedMessage
from telewire.mtproto.session import MemorySessionStore, MtprotoSession, SessionStore
from telewire.mtproto.transport.base import Endpoint, TransportError
from telewire.mtproto.transport.full import FullFraming
from telewire.mtproto.transport.tcp import FramedTransport, TcpConnection
from telewire.tl.registry import TypeRegistry
from telewire.tl.schema import build_registry
from telewire.tl.schema.api import LAYER, Config, HelpGetConfig, InitConnection, InvokeWithLayer
from telewire.tl.schema.mtproto import Ping, Pong

logger = logging.getLogger(__name__)


class MtprotoClientError(Exception):
    pass


class NotAuthenticatedError(MtprotoClientError):
    """The call needs a session bound to a user account."""


TEST_DCS: dict[int, tuple[str, int]] = {
    1: ("149.154.175.10", 443),
    2: ("149.154.167.40", 443),
    3: ("149.154.175.117", 443),
}

# Common production DCs (IPv4, port 443).
# Can always be overridden with explicit host/port or dc_table.
PROD_DCS: dict[int, tuple[str, int]] = {
    1: ("149.154.175.50", 443),
    2: ("149.154.167.51", 443),
    3: ("149.154.175.100", 443),
    4: ("149.154.167.91", 443),
    5: ("91.108.56.130", 443),
}

# Test servers expect dc ids shifted by this amount in p_q_inner_data_dc.
_TEST_DC_ID_SHIFT = 10000


class ClientTransport(Protocol):
    async def connect(self) -> None: ...
    async def close(self) -> None: ...
    async def send(self, payload: bytes) -> None: ...
    async def recv(self) -> bytes: ...


TransportFactory = Callable[[Endpoint], ClientTransport]
KeyExchange = Callable[..., Awaitable[AuthKeyExchangeResult]]


def default_transport_factory(endpoint: Endpoint) -> ClientTransport:
    return FramedTransport(endpoint=endpoint, connection=TcpConnection(), framing=FullFraming())


@dataclass(slots=True)
class ClientInit:
    api_id: int
    api_hash: str | None = None
    device_model: str = "telewire"
    system_version: str = "telewire"
    app_version: str = "0.1"
    system_lang_code: str = "en"
    lang_pack: str = ""
    lang_code: str = "en"


def wrap_with_layer_init(*, query: Any, init: ClientInit) -> Any:
    """
    Wrap a TL request as a "real client" invocation:
      invokeWithLayer(LAYER, initConnection(..., query=<query>))
    """

    return InvokeWithLayer(
        layer=LAYER,
        query=InitConnection(
            api_id=init.api_id,
            device_model=init.device_model,
            system_version=init.system_version,
            app_version=init.app_version,
            system_lang_code=init.system_lang_code,
            lang_pack=init.lang_pack,
            lang_code=init.lang_code,
            query=query,
        ),
    )


class MtprotoClient:
    """
    One authenticated connection to one data center.

    The auth key, endpoint and clock offset are kept in `session_store` under
    `session_name`; a stored key is reused on `connect()`, otherwise a new one
    is negotiated. Requests answered with `*_MIGRATE_N` are replayed once on
    DC N by `invoke_with_redirect`/`invoke_api`.
    """

    def __init__(
        self,
        *,
        network: str = "test",
        dc_id: int = 2,
        host: str | None = None,
        port: int = 443,
        session_name: str = "telewire",
        session_store: SessionStore | None = None,
        init: ClientInit | None = None,
        registry: TypeRegistry | None = None,
        dc_table: dict[int, tuple[str, int]] | None = None,
        transport_factory: TransportFactory = default_transport_factory,
        key_exchange: KeyExchange = exchange_auth_key,
        handshake_attempts: int = 3,
        rsa_keys: ServerKeyRing = DEFAULT_SERVER_KEYRING,
        rand: RandomSource = random_bytes,
        clock: Clock = time.time,
    ) -> None:
        if network not in {"test", "prod"}:
            raise MtprotoClientError("network must be 'test' or 'prod'")
        if handshake_attempts < 1:
            raise MtprotoClientError("handshake_attempts must be >= 1")
        self._network = network
        self._dc_id = dc_id
        self._host = host
        self._port = port
        self._session_name = session_name
        self._store: SessionStore = (
            session_store if session_store is not None else MemorySessionStore()
        )
        self._init = init
        self._registry = registry if registry is not None else build_registry()
        self._dc_table = dict(dc_table or (TEST_DCS if network == "test" else PROD_DCS))
        self._transport_factory = transport_factory
        self._key_exchange = key_exchange
        self._handshake_attempts = handshake_attempts
        self._rsa_keys = rsa_keys
        self._rand = rand
        self._clock = clock

        self._session: MtprotoSession | None = None
        self._transport: ClientTransport | None = None
        self._sender: MtprotoEncryptedSender | None = None
        self._state: MtprotoState | None = None
        self._did_init_connection = False
        self._incoming: asyncio.Queue[ReceivedMessage] | None = None
        # dc options announced by help.getConfig; preferred over the static table.
        self._dc_options: dict[int, tuple[str, int]] = {}

        self.config: Config | None = None

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._sender is not None and self._sender.usable

    @property
    def dc_id(self) -> int:
        return self._dc_id

    @property
    def session(self) -> MtprotoSession | None:
        return self._session

    def _endpoint(self) -> Endpoint:
        if self._host is not None:
            return Endpoint(host=self._host, port=self._port)
        host, port = self._lookup_dc(self._dc_id)
        return Endpoint(host=host, port=port)

    def _lookup_dc(self, dc_id: int) -> tuple[str, int]:
        addr = self._dc_options.get(dc_id) or self._dc_table.get(dc_id)
        if addr is None:
            raise MtprotoClientError(f"Unknown DC: {dc_id} (network={self._network})")
        return addr

    def _load_session(self) -> MtprotoSession:
        if self._session is None:
            stored = self._store.load(self._session_name)
            if stored is not None:
                # The stored endpoint wins: a previous run may have migrated DCs.
                self._dc_id, self._host, self._port = stored.dc_id, stored.host, stored.port
                self._session = stored
            else:
                endpoint = self._endpoint()
                self._session = MtprotoSession(
                    name=self._session_name,
                    dc_id=self._dc_id,
                    host=endpoint.host,
                    port=endpoint.port,
                )
        return self._session

    def _save_session(self) -> None:
        if self._session is None:
            return
        if self._state is not None and self._session.auth_key is not None:
            self._session.server_salt = self._state.server_salt
        self._store.save(self._session)

    async def connect(
        self, *, force_reconnect: bool = False, timeout: float = 30.0
    ) -> AuthKeyExchangeResult | None:
        """
        Open the connection, negotiating an auth key if the session has none.

        `force_reconnect` drops the current connection and stored key and
        negotiates a fresh one; the session keeps its user binding. Returns the
        exchange result when a new key was made, None when a stored key was reused
        (or the client was already connected).
        """

        if self.is_connected and not force_reconnect:
            return None
        await self._teardown()

        session = self._load_session()
        endpoint = Endpoint(host=session.host, port=session.port)

        result: AuthKeyExchangeResult | None = None
        if session.auth_key is None or force_reconnect:
            transport, result = await self._negotiate_key(endpoint, timeout=timeout)
            session.auth_key = result.auth_key.data
            session.server_salt = result.server_salt
            session.time_offset = result.time_offset
            self._store.save(session)
        else:
            transport = self._transport_factory(endpoint)
            await transport.connect()
        self._transport = transport

        try:
            msg_id_gen = MsgIdGenerator(time_offset=session.time_offset, clock=self._clock)
            state = MtprotoState(
                auth_key=AuthKey(session.auth_key),
                server_salt=session.server_salt or bytes(8),
                msg_id_gen=msg_id_gen,
                rand=self._rand,
            )
            if self._incoming is None:
                self._incoming = asyncio.Queue(maxsize=2048)
            self._state = state
            self._sender = MtprotoEncryptedSender(
                transport,
                state=state,
                msg_id_gen=msg_id_gen,
                registry=self._registry,
                incoming_queue=self._incoming,
            )
            logger.info("Connected to DC %d at %s", session.dc_id, endpoint)

            if self._init is not None:
                await self._bootstrap(timeout=timeout)
        except BaseException:
            await self._teardown()
            raise
        return result

    async def _negotiate_key(
        self, endpoint: Endpoint, *, timeout: float
    ) -> tuple[ClientTransport, AuthKeyExchangeResult]:
        dc_id = self._dc_id + _TEST_DC_ID_SHIFT if self._network == "test" else self._dc_id
        last_error: Exception | None = None
        for attempt in range(1, self._handshake_attempts + 1):
            transport = self._transport_factory(endpoint)
            try:
                await transport.connect()
                result = await asyncio.wait_for(
                    self._key_exchange(
                        transport,
                        registry=self._registry,
                        rsa_keys=self._rsa_keys,
                        rand=self._rand,
                        clock=self._clock,
                        dc_id=dc_id,
                    ),
                    timeout=timeout,
                )
            except (TransportError, asyncio.TimeoutError) as e:
                await transport.close()
                last_error = e
                logger.warning(
                    "Auth key exchange with %s failed (attempt %d/%d): %r",
                    endpoint,
                    attempt,
                    self._handshake_attempts,
                    e,
                )
                continue
            except BaseException:
                await transport.close()
                raise
            logger.info("New auth key 0x%016x for DC %d", result.auth_key_id, self._dc_id)
            return transport, result
        raise MtprotoClientError(
            f"Auth key exchange with {endpoint} failed after {self._handshake_attempts} attempts"
        ) from last_error

    async def _bootstrap(self, *, timeout: float) -> None:
        assert self._init is not None
        wrapped = wrap_with_layer_init(query=HelpGetConfig(), init=self._init)
        config = await self.invoke(wrapped, timeout=timeout)
        self._record_config(config)
        self._did_init_connection = True

    def _record_config(self, config: Any) -> None:
        if not isinstance(config, Config):
            raise MtprotoClientError(f"Unexpected help.getConfig result: {type(config).__name__}")
        self.config = config
        options: dict[int, tuple[str, int]] = {}
        for opt in config.dc_options:
            if opt.ipv6 or opt.media_only or opt.cdn or opt.tcpo_only:
                continue
            options.setdefault(opt.id, (opt.ip_address, opt.port))
        self._dc_options = options
        logger.debug("Recorded %d dc options from config", len(options))

    async def _teardown(self) -> None:
        sender, transport = self._sender, self._transport
        self._sender = None
        self._transport = None
        if self._session is not None and self._state is not None:
            self._session.server_salt = self._state.server_salt
        self._state = None
        self._did_init_connection = False
        if sender is not None:
            await sender.close()
        if transport is not None:
            await transport.close()

    async def close(self) -> None:
        if self._session is not None and self._session.auth_key is not None:
            self._save_session()
        await self._teardown()

    async def __aenter__(self) -> MtprotoClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    def is_user_authorized(self) -> bool:
        return self._session is not None and self._session.user_id is not None

    def set_authorized_user(self, user_id: int) -> None:
        """Bind the current auth key to `user_id` (after a successful sign-in)."""

        session = self._load_session()
        session.user_id = int(user_id)
        self._save_session()

    async def invoke(self, req: Any, *, timeout: float = 20.0, require_user: bool = False) -> Any:
        if require_user and not self.is_user_authorized():
            name = getattr(req, "TL_NAME", type(req).__name__)
            raise NotAuthenticatedError(f"{name} requires a signed-in user")
        if self._sender is None:
            raise MtprotoClientError("Not connected")
        try:
            return await self._sender.invoke_tl(req, timeout=timeout)
        except (RpcTimeoutError, TransportError):
            logger.warning("Connection to DC %d lost; tearing down", self._dc_id)
            await self._teardown()
            raise

    async def invoke_with_redirect(
        self, req: Any, *, timeout: float = 20.0, require_user: bool = False
    ) -> Any:
        """Invoke `req`; on a DC redirect, move to that DC and replay it exactly once."""

        try:
            return await self.invoke(req, timeout=timeout, require_user=require_user)
        except DcMigrateError as e:
            logger.info("%s: redirected to DC %d", getattr(req, "TL_NAME", req), e.dc_id)
            await self.reconnect_to_dc(e.dc_id, timeout=timeout)
        return await self.invoke(req, timeout=timeout, require_user=require_user)

    async def invoke_api(
        self, req: Any, *, timeout: float = 20.0, require_user: bool = False
    ) -> Any:
        """
        Invoke a regular API method after we've performed initConnection/invokeWithLayer once.
        """

        if self._init is not None and not self._did_init_connection:
            await self._bootstrap(timeout=timeout)
        return await self.invoke_with_redirect(req, timeout=timeout, require_user=require_user)

    async def reconnect_to_dc(
        self, dc_id: int, *, timeout: float = 30.0
    ) -> AuthKeyExchangeResult | None:
        """
        Drop the current connection and key, and start over on `dc_id`.

        Auth keys are per data center, so this always negotiates a new one; the
        session is saved with the new endpoint (and the same user) before anything
        else happens.
        """

        host, port = self._lookup_dc(dc_id)
        await self._teardown()
        self._dc_id, self._host, self._port = dc_id, host, port
        previous = self._session
        self._session = MtprotoSession(
            name=self._session_name,
            dc_id=dc_id,
            host=host,
            port=port,
            user_id=previous.user_id if previous is not None else None,
        )
        self._store.save(self._session)
        return await self.connect(force_reconnect=True, timeout=timeout)

    async def ping(self, *, timeout: float = 20.0) -> Pong:
        ping_id = int.from_bytes(self._rand(8), "little", signed=True)
        pong = await self.invoke(Ping(ping_id=ping_id), timeout=timeout)
        if not isinstance(pong, Pong) or pong.ping_id != ping_id:
            raise MtprotoClientError(f"Unexpected ping answer: {pong!r}")
        return pong

    async def get_config(self, *, timeout: float = 20.0) -> Config:
        config = await self.invoke_api(HelpGetConfig(), timeout=timeout)
        self._record_config(config)
        assert self.config is not None
        return self.config

    async def recv_update(self) -> Any:
        """Next unsolicited object (update) the server pushed, in arrival order."""

        if self._incoming is None:
            raise MtprotoClientError("Not connected")
        msg = await self._incoming.get()
        return msg.obj
