from __future__ import annotations

import asyncio
from typing import Any

import pytest
from mtproto_fakes import (
    SERVER_TIME,
    EncryptedPeer,
    EncryptedServerTransport,
    Handler,
    make_config,
    no_reply,
    unwrap_query,
)

from telewire.client import (
    ClientInit,
    MtprotoClient,
    MtprotoClientError,
    NotAuthenticatedError,
    wrap_with_layer_init,
)
from telewire.mtproto.auth.handshake import AuthKeyExchangeResult
from telewire.mtproto.core.auth_key import AuthKey
from telewire.mtproto.rpc.errors import DcMigrateError, RpcTimeoutError
from telewire.mtproto.session import MemorySessionStore, MtprotoSession
from telewire.mtproto.transport.base import Endpoint, TransportError
from telewire.tl.codec import RpcResult
from telewire.tl.schema import build_registry
from telewire.tl.schema.api import (
    LAYER,
    Config,
    DcOption,
    HelpGetConfig,
    HelpGetNearestDc,
    InitConnection,
    InvokeWithLayer,
    NearestDc,
)
from telewire.tl.schema.mtproto import Ping, Pong, RpcError

REGISTRY = build_registry()
DC_TABLE = {2: ("10.0.0.2", 443), 4: ("10.0.0.4", 443)}
NEAREST = NearestDc(country="NL", this_dc=4, nearest_dc=4)


def migrate_to(dc_id: int) -> RpcError:
    return RpcError(error_code=303, error_message=f"USER_MIGRATE_{dc_id}")


def serving(result: Any, *, config: Config | None = None) -> Handler:
    """Answer getConfig with `config`, pings with pongs and anything else with `result`."""

    def handler(msg_id: int, obj: Any) -> list[Any]:
        query = unwrap_query(obj)
        if isinstance(query, Ping):
            return [Pong(msg_id=msg_id, ping_id=query.ping_id)]
        if isinstance(query, HelpGetConfig):
            answer = config if config is not None else make_config(this_dc=2, dc_options=[])
            return [RpcResult(req_msg_id=msg_id, result=answer)]
        return [RpcResult(req_msg_id=msg_id, result=result)]

    return handler


class FakeNetwork:
    """A set of in-memory data centers, each with a fixed auth key."""

    def __init__(
        self, handlers: dict[int, Handler], *, extra: dict[Endpoint, int] | None = None
    ) -> None:
        self.handlers = handlers
        self.dc_by_endpoint = {Endpoint(host, port): dc for dc, (host, port) in DC_TABLE.items()}
        self.dc_by_endpoint.update(extra or {})
        self.keys = {dc: AuthKey(bytes([dc]) * 256) for dc in (2, 4)}
        self.transports: list[EncryptedServerTransport] = []
        self.exchanges: list[int] = []
        self.refuse = 0

    def transports_for(self, dc_id: int) -> list[EncryptedServerTransport]:
        return [t for t in self.transports if self.dc_by_endpoint[t.endpoint] == dc_id]

    def transport_factory(self, endpoint: Endpoint) -> EncryptedServerTransport:
        dc_id = self.dc_by_endpoint[endpoint]
        transport = EncryptedServerTransport(
            EncryptedPeer(REGISTRY, self.keys[dc_id]), self.handlers[dc_id], endpoint=endpoint
        )
        if self.refuse:
            self.refuse -= 1
            transport.fail_connect = True
        self.transports.append(transport)
        return transport

    async def key_exchange(
        self, transport: EncryptedServerTransport, *, dc_id: int, **_: Any
    ) -> AuthKeyExchangeResult:
        self.exchanges.append(dc_id)
        assert transport.peer.auth_key is not None
        return AuthKeyExchangeResult(
            auth_key=transport.peer.auth_key,
            server_salt=b"\x01" * 8,
            server_time=SERVER_TIME,
            time_offset=42,
            rsa_fingerprint=-1,
            g=3,
            dh_prime=b"\x07\xf7",
        )


def make_client(net: FakeNetwork, store: MemorySessionStore, **kw: Any) -> MtprotoClient:
    return MtprotoClient(
        network="test",
        dc_id=2,
        session_name="alice",
        session_store=store,
        dc_table=DC_TABLE,
        transport_factory=net.transport_factory,
        key_exchange=net.key_exchange,
        rand=lambda n: b"\x07" * n,
        clock=lambda: 1_700_000_000.0,
        **kw,
    )


def test_first_connect_negotiates_key_and_saves_session() -> None:
    net = FakeNetwork({2: serving(NEAREST)})
    store = MemorySessionStore()

    async def run() -> AuthKeyExchangeResult | None:
        client = make_client(net, store)
        result = await client.connect()
        assert client.is_connected
        assert await client.invoke(HelpGetNearestDc()) == NEAREST
        await client.close()
        return result

    result = asyncio.run(run())
    assert result is not None
    assert net.exchanges == [10002]
    saved = store.sessions["alice"]
    assert (saved.dc_id, saved.host, saved.port) == (2, "10.0.0.2", 443)
    assert saved.auth_key == net.keys[2].data
    assert saved.server_salt == b"\x01" * 8
    assert saved.time_offset == 42
    assert net.transports[0].closed


def test_stored_session_is_reused_without_exchange() -> None:
    net = FakeNetwork({2: serving(None), 4: serving(NEAREST)})
    store = MemorySessionStore()
    store.save(
        MtprotoSession(
            name="alice",
            dc_id=4,
            host="10.0.0.4",
            port=443,
            auth_key=net.keys[4].data,
            server_salt=b"\x02" * 8,
            time_offset=-3,
            user_id=99,
        )
    )

    async def run() -> tuple[AuthKeyExchangeResult | None, Any, MtprotoClient]:
        client = make_client(net, store)
        result = await client.connect()
        answer = await client.invoke(HelpGetNearestDc(), require_user=True)
        await client.close()
        return result, answer, client

    result, answer, client = asyncio.run(run())
    assert result is None
    assert answer == NEAREST
    assert net.exchanges == []
    assert client.dc_id == 4
    assert client.is_user_authorized()
    (transport,) = net.transports_for(4)
    assert transport.peer.salt == b"\x02" * 8
    assert transport.received[0][0] >> 32 == 1_700_000_000 - 3


def test_force_reconnect_negotiates_a_new_key() -> None:
    net = FakeNetwork({2: serving(NEAREST)})
    store = MemorySessionStore()

    async def run() -> tuple[Any, Any, Any]:
        client = make_client(net, store)
        first = await client.connect()
        client.set_authorized_user(777)
        again = await client.connect(force_reconnect=True)
        answer = await client.invoke(HelpGetNearestDc(), require_user=True)
        await client.close()
        return first, again, answer

    first, again, answer = asyncio.run(run())
    assert first is not None
    assert isinstance(again, AuthKeyExchangeResult)
    assert answer == NEAREST
    assert net.exchanges == [10002, 10002]
    old, new = net.transports_for(2)
    assert old.closed
    assert [obj for _, obj in new.received] == [HelpGetNearestDc()]
    assert store.sessions["alice"].user_id == 777



def test_redirect_replays_request_once_on_target_dc() -> None:
    net = FakeNetwork({2: serving(migrate_to(4)), 4: serving(NEAREST)})
    store = MemorySessionStore()

    async def run() -> tuple[Any, MtprotoClient]:
        client = make_client(net, store)
        await client.connect()
        answer = await client.invoke_with_redirect(HelpGetNearestDc())
        return answer, client

    answer, client = asyncio.run(run())
    assert answer == NEAREST
    assert client.dc_id == 4
    assert net.exchanges == [10002, 10004]
    (old,) = net.transports_for(2)
    (new,) = net.transports_for(4)
    assert old.closed
    assert [obj for _, obj in new.received] == [HelpGetNearestDc()]
    saved = store.sessions["alice"]
    assert (saved.dc_id, saved.host) == (4, "10.0.0.4")
    assert saved.auth_key == net.keys[4].data


def test_second_redirect_is_surfaced() -> None:
    net = FakeNetwork({2: serving(migrate_to(4)), 4: serving(migrate_to(2))})

    async def run() -> None:
        client = make_client(net, MemorySessionStore())
        await client.connect()
        with pytest.raises(DcMigrateError) as ei:
            await client.invoke_with_redirect(HelpGetNearestDc())
        assert ei.value.dc_id == 2
        await client.close()

    asyncio.run(run())
    assert net.exchanges == [10002, 10004]
    (new,) = net.transports_for(4)
    assert len(new.received) == 1


def test_redirect_keeps_the_authorized_user() -> None:
    net = FakeNetwork({2: serving(migrate_to(4)), 4: serving(NEAREST)})
    store = MemorySessionStore()

    async def run() -> Any:
        client = make_client(net, store)
        await client.connect()
        client.set_authorized_user(777)
        answer = await client.invoke_with_redirect(HelpGetNearestDc(), require_user=True)
        assert client.is_user_authorized()
        return answer

    assert asyncio.run(run()) == NEAREST
    assert net.exchanges == [10002, 10004]
    (new,) = net.transports_for(4)
    assert [obj for _, obj in new.received] == [HelpGetNearestDc()]
    saved = store.sessions["alice"]
    assert (saved.dc_id, saved.user_id) == (4, 777)
    assert saved.auth_key == net.keys[4].data



def test_redirect_to_unknown_dc_fails() -> None:
    net = FakeNetwork({2: serving(migrate_to(9))})

    async def run() -> None:
        client = make_client(net, MemorySessionStore())
        await client.connect()
        with pytest.raises(MtprotoClientError, match="Unknown DC: 9"):
            await client.invoke_with_redirect(HelpGetNearestDc())

    asyncio.run(run())


def test_user_calls_need_authorized_session() -> None:
    net = FakeNetwork({2: serving(NEAREST)})
    store = MemorySessionStore()

    async def run() -> Any:
        client = make_client(net, store)
        await client.connect()
        with pytest.raises(NotAuthenticatedError, match="help.getNearestDc"):
            await client.invoke(HelpGetNearestDc(), require_user=True)
        client.set_authorized_user(777)
        return await client.invoke(HelpGetNearestDc(), require_user=True)

    assert asyncio.run(run()) == NEAREST
    assert store.sessions["alice"].user_id == 777


def test_handshake_is_retried_on_transport_errors() -> None:
    net = FakeNetwork({2: serving(NEAREST)})
    net.refuse = 2

    async def run() -> None:
        client = make_client(net, MemorySessionStore(), handshake_attempts=3)
        await client.connect()
        assert client.is_connected

    asyncio.run(run())
    assert len(net.transports) == 3
    assert [t.closed for t in net.transports] == [True, True, False]
    assert net.exchanges == [10002]


def test_handshake_gives_up_after_all_attempts() -> None:
    net = FakeNetwork({2: serving(NEAREST)})
    net.refuse = 5

    async def run() -> None:
        client = make_client(net, MemorySessionStore(), handshake_attempts=2)
        with pytest.raises(MtprotoClientError, match="after 2 attempts") as ei:
            await client.connect()
        assert isinstance(ei.value.__cause__, TransportError)
        assert not client.is_connected

    asyncio.run(run())
    assert len(net.transports) == 2
    assert net.exchanges == []


def test_timeout_tears_connection_down() -> None:
    net = FakeNetwork({2: no_reply})

    async def run() -> None:
        client = make_client(net, MemorySessionStore())
        await client.connect()
        with pytest.raises(RpcTimeoutError):
            await client.invoke(HelpGetNearestDc(), timeout=0.05)
        assert not client.is_connected
        with pytest.raises(MtprotoClientError, match="Not connected"):
            await client.invoke(HelpGetNearestDc())

    asyncio.run(run())
    assert net.transports[0].closed


def test_ping_checks_the_echoed_id() -> None:
    net = FakeNetwork({2: serving(None)})

    async def run() -> Pong:
        async with make_client(net, MemorySessionStore()) as client:
            return await client.ping()

    pong = asyncio.run(run())
    assert pong.ping_id == int.from_bytes(b"\x07" * 8, "little", signed=True)


def test_unsolicited_objects_reach_recv_update() -> None:
    update = NearestDc(country="XX", this_dc=1, nearest_dc=1)

    def handler(msg_id: int, obj: Any) -> list[Any]:
        return [update, RpcResult(req_msg_id=msg_id, result=NEAREST)]

    net = FakeNetwork({2: handler})

    async def run() -> Any:
        async with make_client(net, MemorySessionStore()) as client:
            await client.invoke(HelpGetNearestDc())
            return await asyncio.wait_for(client.recv_update(), timeout=1.0)

    assert asyncio.run(run()) == update


def test_bootstrap_records_config_and_prefers_its_dc_options() -> None:
    config = make_config(
        this_dc=2,
        dc_options=[
            DcOption(id=4, ip_address="2001:db8::4", port=443, ipv6=True),
            DcOption(id=4, ip_address="10.9.9.4", port=443),
            DcOption(id=4, ip_address="10.9.9.5", port=443, media_only=True),
        ],
    )
    net = FakeNetwork(
        {2: serving(migrate_to(4), config=config), 4: serving(NEAREST, config=config)},
        extra={Endpoint("10.9.9.4", 443): 4},
    )

    async def run() -> tuple[Any, MtprotoClient]:
        client = make_client(net, MemorySessionStore(), init=ClientInit(api_id=611))
        await client.connect()
        return await client.invoke_api(HelpGetNearestDc()), client

    answer, client = asyncio.run(run())
    assert answer == NEAREST
    assert client.config is not None and client.config.this_dc == 2
    (first_dc2,) = net.transports_for(2)
    _, bootstrap = first_dc2.received[0]
    assert isinstance(bootstrap, InvokeWithLayer) and bootstrap.layer == LAYER
    assert bootstrap.query.api_id == 611
    assert isinstance(bootstrap.query.query, HelpGetConfig)
    (dc4,) = net.transports_for(4)
    assert dc4.endpoint == Endpoint("10.9.9.4", 443)
    # The new connection runs initConnection again before the replayed request.
    assert [type(unwrap_query(obj)) for _, obj in dc4.received] == [
        HelpGetConfig,
        HelpGetNearestDc,
    ]


def test_wrap_with_layer_init_shape() -> None:
    wrapped = wrap_with_layer_init(
        query=HelpGetNearestDc(), init=ClientInit(api_id=1, device_model="pc", lang_code="de")
    )
    assert isinstance(wrapped, InvokeWithLayer)
    assert wrapped.layer == LAYER
    init = wrapped.query
    assert isinstance(init, InitConnection)
    assert (init.api_id, init.device_model, init.lang_code) == (1, "pc", "de")
    assert init.query == HelpGetNearestDc()
    assert init.proxy is None


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"network": "staging"}, "network must be"),
        ({"handshake_attempts": 0}, "handshake_attempts"),
    ],
)
def test_invalid_client_settings(kwargs: dict[str, Any], message: str) -> None:
    with pytest.raises(MtprotoClientError, match=message):
        MtprotoClient(**kwargs)


def test_calls_before_connect_fail() -> None:
    async def run() -> None:
        client = MtprotoClient(dc_table=DC_TABLE)
        with pytest.raises(MtprotoClientError, match="Not connected"):
            await client.invoke(HelpGetNearestDc())
        with pytest.raises(MtprotoClientError, match="Not connected"):
            await client.recv_update()

    asyncio.run(run())
