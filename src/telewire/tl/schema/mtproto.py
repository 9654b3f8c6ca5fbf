from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from telewire.tl.runtime import TLObject, TLParams, TLRequest

# --- auth key exchange ---------------------------------------------------------


@dataclass(slots=True)
class ResPq(TLObject):
    TL_ID: ClassVar[int] = 0x05162463
    TL_NAME: ClassVar[str] = "resPQ"
    TL_TYPE: ClassVar[str] = "ResPQ"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("pq", "bytes"),
        ("server_public_key_fingerprints", "Vector<long>"),
    )

    nonce: bytes
    server_nonce: bytes
    pq: bytes
    server_public_key_fingerprints: list[int]


@dataclass(slots=True)
class PQInnerData(TLObject):
    TL_ID: ClassVar[int] = 0x83C95AEC
    TL_NAME: ClassVar[str] = "p_q_inner_data"
    TL_TYPE: ClassVar[str] = "P_Q_inner_data"
    TL_PARAMS: ClassVar[TLParams] = (
        ("pq", "bytes"),
        ("p", "bytes"),
        ("q", "bytes"),
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("new_nonce", "int256"),
    )

    pq: bytes
    p: bytes
    q: bytes
    nonce: bytes
    server_nonce: bytes
    new_nonce: bytes


@dataclass(slots=True)
class PQInnerDataDc(TLObject):
    TL_ID: ClassVar[int] = 0xA9F55F95
    TL_NAME: ClassVar[str] = "p_q_inner_data_dc"
    TL_TYPE: ClassVar[str] = "P_Q_inner_data"
    TL_PARAMS: ClassVar[TLParams] = (
        ("pq", "bytes"),
        ("p", "bytes"),
        ("q", "bytes"),
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("new_nonce", "int256"),
        ("dc", "int"),
    )

    pq: bytes
    p: bytes
    q: bytes
    nonce: bytes
    server_nonce: bytes
    new_nonce: bytes
    dc: int


@dataclass(slots=True)
class ServerDhParamsFail(TLObject):
    TL_ID: ClassVar[int] = 0x79CB045D
    TL_NAME: ClassVar[str] = "server_DH_params_fail"
    TL_TYPE: ClassVar[str] = "Server_DH_Params"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("new_nonce_hash", "int128"),
    )

    nonce: bytes
    server_nonce: bytes
    new_nonce_hash: bytes


@dataclass(slots=True)
class ServerDhParamsOk(TLObject):
    TL_ID: ClassVar[int] = 0xD0E8075C
    TL_NAME: ClassVar[str] = "server_DH_params_ok"
    TL_TYPE: ClassVar[str] = "Server_DH_Params"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("encrypted_answer", "bytes"),
    )

    nonce: bytes
    server_nonce: bytes
    encrypted_answer: bytes


@dataclass(slots=True)
class ServerDhInnerData(TLObject):
    TL_ID: ClassVar[int] = 0xB5890DBA
    TL_NAME: ClassVar[str] = "server_DH_inner_data"
    TL_TYPE: ClassVar[str] = "Server_DH_inner_data"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("g", "int"),
        ("dh_prime", "bytes"),
        ("g_a", "bytes"),
        ("server_time", "int"),
    )

    nonce: bytes
    server_nonce: bytes
    g: int
    dh_prime: bytes
    g_a: bytes
    server_time: int


@dataclass(slots=True)
class ClientDhInnerData(TLObject):
    TL_ID: ClassVar[int] = 0x6643B654
    TL_NAME: ClassVar[str] = "client_DH_inner_data"
    TL_TYPE: ClassVar[str] = "Client_DH_Inner_Data"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("retry_id", "long"),
        ("g_b", "bytes"),
    )

    nonce: bytes
    server_nonce: bytes
    retry_id: int
    g_b: bytes


@dataclass(slots=True)
class DhGenOk(TLObject):
    TL_ID: ClassVar[int] = 0x3BCBF734
    TL_NAME: ClassVar[str] = "dh_gen_ok"
    TL_TYPE: ClassVar[str] = "Set_client_DH_params_answer"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("new_nonce_hash1", "int128"),
    )

    nonce: bytes
    server_nonce: bytes
    new_nonce_hash1: bytes


@dataclass(slots=True)
class DhGenRetry(TLObject):
    TL_ID: ClassVar[int] = 0x46DC1FB9
    TL_NAME: ClassVar[str] = "dh_gen_retry"
    TL_TYPE: ClassVar[str] = "Set_client_DH_params_answer"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("new_nonce_hash2", "int128"),
    )

    nonce: bytes
    server_nonce: bytes
    new_nonce_hash2: bytes


@dataclass(slots=True)
class DhGenFail(TLObject):
    TL_ID: ClassVar[int] = 0xA69DAE02
    TL_NAME: ClassVar[str] = "dh_gen_fail"
    TL_TYPE: ClassVar[str] = "Set_client_DH_params_answer"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("new_nonce_hash3", "int128"),
    )

    nonce: bytes
    server_nonce: bytes
    new_nonce_hash3: bytes


@dataclass(slots=True)
class ReqPqMulti(TLRequest):
    TL_ID: ClassVar[int] = 0xBE7E8EF1
    TL_NAME: ClassVar[str] = "req_pq_multi"
    TL_RESULT: ClassVar[str] = "ResPQ"
    TL_PARAMS: ClassVar[TLParams] = (("nonce", "int128"),)

    nonce: bytes


@dataclass(slots=True)
class ReqDhParams(TLRequest):
    TL_ID: ClassVar[int] = 0xD712E4BE
    TL_NAME: ClassVar[str] = "req_DH_params"
    TL_RESULT: ClassVar[str] = "Server_DH_Params"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("p", "bytes"),
        ("q", "bytes"),
        ("public_key_fingerprint", "long"),
        ("encrypted_data", "bytes"),
    )

    nonce: bytes
    server_nonce: bytes
    p: bytes
    q: bytes
    public_key_fingerprint: int
    encrypted_data: bytes


@dataclass(slots=True)
class SetClientDhParams(TLRequest):
    TL_ID: ClassVar[int] = 0xF5045F1F
    TL_NAME: ClassVar[str] = "set_client_DH_params"
    TL_RESULT: ClassVar[str] = "Set_client_DH_params_answer"
    TL_PARAMS: ClassVar[TLParams] = (
        ("nonce", "int128"),
        ("server_nonce", "int128"),
        ("encrypted_data", "bytes"),
    )

    nonce: bytes
    server_nonce: bytes
    encrypted_data: bytes


# --- service messages ----------------------------------------------------------


@dataclass(slots=True)
class RpcError(TLObject):
    TL_ID: ClassVar[int] = 0x2144CA19
    TL_NAME: ClassVar[str] = "rpc_error"
    TL_TYPE: ClassVar[str] = "RpcError"
    TL_PARAMS: ClassVar[TLParams] = (
        ("error_code", "int"),
        ("error_message", "string"),
    )

    error_code: int
    error_message: str


@dataclass(slots=True)
class MsgsAck(TLObject):
    TL_ID: ClassVar[int] = 0x62D6B459
    TL_NAME: ClassVar[str] = "msgs_ack"
    TL_TYPE: ClassVar[str] = "MsgsAck"
    TL_PARAMS: ClassVar[TLParams] = (("msg_ids", "Vector<long>"),)

    msg_ids: list[int]


@dataclass(slots=True)
class BadMsgNotification(TLObject):
    TL_ID: ClassVar[int] = 0xA7EFF811
    TL_NAME: ClassVar[str] = "bad_msg_notification"
    TL_TYPE: ClassVar[str] = "BadMsgNotification"
    TL_PARAMS: ClassVar[TLParams] = (
        ("bad_msg_id", "long"),
        ("bad_msg_seqno", "int"),
        ("error_code", "int"),
    )

    bad_msg_id: int
    bad_msg_seqno: int
    error_code: int


@dataclass(slots=True)
class BadServerSalt(TLObject):
    TL_ID: ClassVar[int] = 0xEDAB447B
    TL_NAME: ClassVar[str] = "bad_server_salt"
    TL_TYPE: ClassVar[str] = "BadMsgNotification"
    TL_PARAMS: ClassVar[TLParams] = (
        ("bad_msg_id", "long"),
        ("bad_msg_seqno", "int"),
        ("error_code", "int"),
        ("new_server_salt", "long"),
    )

    bad_msg_id: int
    bad_msg_seqno: int
    error_code: int
    new_server_salt: int


@dataclass(slots=True)
class NewSessionCreated(TLObject):
    TL_ID: ClassVar[int] = 0x9EC20908
    TL_NAME: ClassVar[str] = "new_session_created"
    TL_TYPE: ClassVar[str] = "NewSession"
    TL_PARAMS: ClassVar[TLParams] = (
        ("first_msg_id", "long"),
        ("unique_id", "long"),
        ("server_salt", "long"),
    )

    first_msg_id: int
    unique_id: int
    server_salt: int


@dataclass(slots=True)
class MsgDetailedInfo(TLObject):
    TL_ID: ClassVar[int] = 0x276D3EC6
    TL_NAME: ClassVar[str] = "msg_detailed_info"
    TL_TYPE: ClassVar[str] = "MsgDetailedInfo"
    TL_PARAMS: ClassVar[TLParams] = (
        ("msg_id", "long"),
        ("answer_msg_id", "long"),
        ("bytes", "int"),
        ("status", "int"),
    )

    msg_id: int
    answer_msg_id: int
    bytes: int
    status: int


@dataclass(slots=True)
class MsgNewDetailedInfo(TLObject):
    TL_ID: ClassVar[int] = 0x809DB6DF
    TL_NAME: ClassVar[str] = "msg_new_detailed_info"
    TL_TYPE: ClassVar[str] = "MsgDetailedInfo"
    TL_PARAMS: ClassVar[TLParams] = (
        ("answer_msg_id", "long"),
        ("bytes", "int"),
        ("status", "int"),
    )

    answer_msg_id: int
    bytes: int
    status: int


@dataclass(slots=True)
class Pong(TLObject):
    TL_ID: ClassVar[int] = 0x347773C5
    TL_NAME: ClassVar[str] = "pong"
    TL_TYPE: ClassVar[str] = "Pong"
    TL_PARAMS: ClassVar[TLParams] = (
        ("msg_id", "long"),
        ("ping_id", "long"),
    )

    msg_id: int
    ping_id: int


@dataclass(slots=True)
class Ping(TLRequest):
    TL_ID: ClassVar[int] = 0x7ABE77EC
    TL_NAME: ClassVar[str] = "ping"
    TL_RESULT: ClassVar[str] = "Pong"
    TL_PARAMS: ClassVar[TLParams] = (("ping_id", "long"),)

    ping_id: int


ALL: tuple[type, ...] = (
    ResPq,
    PQInnerData,
    PQInnerDataDc,
    ServerDhParamsFail,
    ServerDhParamsOk,
    ServerDhInnerData,
    ClientDhInnerData,
    DhGenOk,
    DhGenRetry,
    DhGenFail,
    ReqPqMulti,
    ReqDhParams,
    SetClientDhParams,
    RpcError,
    MsgsAck,
    BadMsgNotification,
    BadServerSalt,
    NewSessionCreated,
    MsgDetailedInfo,
    MsgNewDetailedInfo,
    Pong,
    Ping,
)

# Service messages which never answer a request and carry nothing for the caller.
IGNORABLE: tuple[type, ...] = (MsgsAck, MsgDetailedInfo, MsgNewDetailedInfo)
