from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from telewire.tl.runtime import TLObject, TLParams, TLRequest

# API layer the shapes below are pinned to; sent in invokeWithLayer.
LAYER = 158


@dataclass(slots=True)
class DcOption(TLObject):
    TL_ID: ClassVar[int] = 0x18B7A10D
    TL_NAME: ClassVar[str] = "dcOption"
    TL_TYPE: ClassVar[str] = "DcOption"
    TL_PARAMS: ClassVar[TLParams] = (
        ("flags", "#"),
        ("ipv6", "flags.0?true"),
        ("media_only", "flags.1?true"),
        ("tcpo_only", "flags.2?true"),
        ("cdn", "flags.3?true"),
        ("static", "flags.4?true"),
        ("this_port_only", "flags.5?true"),
        ("id", "int"),
        ("ip_address", "string"),
        ("port", "int"),
        ("secret", "flags.10?bytes"),
    )

    id: int
    ip_address: str
    port: int
    flags: int = 0
    ipv6: bool = False
    media_only: bool = False
    tcpo_only: bool = False
    cdn: bool = False
    static: bool = False
    this_port_only: bool = False
    secret: bytes | None = None


@dataclass(slots=True)
class ReactionEmpty(TLObject):
    TL_ID: ClassVar[int] = 0x79F5D419
    TL_NAME: ClassVar[str] = "reactionEmpty"
    TL_TYPE: ClassVar[str] = "Reaction"


@dataclass(slots=True)
class ReactionEmoji(TLObject):
    TL_ID: ClassVar[int] = 0x1B2286B8
    TL_NAME: ClassVar[str] = "reactionEmoji"
    TL_TYPE: ClassVar[str] = "Reaction"
    TL_PARAMS: ClassVar[TLParams] = (("emoticon", "string"),)

    emoticon: str


@dataclass(slots=True)
class ReactionCustomEmoji(TLObject):
    TL_ID: ClassVar[int] = 0x8935FC73
    TL_NAME: ClassVar[str] = "reactionCustomEmoji"
    TL_TYPE: ClassVar[str] = "Reaction"
    TL_PARAMS: ClassVar[TLParams] = (("document_id", "long"),)

    document_id: int


@dataclass(slots=True)
class Config(TLObject):
    TL_ID: ClassVar[int] = 0xCC1A241E
    TL_NAME: ClassVar[str] = "config"
    TL_TYPE: ClassVar[str] = "Config"
    TL_PARAMS: ClassVar[TLParams] = (
        ("flags", "#"),
        ("default_p2p_contacts", "flags.3?true"),
        ("preload_featured_stickers", "flags.4?true"),
        ("revoke_pm_inbox", "flags.6?true"),
        ("blocked_mode", "flags.8?true"),
        ("force_try_ipv6", "flags.14?true"),
        ("date", "int"),
        ("expires", "int"),
        ("test_mode", "Bool"),
        ("this_dc", "int"),
        ("dc_options", "Vector<DcOption>"),
        ("dc_txt_domain_name", "string"),
        ("chat_size_max", "int"),
        ("megagroup_size_max", "int"),
        ("forwarded_count_max", "int"),
        ("online_update_period_ms", "int"),
        ("offline_blur_timeout_ms", "int"),
        ("offline_idle_timeout_ms", "int"),
        ("online_cloud_timeout_ms", "int"),
        ("notify_cloud_delay_ms", "int"),
        ("notify_default_delay_ms", "int"),
        ("push_chat_period_ms", "int"),
        ("push_chat_limit", "int"),
        ("edit_time_limit", "int"),
        ("revoke_time_limit", "int"),
        ("revoke_pm_time_limit", "int"),
        ("rating_e_decay", "int"),
        ("stickers_recent_limit", "int"),
        ("channels_read_media_period", "int"),
        ("tmp_sessions", "flags.0?int"),
        ("call_receive_timeout_ms", "int"),
        ("call_ring_timeout_ms", "int"),
        ("call_connect_timeout_ms", "int"),
        ("call_packet_timeout_ms", "int"),
        ("me_url_prefix", "string"),
        ("autoupdate_url_prefix", "flags.7?string"),
        ("gif_search_username", "flags.9?string"),
        ("venue_search_username", "flags.10?string"),
        ("img_search_username", "flags.11?string"),
        ("static_maps_provider", "flags.12?string"),
        ("caption_length_max", "int"),
        ("message_length_max", "int"),
        ("webfile_dc_id", "int"),
        ("suggested_lang_code", "flags.2?string"),
        ("lang_pack_version", "flags.2?int"),
        ("base_lang_pack_version", "flags.2?int"),
        ("reactions_default", "flags.15?Reaction"),
        ("autologin_token", "flags.16?string"),
    )

    date: int
    expires: int
    test_mode: bool
    this_dc: int
    dc_options: list[DcOption]
    dc_txt_domain_name: str
    chat_size_max: int
    megagroup_size_max: int
    forwarded_count_max: int
    online_update_period_ms: int
    offline_blur_timeout_ms: int
    offline_idle_timeout_ms: int
    online_cloud_timeout_ms: int
    notify_cloud_delay_ms: int
    notify_default_delay_ms: int
    push_chat_period_ms: int
    push_chat_limit: int
    edit_time_limit: int
    revoke_time_limit: int
    revoke_pm_time_limit: int
    rating_e_decay: int
    stickers_recent_limit: int
    channels_read_media_period: int
    call_receive_timeout_ms: int
    call_ring_timeout_ms: int
    call_connect_timeout_ms: int
    call_packet_timeout_ms: int
    me_url_prefix: str
    caption_length_max: int
    message_length_max: int
    webfile_dc_id: int
    flags: int = 0
    default_p2p_contacts: bool = False
    preload_featured_stickers: bool = False
    revoke_pm_inbox: bool = False
    blocked_mode: bool = False
    force_try_ipv6: bool = False
    tmp_sessions: int | None = None
    autoupdate_url_prefix: str | None = None
    gif_search_username: str | None = None
    venue_search_username: str | None = None
    img_search_username: str | None = None
    static_maps_provider: str | None = None
    suggested_lang_code: str | None = None
    lang_pack_version: int | None = None
    base_lang_pack_version: int | None = None
    reactions_default: Any | None = None
    autologin_token: str | None = None


@dataclass(slots=True)
class NearestDc(TLObject):
    TL_ID: ClassVar[int] = 0x8E1A1775
    TL_NAME: ClassVar[str] = "nearestDc"
    TL_TYPE: ClassVar[str] = "NearestDc"
    TL_PARAMS: ClassVar[TLParams] = (
        ("country", "string"),
        ("this_dc", "int"),
        ("nearest_dc", "int"),
    )

    country: str
    this_dc: int
    nearest_dc: int


@dataclass(slots=True)
class InputClientProxy(TLObject):
    TL_ID: ClassVar[int] = 0x75588B3F
    TL_NAME: ClassVar[str] = "inputClientProxy"
    TL_TYPE: ClassVar[str] = "InputClientProxy"
    TL_PARAMS: ClassVar[TLParams] = (
        ("address", "string"),
        ("port", "int"),
    )

    address: str
    port: int


@dataclass(slots=True)
class HelpGetConfig(TLRequest):
    TL_ID: ClassVar[int] = 0xC4F9186B
    TL_NAME: ClassVar[str] = "help.getConfig"
    TL_RESULT: ClassVar[str] = "Config"


@dataclass(slots=True)
class HelpGetNearestDc(TLRequest):
    TL_ID: ClassVar[int] = 0x1FB33026
    TL_NAME: ClassVar[str] = "help.getNearestDc"
    TL_RESULT: ClassVar[str] = "NearestDc"


@dataclass(slots=True)
class InitConnection(TLRequest):
    TL_ID: ClassVar[int] = 0xC1CD5EA9
    TL_NAME: ClassVar[str] = "initConnection"
    TL_RESULT: ClassVar[str] = "X"
    TL_PARAMS: ClassVar[TLParams] = (
        ("flags", "#"),
        ("api_id", "int"),
        ("device_model", "string"),
        ("system_version", "string"),
        ("app_version", "string"),
        ("system_lang_code", "string"),
        ("lang_pack", "string"),
        ("lang_code", "string"),
        ("proxy", "flags.0?InputClientProxy"),
        ("query", "!X"),
    )

    api_id: int
    device_model: str
    system_version: str
    app_version: str
    system_lang_code: str
    lang_pack: str
    lang_code: str
    query: Any
    flags: int = 0
    proxy: InputClientProxy | None = None


@dataclass(slots=True)
class InvokeWithLayer(TLRequest):
    TL_ID: ClassVar[int] = 0xDA9B0D0D
    TL_NAME: ClassVar[str] = "invokeWithLayer"
    TL_RESULT: ClassVar[str] = "X"
    TL_PARAMS: ClassVar[TLParams] = (
        ("layer", "int"),
        ("query", "!X"),
    )

    layer: int
    query: Any


ALL: tuple[type, ...] = (
    DcOption,
    ReactionEmpty,
    ReactionEmoji,
    ReactionCustomEmoji,
    Config,
    NearestDc,
    InputClientProxy,
    HelpGetConfig,
    HelpGetNearestDc,
    InitConnection,
    InvokeWithLayer,
)
