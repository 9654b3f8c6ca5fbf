from __future__ import annotations

import struct
import zlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .ast import TLTypeExpr, TypeExprError, parse_type_expr

if TYPE_CHECKING:
    from .registry import TypeRegistry

VECTOR_CONSTRUCTOR_ID = 0x1CB5C415
BOOL_TRUE_ID = 0x997275B5
BOOL_FALSE_ID = 0xBC799737

# MTProto wrappers which are not plain schema records: they embed raw
# messages (msg_container) or a compressed/opaque object (gzip_packed,
# rpc_result whose result type depends on the request).
RPC_RESULT_CONSTRUCTOR_ID = 0xF35C6D01
MSG_CONTAINER_CONSTRUCTOR_ID = 0x73F1F8DC
GZIP_PACKED_CONSTRUCTOR_ID = 0x3072CFA1

_MAX_VECTOR_LEN = 1 << 24
# Bounds for untrusted input: object nesting (rpc_result, gzip_packed and
# msg_container included) and the inflated size of one gzip_packed payload.
_MAX_DEPTH = 64
_MAX_UNPACKED = 16 * 1024 * 1024


class TLCodecError(Exception):
    """Malformed TL data (truncated stream, bad lengths, unexpected tags...)."""


class UnknownTypeError(TLCodecError):
    def __init__(self, tag: int) -> None:
        super().__init__(f"Unknown constructor id: 0x{tag:08x}")
        self.tag = tag


@dataclass(slots=True)
class RpcResult:
    req_msg_id: int
    result: Any


@dataclass(slots=True)
class ContainerMessage:
    msg_id: int
    seqno: int
    obj: Any


@dataclass(slots=True)
class MsgContainer:
    messages: list[ContainerMessage]


def _pad4(n: int) -> int:
    return (4 - (n % 4)) % 4


def _type_expr(raw: str) -> TLTypeExpr:
    try:
        return parse_type_expr(raw)
    except TypeExprError as e:
        raise TLCodecError(str(e)) from e


def _flag_is_set(flags_values: dict[str, int], flag: tuple[str, int]) -> bool:
    flags_name, bit = flag
    if flags_name not in flags_values:
        raise TLCodecError(f"flag condition references unknown flags field {flags_name!r}")
    return bool(flags_values[flags_name] & (1 << bit))


class TLWriter:
    __slots__ = ("_buf",)

    def __init__(self) -> None:
        self._buf = bytearray()

    def to_bytes(self) -> bytes:
        return bytes(self._buf)

    def write_int(self, value: int) -> None:
        try:
            self._buf += struct.pack("<i", value)
        except struct.error as e:
            raise TLCodecError(f"int out of range: {value!r}") from e

    def write_uint(self, value: int) -> None:
        try:
            self._buf += struct.pack("<I", value)
        except struct.error as e:
            raise TLCodecError(f"uint out of range: {value!r}") from e

    def write_long(self, value: int) -> None:
        try:
            self._buf += struct.pack("<q", value)
        except struct.error as e:
            raise TLCodecError(f"long out of range: {value!r}") from e

    def write_double(self, value: float) -> None:
        self._buf += struct.pack("<d", value)

    def write_raw(self, data: bytes) -> None:
        self._buf += data

    def write_bytes(self, data: bytes) -> None:
        ln = len(data)
        if ln < 254:
            self._buf.append(ln)
            self._buf += data
            self._buf += b"\x00" * _pad4(1 + ln)
            return
        if ln >= 1 << 24:
            raise TLCodecError("bytes value too long for TL encoding")

        self._buf.append(254)
        self._buf += ln.to_bytes(3, "little")
        self._buf += data
        self._buf += b"\x00" * _pad4(4 + ln)

    def write_string(self, value: str | bytes | bytearray) -> None:
        if isinstance(value, (bytes, bytearray)):
            self.write_bytes(bytes(value))
            return
        if isinstance(value, str):
            self.write_bytes(value.encode("utf-8", "surrogateescape"))
            return
        raise TLCodecError("string value must be str/bytes/bytearray")

    def write_object(self, obj: Any) -> None:
        if isinstance(obj, RpcResult):
            self.write_uint(RPC_RESULT_CONSTRUCTOR_ID)
            self.write_long(obj.req_msg_id)
            self.write_object(obj.result)
            return
        if isinstance(obj, MsgContainer):
            self._write_container(obj)
            return

        tl_id = getattr(obj, "TL_ID", None)
        if not isinstance(tl_id, int) or tl_id == 0:
            raise TLCodecError(f"Object has invalid TL_ID: {obj!r}")
        self.write_uint(tl_id)
        self._write_params(obj)

    def _write_container(self, container: MsgContainer) -> None:
        self.write_uint(MSG_CONTAINER_CONSTRUCTOR_ID)
        self.write_int(len(container.messages))
        for m in container.messages:
            body = dumps(m.obj)
            self.write_long(m.msg_id)
            self.write_int(m.seqno)
            self.write_int(len(body))
            self._buf += body

    def _write_params(self, obj: Any) -> None:
        params = [(field, _type_expr(raw)) for field, raw in getattr(obj, "TL_PARAMS", ())]

        # Flags words are derived from which optional fields are present.
        flags_values: dict[str, int] = {
            field: 0 for field, expr in params if expr.kind == "flags"
        }
        for field, expr in params:
            if expr.flag is None:
                continue
            value = getattr(obj, field, None)
            present = bool(value) if expr.kind == "true" else value is not None
            if present:
                flags_name, bit = expr.flag
                if flags_name not in flags_values:
                    raise TLCodecError(
                        f"{field}: flag condition references unknown flags field {flags_name!r}"
                    )
                flags_values[flags_name] |= 1 << bit

        for field, expr in params:
            if expr.kind == "flags":
                self.write_uint(flags_values[field])
                continue
            if expr.flag is not None:
                if expr.kind == "true" or not _flag_is_set(flags_values, expr.flag):
                    continue
            self.write_value(expr, getattr(obj, field))

    def write_value(self, type_expr: str | TLTypeExpr, value: Any) -> None:
        expr = _type_expr(type_expr) if isinstance(type_expr, str) else type_expr
        kind = expr.kind
        if kind == "int":
            self.write_int(int(value))
        elif kind == "long":
            self.write_long(int(value))
        elif kind == "double":
            self.write_double(float(value))
        elif kind in ("int128", "int256"):
            size = 16 if kind == "int128" else 32
            if isinstance(value, int):
                value = value.to_bytes(size, "little", signed=False)
            if not isinstance(value, (bytes, bytearray)) or len(value) != size:
                raise TLCodecError(f"{kind} must be {size} bytes")
            self._buf += bytes(value)
        elif kind == "string":
            self.write_string(value)
        elif kind == "bytes":
            if not isinstance(value, (bytes, bytearray)):
                raise TLCodecError("bytes value must be bytes/bytearray")
            self.write_bytes(bytes(value))
        elif kind == "Bool":
            self.write_uint(BOOL_TRUE_ID if value else BOOL_FALSE_ID)
        elif kind == "vector":
            assert expr.inner is not None
            if not isinstance(value, (list, tuple)):
                raise TLCodecError("Vector value must be a list")
            self.write_uint(VECTOR_CONSTRUCTOR_ID)
            self.write_int(len(value))
            for item in value:
                self.write_value(expr.inner, item)
        elif kind == "object":
            self.write_object(value)
        else:
            raise TLCodecError(f"Unsupported type expression: {expr.raw!r}")


class TLReader:
    __slots__ = ("_data", "_depth", "_pos", "_registry")

    def __init__(self, data: bytes, registry: TypeRegistry, *, depth: int = 0) -> None:
        self._data = data
        self._pos = 0
        self._registry = registry
        self._depth = depth

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read_raw(self, n: int) -> bytes:
        if n < 0:
            raise TLCodecError("negative read length")
        if self._pos + n > len(self._data):
            raise TLCodecError(
                f"Unexpected EOF (need {n} bytes at offset {self._pos}, have {self.remaining})"
            )
        out = self._data[self._pos : self._pos + n]
        self._pos += n
        return out

    def read_int(self) -> int:
        return int(struct.unpack("<i", self.read_raw(4))[0])

    def read_uint(self) -> int:
        return int(struct.unpack("<I", self.read_raw(4))[0])

    def read_long(self) -> int:
        return int(struct.unpack("<q", self.read_raw(8))[0])

    def read_double(self) -> float:
        return float(struct.unpack("<d", self.read_raw(8))[0])

    def read_bytes(self) -> bytes:
        first = self.read_raw(1)[0]
        if first < 254:
            ln = first
            header = 1
        elif first == 254:
            ln = int.from_bytes(self.read_raw(3), "little")
            header = 4
        else:
            raise TLCodecError("Invalid bytes length prefix 0xff")
        data = self.read_raw(ln)
        self.read_raw(_pad4(header + ln))
        return data

    def read_string(self) -> str:
        return self.read_bytes().decode("utf-8", "surrogateescape")

    def read_value(self, type_expr: str | TLTypeExpr) -> Any:
        expr = _type_expr(type_expr) if isinstance(type_expr, str) else type_expr
        kind = expr.kind
        if kind == "int":
            return self.read_int()
        if kind == "long":
            return self.read_long()
        if kind == "double":
            return self.read_double()
        if kind == "int128":
            return self.read_raw(16)
        if kind == "int256":
            return self.read_raw(32)
        if kind == "string":
            return self.read_string()
        if kind == "bytes":
            return self.read_bytes()
        if kind == "Bool":
            cid = self.read_uint()
            if cid == BOOL_TRUE_ID:
                return True
            if cid == BOOL_FALSE_ID:
                return False
            raise TLCodecError(f"Invalid Bool constructor id: 0x{cid:08x}")
        if kind == "vector":
            assert expr.inner is not None
            cid = self.read_uint()
            if cid != VECTOR_CONSTRUCTOR_ID:
                raise TLCodecError(f"Invalid vector constructor id: 0x{cid:08x}")
            count = self.read_int()
            if count < 0 or count > _MAX_VECTOR_LEN:
                raise TLCodecError(f"Invalid vector length: {count}")
            return [self.read_value(expr.inner) for _ in range(count)]
        if kind == "object":
            obj = self.read_object()
            if expr.boxed_type is not None:
                got = getattr(obj, "TL_TYPE", None)
                if got != expr.boxed_type:
                    raise TLCodecError(
                        f"Expected {expr.boxed_type}, got {type(obj).__name__} ({got})"
                    )
            return obj
        raise TLCodecError(f"Unsupported type expression: {expr.raw!r}")

    def read_object(self) -> Any:
        if self._depth >= _MAX_DEPTH:
            raise TLCodecError(f"TL objects nested deeper than {_MAX_DEPTH} levels")
        self._depth += 1
        try:
            return self._read_object()
        finally:
            self._depth -= 1

    def _read_object(self) -> Any:
        cid = self.read_uint()

        if cid == RPC_RESULT_CONSTRUCTOR_ID:
            req_msg_id = self.read_long()
            return RpcResult(req_msg_id=req_msg_id, result=self.read_object())

        if cid == MSG_CONTAINER_CONSTRUCTOR_ID:
            return self._read_container()

        if cid == GZIP_PACKED_CONSTRUCTOR_ID:
            unpacked = _gunzip(self.read_bytes())
            return TLReader(unpacked, self._registry, depth=self._depth).read_object()

        cls = self._registry.resolve(cid)
        params = [(field, _type_expr(raw)) for field, raw in getattr(cls, "TL_PARAMS", ())]
        kwargs: dict[str, Any] = {}
        flags_values: dict[str, int] = {}

        for field, expr in params:
            if expr.kind == "flags":
                flags_values[field] = self.read_uint()
                kwargs[field] = flags_values[field]
                continue
            if expr.flag is not None:
                is_set = _flag_is_set(flags_values, expr.flag)
                if expr.kind == "true":
                    kwargs[field] = is_set
                    continue
                if not is_set:
                    kwargs[field] = None
                    continue
            kwargs[field] = self.read_value(expr)

        return cls(**kwargs)

    def _read_container(self) -> MsgContainer:
        count = self.read_int()
        if count < 0:
            raise TLCodecError("Negative msg_container message count")
        messages: list[ContainerMessage] = []
        for _ in range(count):
            msg_id = self.read_long()
            seqno = self.read_int()
            ln = self.read_int()
            if ln < 0:
                raise TLCodecError("Negative msg_container message length")
            if ln > self.remaining:
                raise TLCodecError("msg_container message length exceeds payload")
            obj = TLReader(self.read_raw(ln), self._registry, depth=self._depth).read_object()
            messages.append(ContainerMessage(msg_id=msg_id, seqno=seqno, obj=obj))
        return MsgContainer(messages=messages)


def _gunzip(packed: bytes) -> bytes:
    inflater = zlib.decompressobj(wbits=16 + zlib.MAX_WBITS)
    try:
        unpacked = inflater.decompress(packed, _MAX_UNPACKED)
    except zlib.error as e:
        raise TLCodecError("Failed to decompress gzip_packed payload") from e
    if not inflater.eof:
        if inflater.unconsumed_tail or len(unpacked) >= _MAX_UNPACKED:
            raise TLCodecError(f"gzip_packed payload inflates beyond {_MAX_UNPACKED} bytes")
        raise TLCodecError("Truncated gzip_packed payload")
    return unpacked


def dumps(obj: Any) -> bytes:
    w = TLWriter()
    w.write_object(obj)
    return w.to_bytes()


def loads(data: bytes, registry: TypeRegistry) -> Any:
    """
    Decode one boxed object from `data`.

    Trailing bytes are ignored: several MTProto payloads (decrypted answers,
    RSA blocks) carry random padding after the object.
    """

    return TLReader(data, registry).read_object()
