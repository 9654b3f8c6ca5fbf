from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

Kind = Literal[
    "int",
    "long",
    "double",
    "int128",
    "int256",
    "bytes",
    "string",
    "Bool",
    "true",
    "flags",
    "vector",
    "object",
]

_PRIMITIVES: frozenset[str] = frozenset(
    {"int", "long", "double", "int128", "int256", "bytes", "string", "Bool", "true"}
)

# Type names which accept any boxed object (generic `{X:Type}` params and the like).
_ANY_OBJECT: frozenset[str] = frozenset({"!X", "X", "Object"})


class TypeExprError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class TLTypeExpr:
    """
    Parsed TL type expression of a single field.

    Examples:

    - `int`                -> kind="int"
    - `#`                  -> kind="flags"
    - `flags.2?string`     -> kind="string", flag=("flags", 2)
    - `Vector<long>`       -> kind="vector", inner=<long>
    - `Vector<DcOption>`   -> kind="vector", inner=<object DcOption>
    - `!X`                 -> kind="object", boxed_type=None (any object)
    """

    raw: str
    kind: Kind
    inner: TLTypeExpr | None = None
    boxed_type: str | None = None
    flag: tuple[str, int] | None = None

    @property
    def is_optional(self) -> bool:
        return self.flag is not None


@lru_cache(maxsize=None)
def parse_type_expr(raw: str) -> TLTypeExpr:
    expr = raw.strip()
    if not expr:
        raise TypeExprError("empty type expression")

    if expr == "#":
        return TLTypeExpr(raw=raw, kind="flags")

    if "?" in expr:
        cond, inner_raw = expr.split("?", 1)
        if "." not in cond:
            raise TypeExprError(f"invalid flag condition: {raw!r}")
        flags_name, bit_s = cond.split(".", 1)
        try:
            bit = int(bit_s)
        except ValueError as e:
            raise TypeExprError(f"invalid flag bit: {raw!r}") from e
        if not 0 <= bit < 32:
            raise TypeExprError(f"flag bit out of range: {raw!r}")
        inner = parse_type_expr(inner_raw)
        if inner.flag is not None or inner.kind == "flags":
            raise TypeExprError(f"nested flag condition: {raw!r}")
        return TLTypeExpr(
            raw=raw,
            kind=inner.kind,
            inner=inner.inner,
            boxed_type=inner.boxed_type,
            flag=(flags_name, bit),
        )

    if expr == "true":
        # Bare `true` is only meaningful behind a flag; it never occupies wire bytes.
        return TLTypeExpr(raw=raw, kind="true")

    if expr in _PRIMITIVES:
        return TLTypeExpr(raw=raw, kind=expr)  # type: ignore[arg-type]

    if expr.startswith("Vector<") and expr.endswith(">"):
        inner = parse_type_expr(expr[len("Vector<") : -1])
        if inner.flag is not None or inner.kind in ("flags", "true"):
            raise TypeExprError(f"invalid vector element type: {raw!r}")
        return TLTypeExpr(raw=raw, kind="vector", inner=inner)

    if expr in _ANY_OBJECT:
        return TLTypeExpr(raw=raw, kind="object")

    if not expr[0].isupper() and "." not in expr:
        raise TypeExprError(f"unknown bare type: {raw!r}")
    return TLTypeExpr(raw=raw, kind="object", boxed_type=expr)
