from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

TLParams = tuple[tuple[str, str], ...]


@dataclass(slots=True)
class TLObject:
    """
    Base class for TL constructors.

    Subclasses set `TL_ID` (unsigned 32-bit constructor id), `TL_NAME`, `TL_TYPE`
    (the boxed type the constructor belongs to) and `TL_PARAMS`, the ordered
    `(field, type expression)` pairs the codec walks on encode and decode.
    """

    TL_ID: ClassVar[int]
    TL_NAME: ClassVar[str]
    TL_TYPE: ClassVar[str]
    TL_PARAMS: ClassVar[TLParams] = ()


@dataclass(slots=True)
class TLRequest:
    """
    Base class for TL methods (requests).

    `TL_RESULT` names the boxed type the server answers with.
    """

    TL_ID: ClassVar[int]
    TL_NAME: ClassVar[str]
    TL_RESULT: ClassVar[str]
    TL_PARAMS: ClassVar[TLParams] = ()
