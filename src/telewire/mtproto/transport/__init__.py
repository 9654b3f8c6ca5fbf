from .base import (
    Connection,
    Endpoint,
    FrameIntegrityError,
    Framing,
    PacketTransport,
    TransportError,
    transport_error_code,
)
from .full import FullFraming
from .tcp import FramedTransport, TcpConnection

__all__ = [
    "Connection",
    "Endpoint",
    "FrameIntegrityError",
    "FramedTransport",
    "Framing",
    "FullFraming",
    "PacketTransport",
    "TcpConnection",
    "TransportError",
    "transport_error_code",
]
