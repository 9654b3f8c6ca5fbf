from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .base import Connection, Endpoint, FrameIntegrityError, Framing, TransportError

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


@dataclass(slots=True)
class TcpConnection:
    connect_timeout: float = 10.0

    _reader: asyncio.StreamReader | None = None
    _writer: asyncio.StreamWriter | None = None

    async def connect(self, host: str, port: int) -> None:
        if self._writer is not None:
            return
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to connect to {host}:{port}") from e

    async def send_bytes(self, data: bytes) -> None:
        if self._writer is None:
            raise TransportError("Not connected.")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            raise TransportError("Write failed") from e

    async def recv_bytes(self, n: int) -> bytes:
        if self._reader is None:
            raise TransportError("Not connected.")
        try:
            return await self._reader.read(n)
        except OSError as e:
            raise TransportError("Read failed") from e

    async def close(self) -> None:
        if self._writer is None:
            return
        writer = self._writer
        self._writer = None
        self._reader = None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            logger.debug("Error while closing socket", exc_info=True)


@dataclass(slots=True)
class FramedTransport:
    """
    Packet transport: one MTProto packet per `send`/`recv`, framed on a byte stream.

    Any frame integrity failure closes the connection before the error propagates.
    """

    endpoint: Endpoint
    connection: Connection
    framing: Framing

    _rx_buf: bytearray = field(default_factory=bytearray)
    _connected: bool = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._connected:
            return
        await self.connection.connect(self.endpoint.host, self.endpoint.port)
        self.framing.reset()
        self._rx_buf.clear()
        self._connected = True
        logger.debug("Connected to %s", self.endpoint)

    async def close(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._rx_buf.clear()
        await self.connection.close()
        logger.debug("Closed connection to %s", self.endpoint)

    async def send(self, payload: bytes) -> None:
        if not self._connected:
            raise TransportError("Not connected.")
        await self.connection.send_bytes(self.framing.encode(payload))

    async def recv(self) -> bytes:
        if not self._connected:
            raise TransportError("Not connected.")
        while True:
            try:
                payload = self.framing.decode_from_buffer(self._rx_buf)
            except FrameIntegrityError:
                logger.warning("Frame integrity failure from %s; closing", self.endpoint)
                await self.close()
                raise
            if payload is not None:
                return payload
            chunk = await self.connection.recv_bytes(_READ_CHUNK)
            if not chunk:
                await self.close()
                raise TransportError("Connection closed.")
            self._rx_buf.extend(chunk)
