from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], float]


class MsgIdGenerator:
    """
    Generate MTProto message ids.

    Properties required by the server:
    - strictly increasing per session
    - divisible by 4
    - roughly `unix_time * 2**32`, corrected by the known server clock offset
    """

    __slots__ = ("_clock", "_last", "time_offset")

    def __init__(self, *, time_offset: int = 0, clock: Clock = time.time) -> None:
        self._clock = clock
        self._last = 0
        self.time_offset = int(time_offset)

    def observe(self, remote_msg_id: int) -> None:
        """
        Observe a remote message id and ensure future ids are higher.

        Server ids may be 1/2/3 mod 4, so only the floored value is kept.
        """

        remote_floor = int(remote_msg_id) & ~3
        if remote_floor > self._last:
            self._last = remote_floor

    def sync_time(self, server_msg_id: int) -> int:
        """
        Re-derive the clock offset from a server message id.

        Used after bad_msg_notification 16/17 (msg_id too low/high). The
        monotonic floor is dropped so the next id follows the corrected clock.
        """

        self.time_offset = (int(server_msg_id) >> 32) - int(self._clock())
        self._last = 0
        return self.time_offset

    def next(self) -> int:
        now = self._clock() + self.time_offset
        msg_id = int(now * (2**32)) & ~3
        if msg_id <= self._last:
            msg_id = self._last + 4
        self._last = msg_id
        return msg_id
