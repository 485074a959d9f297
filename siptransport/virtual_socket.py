"""Per-dialog sockets multiplexed over one shared SIP socket."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Hashable

log = logging.getLogger(__name__)

CHANNEL_CAPACITY = 1000

Address = tuple[str, int]


@dataclass
class VirtualSocketContext:
    """What is known about the remote side of a virtual socket."""

    remote_addr: Address
    username: str | None = None


class VirtualSocketError(Exception):
    """Base class of virtual socket errors."""


class ChannelFullError(VirtualSocketError):
    """The channel holds as many messages as it can."""


class ChannelClosedError(VirtualSocketError):
    """The other end of the channel is gone."""


class _Channel:
    """A bounded single-consumer queue that can be closed."""

    def __init__(self, capacity: int) -> None:
        self._items: Deque[Any] = deque()
        self._capacity = capacity
        self._closed = False
        self._ready = asyncio.Event()

    def try_send(self, item: Any) -> None:
        if self._closed:
            raise ChannelClosedError("channel is closed")
        if len(self._items) >= self._capacity:
            raise ChannelFullError("channel is full")
        self._items.append(item)
        self._ready.set()

    async def recv(self) -> Any:
        while True:
            if self._items:
                return self._items.popleft()
            if self._closed:
                raise ChannelClosedError("channel is closed")
            self._ready.clear()
            await self._ready.wait()

    def close(self) -> None:
        self._closed = True
        self._ready.set()


class VirtualSocket:
    """The end of one dialog: sends through the plane and receives what it forwards."""

    def __init__(self, id: Hashable, main_tx: _Channel, rx: _Channel, ctx: VirtualSocketContext) -> None:
        self.id = id
        self._main_tx = main_tx
        self._rx = rx
        self._closed = False
        self.ctx = ctx

    @property
    def closed(self) -> bool:
        return self._closed

    def send_to(self, dest: Address | None, msg: Any) -> None:
        """Queue ``msg`` for ``dest``, or for the dialog's address when None."""
        try:
            self._main_tx.try_send((self.id, (dest, msg)))
        except VirtualSocketError as exc:
            raise ChannelFullError(str(exc)) from exc

    async def recv(self) -> Any:
        return await self._rx.recv()

    async def close(self) -> None:
        self._closed = True
        try:
            self._main_tx.try_send((self.id, None))
        except VirtualSocketError as exc:
            log.error("virtual socket %s close error: %s", self.id, exc)

    async def __aenter__(self) -> VirtualSocket:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if not self._closed:
            await self.close()

    def __del__(self) -> None:
        if getattr(self, "_closed", True):
            return
        log.error("virtual socket %s dropped without close", self.id)
        try:
            self._main_tx.try_send((self.id, None))
        except Exception:
            log.error("virtual socket %s close error", self.id)


class VirtualSocketPlane:
    """Creates virtual sockets and moves messages between them and the main socket."""

    def __init__(self) -> None:
        self._sockets: dict[Hashable, _Channel] = {}
        self._main = _Channel(CHANNEL_CAPACITY)

    def new_socket(self, id: Hashable, ctx: VirtualSocketContext) -> VirtualSocket:
        log.info("create socket for %s", id)
        rx = _Channel(CHANNEL_CAPACITY)
        self._sockets[id] = rx
        return VirtualSocket(id, self._main, rx, ctx)

    def forward(self, id: Hashable, msg: Any) -> bool:
        """Hand ``msg`` to the socket ``id``; False when it is unknown or full."""
        channel = self._sockets.get(id)
        if channel is None:
            return False
        try:
            channel.try_send(msg)
        except VirtualSocketError:
            return False
        return True

    async def recv(self) -> tuple[Hashable, tuple[Address | None, Any] | None] | None:
        """Next outgoing message as (id, (dest, msg)), or (id, None) for a close."""
        try:
            return await self._main.recv()
        except ChannelClosedError:
            return None

    def close_socket(self, id: Hashable) -> None:
        log.info("close socket %s", id)
        channel = self._sockets.pop(id, None)
        if channel is not None:
            channel.close()