# src/streaming/channel.py — v1
"""Push channels carrying stream events to one consumer.

QueueEventChannel serves in-process consumers (CLI, tests).
ResponseEventChannel writes server-sent-event frames to an aiohttp
``StreamResponse``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from aiohttp import web

from storyloom.core.errors import StoryloomError
from storyloom.streaming.events import StreamEvent

logger = logging.getLogger(__name__)

SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


class ChannelClosedError(StoryloomError):
    """The consumer went away; the event could not be delivered."""

    code = "CHANNEL_CLOSED"


class BaseEventChannel(ABC):
    """Abstract ordered event sink."""

    @abstractmethod
    async def send(self, event: StreamEvent) -> None:
        """Deliver one event.

        Raises:
            ChannelClosedError: If the consumer has disconnected.
        """

    @abstractmethod
    async def close(self) -> None:
        """Finish the stream. Safe to call more than once."""

    @abstractmethod
    async def wait_disconnected(self) -> None:
        """Return once the consumer has disconnected."""

    @property
    @abstractmethod
    def closed(self) -> bool: ...


class QueueEventChannel(BaseEventChannel):
    """In-process channel backed by an ``asyncio.Queue``.

    Iterate the channel to consume events until it is closed. ``disconnect``
    simulates the consumer going away.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        self._disconnected = asyncio.Event()
        self._closed = False
        self.sent: list[StreamEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def disconnected(self) -> bool:
        return self._disconnected.is_set()

    async def send(self, event: StreamEvent) -> None:
        if self._disconnected.is_set() or self._closed:
            raise ChannelClosedError("consumer is no longer listening")
        self.sent.append(event)
        await self._queue.put(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(None)

    def disconnect(self) -> None:
        self._disconnected.set()

    async def wait_disconnected(self) -> None:
        await self._disconnected.wait()

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class ResponseEventChannel(BaseEventChannel):
    """Server-sent-event channel over an aiohttp ``StreamResponse``.

    Use ``open`` to prepare the response for a request. A client disconnect
    is detected by a failed write or by the request transport closing.
    """

    def __init__(
        self,
        request: web.Request,
        response: web.StreamResponse,
        poll_interval_s: float = 0.5,
    ) -> None:
        self._request = request
        self._response = response
        self._poll_interval_s = poll_interval_s
        self._disconnected = asyncio.Event()
        self._closed = False

    @classmethod
    async def open(cls, request: web.Request, poll_interval_s: float = 0.5) -> ResponseEventChannel:
        response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        await response.prepare(request)
        return cls(request, response, poll_interval_s)

    @property
    def response(self) -> web.StreamResponse:
        return self._response

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: StreamEvent) -> None:
        if self._disconnected.is_set() or self._closed:
            raise ChannelClosedError("client is no longer connected")
        try:
            await self._response.write(event.to_frame().encode("utf-8"))
        except ConnectionResetError as exc:
            logger.info("SSE client disconnected during write")
            self._disconnected.set()
            raise ChannelClosedError("client disconnected") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._disconnected.is_set():
            return
        try:
            await self._response.write_eof()
        except ConnectionResetError:
            self._disconnected.set()

    def _transport_gone(self) -> bool:
        transport = self._request.transport
        return transport is None or transport.is_closing()

    async def wait_disconnected(self) -> None:
        while not self._disconnected.is_set():
            if self._transport_gone():
                logger.info("SSE client transport closed")
                self._disconnected.set()
                break
            try:
                await asyncio.wait_for(self._disconnected.wait(), timeout=self._poll_interval_s)
            except asyncio.TimeoutError:
                continue
