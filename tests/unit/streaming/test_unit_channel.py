# tests/unit/streaming/test_unit_channel.py — v1
"""Tests for streaming/channel.py — queue channel and SSE response channel."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from storyloom.streaming.channel import (
    SSE_HEADERS,
    ChannelClosedError,
    QueueEventChannel,
    ResponseEventChannel,
)
from storyloom.streaming.events import StreamEvent


class TestQueueEventChannel:
    @pytest.mark.asyncio
    async def test_delivers_in_order_until_closed(self):
        channel = QueueEventChannel()
        await channel.send(StreamEvent.start())
        await channel.send(StreamEvent.chunk("a"))
        await channel.close()
        received = [event async for event in channel]
        assert [e.type.value for e in received] == ["start", "content-chunk"]
        assert channel.closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        channel = QueueEventChannel()
        await channel.close()
        await channel.close()
        assert [event async for event in channel] == []

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        channel = QueueEventChannel()
        await channel.close()
        with pytest.raises(ChannelClosedError):
            await channel.send(StreamEvent.chunk("a"))

    @pytest.mark.asyncio
    async def test_send_after_disconnect_raises(self):
        channel = QueueEventChannel()
        channel.disconnect()
        assert channel.disconnected
        with pytest.raises(ChannelClosedError) as exc_info:
            await channel.send(StreamEvent.chunk("a"))
        assert exc_info.value.code == "CHANNEL_CLOSED"
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_wait_disconnected(self):
        channel = QueueEventChannel()
        waiter = asyncio.ensure_future(channel.wait_disconnected())
        await asyncio.sleep(0)
        assert not waiter.done()
        channel.disconnect()
        await asyncio.wait_for(waiter, timeout=1)


def _request(closing: bool = False, transport: bool = True) -> MagicMock:
    request = MagicMock()
    if transport:
        request.transport.is_closing.return_value = closing
    else:
        request.transport = None
    return request


class TestResponseEventChannel:
    @pytest.mark.asyncio
    async def test_send_writes_sse_frame(self):
        response = MagicMock()
        response.write = AsyncMock()
        channel = ResponseEventChannel(_request(), response)
        await channel.send(StreamEvent.chunk("风"))
        raw = response.write.await_args.args[0]
        text = raw.decode("utf-8")
        assert text.startswith("data: ") and text.endswith("\n\n")
        assert json.loads(text[6:])["data"] == {"content": "风"}

    @pytest.mark.asyncio
    async def test_reset_during_write_marks_disconnected(self):
        response = MagicMock()
        response.write = AsyncMock(side_effect=ConnectionResetError())
        response.write_eof = AsyncMock()
        channel = ResponseEventChannel(_request(), response)
        with pytest.raises(ChannelClosedError):
            await channel.send(StreamEvent.chunk("a"))
        await asyncio.wait_for(channel.wait_disconnected(), timeout=1)
        await channel.close()
        response.write_eof.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_writes_eof_once(self):
        response = MagicMock()
        response.write_eof = AsyncMock()
        channel = ResponseEventChannel(_request(), response)
        await channel.close()
        await channel.close()
        response.write_eof.assert_awaited_once()
        assert channel.closed

    @pytest.mark.asyncio
    async def test_closing_transport_detected(self):
        channel = ResponseEventChannel(_request(closing=True), MagicMock(), poll_interval_s=0.01)
        await asyncio.wait_for(channel.wait_disconnected(), timeout=1)
        with pytest.raises(ChannelClosedError):
            await channel.send(StreamEvent.chunk("a"))

    @pytest.mark.asyncio
    async def test_missing_transport_detected(self):
        channel = ResponseEventChannel(_request(transport=False), MagicMock(), poll_interval_s=0.01)
        await asyncio.wait_for(channel.wait_disconnected(), timeout=1)

    @pytest.mark.asyncio
    async def test_open_prepares_stream_response(self, monkeypatch):
        prepared = {}

        class _FakeResponse:
            def __init__(self, status, headers):
                prepared["status"] = status
                prepared["headers"] = headers

            async def prepare(self, request):
                prepared["request"] = request

        monkeypatch.setattr("storyloom.streaming.channel.web.StreamResponse", _FakeResponse)
        request = _request()
        channel = await ResponseEventChannel.open(request)
        assert prepared == {"status": 200, "headers": SSE_HEADERS, "request": request}
        assert isinstance(channel.response, _FakeResponse)
