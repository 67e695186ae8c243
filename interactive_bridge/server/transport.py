"""
interactive-bridge transports.

The handler core is synchronous; the only places it hands work to the
event loop are the two transport operations:

    transport.call(message, callback=None)   fire a call at the plugin
    transport.disconnect()                   close the channel

A call never blocks the caller. When the plugin replies, the optional
callback receives the reply body; it is used for logging and
error-surfacing only. A lost reply never invokes its callback.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import websockets

from interactive_bridge.server.protocol import Message, call as make_call, reply as make_reply

logger = logging.getLogger(__name__)

ReplyCallback = Callable[[Any], None]


class Transport:
    """Interface the handler core needs from the message channel."""

    def call(self, message: Any, callback: Optional[ReplyCallback] = None) -> None:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError


class WebSocketTransport(Transport):
    """Transport over one server-side WebSocket connection.

    Sends are scheduled as tasks on the loop that owns the connection, in
    call order. Replies from the plugin are routed back to the callback
    registered for their call id by ``handle_reply()``.
    """

    def __init__(self, ws, loop: asyncio.AbstractEventLoop | None = None):
        self.ws     = ws
        self.closed = False
        self._loop  = loop or asyncio.get_running_loop()
        # call id → reply callback
        self._pending: dict[str, ReplyCallback] = {}
        self._tasks:   set[asyncio.Task] = set()
        self._close_task: asyncio.Task | None = None

    # ── Outbound ──────────────────────────────────────────────

    def call(self, message: Any, callback: Optional[ReplyCallback] = None) -> None:
        if self.closed:
            logger.debug(f"Dropping call on closed transport: {message!r:.100}")
            return
        frame = make_call(message)
        if callback is not None:
            self._pending[frame.msg_id] = callback
        self._spawn(self._send(frame))

    def reply(self, request_id: str | None, message: Any) -> None:
        """Answer a call the plugin made."""
        if self.closed:
            return
        self._spawn(self._send(make_reply(request_id, message)))

    def send_frame(self, frame: Message) -> None:
        if not self.closed:
            self._spawn(self._send(frame))

    async def _send(self, frame: Message) -> bool:
        try:
            await self.ws.send(frame.serialize())
            return True
        except (websockets.exceptions.ConnectionClosed,
                websockets.exceptions.WebSocketException) as e:
            logger.debug(f"Send failed: {e}")
            return False

    def _spawn(self, coro) -> None:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ── Inbound ───────────────────────────────────────────────

    def handle_reply(self, frame: Message) -> None:
        """Route a reply frame to the callback waiting for it."""
        callback = self._pending.pop(frame.msg_id, None)
        if callback is None:
            logger.debug(f"Reply with no pending call: {frame.msg_id}")
            return
        try:
            callback(frame.body)
        except Exception as e:
            logger.exception(f"Error in reply callback: {e}")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ── Lifecycle ─────────────────────────────────────────────

    async def flush(self) -> None:
        """Wait for every scheduled send to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def disconnect(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._pending.clear()
        self._close_task = self._loop.create_task(self._close())

    async def _close(self) -> None:
        await self.flush()
        try:
            await self.ws.close()
        except websockets.exceptions.WebSocketException as e:
            logger.debug(f"Close failed: {e}")
