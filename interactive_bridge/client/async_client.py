"""
interactive-bridge plugin client.

The plugin side of the protocol: connects to a bridge server, sends
commands, and answers the calls the host makes (change notices, undo
requests, state requests).

Design:

  - Pending requests tracked by frame id — send a call, await its reply
  - Host-initiated calls go to listeners registered per resource;
    a listener's return value becomes the reply
  - One asyncio event loop, everything runs there

Usage:

    async with PluginClient.connect("my_plugin", "ws://localhost:9997") as client:
        await client.request({"action": "update", "resource": "interactiveFrame",
                              "values": {"title": "My Plugin"}})

        @client.on("dataContextChangeNotice")
        def changed(message):
            print(message["resource"], message["values"])
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

import websockets
import websockets.asyncio.client as ws_asyncio
from websockets.protocol import State as WsState

from interactive_bridge.server.protocol import (
    Message, MsgType, bye, call as make_call, hello, reply as make_reply,
)

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────

class ClientError(Exception):
    """Base error for client operations."""


class ServerError(ClientError):
    """The server answered with an error frame."""
    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code    = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class ConnectionError(ClientError):
    """Could not connect or connection was lost."""


class TimeoutError(ClientError):
    """Request timed out waiting for a reply."""


# ─────────────────────────────────────────────────────────────
# Pending request tracking
# ─────────────────────────────────────────────────────────────

class PendingRequest:
    """One in-flight call waiting for its reply."""
    __slots__ = ("future",)

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.future: asyncio.Future = loop.create_future()

    def resolve(self, msg: Message) -> None:
        if not self.future.done():
            self.future.set_result(msg)

    def reject(self, exc: Exception) -> None:
        if not self.future.done():
            self.future.set_exception(exc)


# ─────────────────────────────────────────────────────────────
# Plugin client
# ─────────────────────────────────────────────────────────────

class PluginClient:
    """Async WebSocket client for a plugin talking to a bridge server."""

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        client_name: str,
        server_url: str = "ws://localhost:9997",
        title: str | None = None,
        request_timeout: float = DEFAULT_TIMEOUT,
    ):
        self.client_name     = client_name
        self.server_url      = server_url
        self.title           = title
        self.request_timeout = request_timeout

        self._ws = None
        self._session_id: str | None = None
        self._frame: dict = {}

        # frame id → PendingRequest
        self._pending: dict[str, PendingRequest] = {}
        # resource prefix → listeners
        self._listeners: dict[str, list[Callable]] = defaultdict(list)

        self._connected = asyncio.Event()
        self._stopped   = False
        self._recv_task: asyncio.Task | None = None

    # ── Connection lifecycle ──────────────────────────────────

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        client_name: str,
        server_url: str = "ws://localhost:9997",
        **kwargs,
    ) -> AsyncGenerator["PluginClient", None]:
        """Connect, yield the client, disconnect cleanly."""
        client = cls(client_name, server_url, **kwargs)
        await client.start()
        try:
            yield client
        finally:
            await client.stop()

    async def start(self) -> None:
        await self._connect()
        self._recv_task = asyncio.create_task(
            self._receive_loop(),
            name=f"interactive-client-recv-{self.client_name}",
        )

    async def stop(self) -> None:
        self._stopped = True

        if self._ws is not None and getattr(self._ws, "state", None) == WsState.OPEN:
            try:
                await self._ws.send(bye().serialize())
                await self._ws.close()
            except websockets.exceptions.WebSocketException as e:
                logger.debug(f"Close failed: {e}")

        if self._recv_task and not self._recv_task.done():
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass

        for pending in self._pending.values():
            pending.reject(ConnectionError("Client stopped"))
        self._pending.clear()

        logger.info(f"Client {self.client_name!r} disconnected.")

    @property
    def is_connected(self) -> bool:
        return (self._ws is not None
                and getattr(self._ws, "state", None) == WsState.OPEN
                and self._connected.is_set())

    @property
    def session_id(self) -> str | None:
        """The requester id the host assigned to this plugin."""
        return self._session_id

    @property
    def frame(self) -> dict:
        """Id and name of this plugin's interactive frame in the host."""
        return self._frame

    # ── Request/response ──────────────────────────────────────

    async def request(self, message: Any, timeout: float | None = None) -> Any:
        """Send a command (or list of commands) and await the result(s)."""
        if not self.is_connected:
            raise ConnectionError("Not connected")

        frame   = make_call(message)
        pending = PendingRequest(asyncio.get_running_loop())
        self._pending[frame.msg_id] = pending

        try:
            await self._ws.send(frame.serialize())
            reply = await asyncio.wait_for(
                pending.future,
                timeout=timeout or self.request_timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"No reply to {message!r:.100} after {timeout or self.request_timeout}s"
            )
        finally:
            self._pending.pop(frame.msg_id, None)

        if reply.type == MsgType.ERROR:
            raise ServerError(
                reply.get("code", "INTERNAL"),
                reply.get("message", "Unknown error"),
                reply.get("details"),
            )
        return reply.body

    # ── Host-initiated calls ──────────────────────────────────

    def on(self, resource: str) -> Callable:
        """Decorator to register a listener for host-initiated calls.

        The listener receives the command dict. Listeners match on
        resource prefix, so ``"dataContextChangeNotice"`` also receives
        ``"dataContextChangeNotice[Mammals]"``; ``"*"`` receives all.
        The first non-None return value becomes the reply; the default
        reply is ``{"success": True}``.
        """
        def decorator(fn: Callable) -> Callable:
            self._listeners[resource].append(fn)
            return fn
        return decorator

    def off(self, resource: str, fn: Callable) -> None:
        listeners = self._listeners.get(resource, [])
        if fn in listeners:
            listeners.remove(fn)

    def _targets(self, resource: str) -> list[Callable]:
        targets: list[Callable] = []
        for key, listeners in self._listeners.items():
            if key == "*" or resource.startswith(key):
                targets.extend(listeners)
        return targets

    async def _answer(self, message: Any) -> Any:
        resource = message.get("resource", "") if isinstance(message, dict) else ""
        response = None
        for fn in self._targets(resource or ""):
            try:
                result = fn(message)
                if asyncio.iscoroutine(result):
                    result = await result
            except Exception as e:
                logger.exception(f"Error in listener for {resource!r}: {e}")
                return {"success": False, "values": {"error": str(e)}}
            if response is None and result is not None:
                response = result
        return response if response is not None else {"success": True}

    # ── Internal ──────────────────────────────────────────────

    async def _connect(self) -> None:
        """Open the socket and complete the hello/welcome handshake."""
        self._connected.clear()
        try:
            ws = await ws_asyncio.connect(self.server_url)
        except OSError as e:
            raise ConnectionError(f"Could not connect to {self.server_url}: {e}") from e
        self._ws = ws

        await ws.send(hello(self.client_name, self.title).serialize())

        raw     = await asyncio.wait_for(ws.recv(), timeout=15.0)
        welcome = Message.parse(raw)
        if welcome.type != MsgType.WELCOME:
            raise ConnectionError(
                f"Expected welcome, got {welcome.type!r}: {welcome.get('message', '')}"
            )

        self._session_id = welcome.get("session_id")
        self._frame      = welcome.get("frame") or {}
        self._connected.set()
        logger.info(f"Connected to {self.server_url} as {self.client_name!r} "
                    f"({self._session_id})")

    async def _receive_loop(self) -> None:
        while not self._stopped:
            try:
                raw = await self._ws.recv()
            except websockets.exceptions.ConnectionClosed as e:
                self._connected.clear()
                if not self._stopped:
                    logger.warning(f"Connection closed: {e}")
                    for pending in self._pending.values():
                        pending.reject(ConnectionError("Connection closed"))
                break

            try:
                msg = Message.parse(raw)
            except ValueError as e:
                logger.warning(f"Failed to parse frame: {e} — raw: {raw!r:.100}")
                continue

            await self._handle_frame(msg)

    async def _handle_frame(self, msg: Message) -> None:
        if msg.type in (MsgType.REPLY, MsgType.ERROR):
            pending = self._pending.get(msg.msg_id) if msg.msg_id else None
            if pending is not None:
                pending.resolve(msg)
            elif msg.type == MsgType.ERROR:
                logger.warning(f"Server error: {msg.get('code')} {msg.get('message')}")
            else:
                logger.debug(f"Reply with no pending request: {msg.msg_id}")

        elif msg.type == MsgType.CALL:
            response = await self._answer(msg.body)
            await self._ws.send(make_reply(msg.msg_id, response).serialize())

        else:
            logger.debug(f"Unhandled frame type: {msg.type!r}")
