"""
interactive-bridge server application.

Entry point: python -m interactive_bridge.server

Lifecycle:
  1. Start — create the shared document, bind the WebSocket port
  2. Run   — accept plugin connections, dispatch their frames
  3. Stop  — tear down every plugin connection, close the socket

Each plugin connection gets its own asyncio task running the
connection loop, its own PluginConnection (requester id, interactive
frame, transport) and its own Router. The DocumentController and the
ConnectionManager are shared.

Configuration via environment variables:

    INTERACTIVE_BRIDGE_HOST        Bind host (default: 127.0.0.1)
    INTERACTIVE_BRIDGE_PORT        Bind port (default: 9997)
    INTERACTIVE_BRIDGE_LOG_LEVEL   Logging level (default: INFO)
    INTERACTIVE_BRIDGE_STANDALONE  1/true enables standalone undo mode
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
from typing import Optional

import websockets
from websockets.asyncio.server import ServerConnection, serve

from interactive_bridge import __version__
from interactive_bridge.document.graph import DocumentController
from interactive_bridge.server.connections import ConnectionManager, PluginConnection
from interactive_bridge.server.protocol import (
    ErrorCode, Message, MsgType, error, welcome,
)
from interactive_bridge.server.transport import WebSocketTransport

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Application
# ─────────────────────────────────────────────────────────────

class BridgeServer:
    """The interactive-bridge WebSocket server.

    Holds:
        document     — DocumentController shared by every plugin
        connections  — ConnectionManager (who is connected)
    """

    VERSION = __version__

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9997,
        document: Optional[DocumentController] = None,
        standalone_mode: bool = False,
    ):
        self.host = host
        self.port = port
        self.document    = document or DocumentController(standalone_mode=standalone_mode)
        self.connections = ConnectionManager()
        self._server     = None
        self._shutdown   = asyncio.Event()

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        """Bind the socket."""
        logger.info(f"interactive-bridge server v{self.VERSION} starting...")
        self._server = await serve(
            self._connection_handler,
            self.host,
            self.port,
            ping_interval=30,
            ping_timeout=10,
            max_size=10 * 1024 * 1024,
        )
        if self.port == 0:
            self.port = self._server.sockets[0].getsockname()[1]
        logger.info(f"Listening on ws://{self.host}:{self.port}")

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    async def run_forever(self) -> None:
        """Run until a shutdown signal is received."""
        await self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._request_shutdown)

        logger.info("Server ready. Press Ctrl+C to stop.")
        await self._shutdown.wait()
        await self.stop()

    def _request_shutdown(self) -> None:
        logger.info("Shutdown signal received.")
        self._shutdown.set()

    async def stop(self) -> None:
        """Graceful shutdown — drop every plugin, then close the socket."""
        logger.info("Shutting down...")
        if self.connections.count > 0:
            logger.info(f"Closing {self.connections.count} active connections...")
            for connection in self.connections.all_connections():
                self.connections.unregister(connection.id)

        if self._server:
            self._server.close()
            await self._server.wait_closed()
        logger.info("Server stopped.")

    # ── Connection handler ────────────────────────────────────

    async def _connection_handler(self, ws: ServerConnection) -> None:
        """Manage one plugin from connect to disconnect.

          1. Wait for the hello frame
          2. Build and register the PluginConnection
          3. Run the message loop until disconnect
          4. Tear down on exit
        """
        connection = None
        try:
            connection = await self._handshake(ws)
            if connection is None:
                return
            await self._message_loop(ws, connection)
        except websockets.exceptions.ConnectionClosed:
            pass
        except Exception as e:
            logger.exception(f"Unexpected error in connection handler: {e}")
        finally:
            if connection is not None:
                self.connections.unregister(connection.id)
                connection.frame.destroy()

    async def _handshake(self, ws: ServerConnection) -> Optional[PluginConnection]:
        """Wait for hello; return the registered PluginConnection or None."""
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=15.0)
        except asyncio.TimeoutError:
            logger.warning(f"Connection from {ws.remote_address} timed out waiting for hello")
            await ws.close()
            return None

        try:
            msg = Message.parse(raw)
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning(f"Malformed hello message: {e}")
            await ws.close()
            return None

        if msg.type != MsgType.HELLO:
            logger.warning(f"Expected hello, got {msg.type!r}")
            err = error(msg.msg_id, ErrorCode.INVALID, "First message must be hello")
            await ws.send(err.serialize())
            await ws.close()
            return None

        title = msg.get("title")
        frame = self.document.create_interactive_frame(title=title)
        connection = PluginConnection(
            document=self.document,
            transport=WebSocketTransport(ws),
            frame=frame,
            client_name=msg.get("client_name") or "unknown",
        )
        self.connections.register(connection)

        reply = welcome(
            session_id=connection.id,
            request_id=msg.msg_id,
            server_version=self.VERSION,
            frame={"id": frame.id, "name": frame.name},
        )
        await ws.send(reply.serialize())
        return connection

    async def _message_loop(self, ws: ServerConnection, connection: PluginConnection) -> None:
        """Receive and dispatch frames until the connection closes."""
        transport = connection.transport
        async for raw in ws:
            try:
                msg = Message.parse(raw)
            except (ValueError, json.JSONDecodeError) as e:
                err = error(None, ErrorCode.INVALID, f"Malformed message: {e}")
                await ws.send(err.serialize())
                continue

            if msg.type == MsgType.CALL:
                connection.do_command(
                    msg.body,
                    lambda response, rid=msg.msg_id: transport.reply(rid, response),
                )
            elif msg.type == MsgType.REPLY:
                transport.handle_reply(msg)
            elif msg.type == MsgType.BYE:
                await transport.flush()
                await ws.close()
                break
            else:
                err = error(msg.msg_id, ErrorCode.UNKNOWN_TYPE,
                            f"Unknown frame type: {msg.type!r}")
                await ws.send(err.serialize())


# ─────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────

def main() -> None:
    """Entry point: python -m interactive_bridge.server"""
    log_level = os.environ.get("INTERACTIVE_BRIDGE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )

    host = os.environ.get("INTERACTIVE_BRIDGE_HOST", "127.0.0.1")
    port = int(os.environ.get("INTERACTIVE_BRIDGE_PORT", "9997"))
    standalone = os.environ.get("INTERACTIVE_BRIDGE_STANDALONE", "").lower() in ("1", "true", "yes")

    server = BridgeServer(host=host, port=port, standalone_mode=standalone)

    asyncio.run(server.run_forever())


if __name__ == "__main__":
    main()
