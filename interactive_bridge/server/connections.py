"""
interactive-bridge plugin connections.

A PluginConnection is the host side of one embedded plugin: its
requester identity, its interactive frame, its transport, and its
subscriptions to the document's mutation feeds.

Lifecycle:

    created     subscribe to every data context's change feed and to
                the document's "contexts added/removed" signal
    connected   entered on the first command; never reverts
    resync      on the contexts signal, drop every context subscription,
                subscribe to the current list again, and tell the plugin
                with a documentChangeNotice
    teardown    disconnect the transport, cancel every subscription

The ConnectionManager tracks every live PluginConnection for the server.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any, Callable, Optional

from interactive_bridge.server.notifications import ChangeNotifier
from interactive_bridge.server.protocol import (
    DOCUMENT_CHANGE_NOTICE, INTERACTIVE_STATE, command, notify,
)
from interactive_bridge.server.router import Router

if TYPE_CHECKING:
    from interactive_bridge.document.context import Subscription
    from interactive_bridge.document.entities import InteractiveFrame
    from interactive_bridge.document.graph import DocumentController
    from interactive_bridge.server.transport import Transport

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# One plugin
# ─────────────────────────────────────────────────────────────

class PluginConnection:
    """Host-side state for one connected plugin.

    id         — requester identity stamped on every change it makes
    document   — the shared DocumentController
    frame      — the plugin's own InteractiveFrame component
    transport  — where host-initiated calls go
    connected  — False until the first command arrives
    """

    def __init__(
        self,
        document: "DocumentController",
        transport: "Transport",
        frame: Optional["InteractiveFrame"] = None,
        id: Optional[str] = None,
        client_name: str = "unknown",
    ):
        self.id          = id or f"plugin-{uuid.uuid4().hex[:8]}"
        self.client_name = client_name
        self.document    = document
        self.transport   = transport
        self.frame       = frame or document.create_interactive_frame()
        self.connected   = False
        self.closed      = False

        self.notifier = ChangeNotifier(self)
        self.router   = Router(self)

        self._context_subs: list["Subscription"] = []
        self._contexts_sub: Optional["Subscription"] = None
        self._subscribe_all()
        self._contexts_sub = document.observe_contexts(self._on_contexts_changed)

    # ── Commands ──────────────────────────────────────────────

    def do_command(self, message: Any, callback: Optional[Callable[[Any], None]] = None) -> Any:
        """Execute inbound command(s); see Router.do_command."""
        return self.router.do_command(message, callback)

    # ── Outbound ──────────────────────────────────────────────

    def send_message(self, message: Any, callback: Optional[Callable[[Any], None]] = None) -> None:
        """Fire a host-initiated call at the plugin."""
        if self.closed:
            logger.debug(f"Not sending to closed connection {self.id}")
            return
        self.transport.call(message, callback)

    def request_interactive_state(self, callback: Callable[[Any], None]) -> None:
        """Ask the plugin for the state it wants saved with the document."""
        def received(response: Any) -> None:
            if isinstance(response, dict) and response.get("success"):
                state = response.get("values")
                self.frame.model.saved_state = state
                callback(state)
            else:
                logger.info(f"No interactive state from {self.id}: {response!r:.200}")
                callback(None)

        self.send_message(command("get", INTERACTIVE_STATE), received)

    # ── Subscriptions ─────────────────────────────────────────

    def _subscribe_all(self) -> None:
        for context in self.document.contexts:
            self._context_subs.append(context.subscribe(self.notifier))

    def _unsubscribe_all(self) -> None:
        for sub in self._context_subs:
            sub.cancel()
        self._context_subs = []

    def _on_contexts_changed(self, document: "DocumentController") -> None:
        self._unsubscribe_all()
        self._subscribe_all()
        logger.debug(f"{self.id} resubscribed to {len(self._context_subs)} context(s)")
        self.send_message(
            notify(DOCUMENT_CHANGE_NOTICE, {"operation": "dataContextCountChanged"}),
            lambda response: logger.debug(f"documentChangeNotice reply: {response!r:.200}"),
        )

    @property
    def subscription_count(self) -> int:
        return len(self._context_subs)

    # ── Teardown ──────────────────────────────────────────────

    def destroy(self) -> None:
        """Disconnect and stop listening. Safe to call more than once."""
        if self.closed:
            return
        self.transport.disconnect()
        self.closed = True
        self._unsubscribe_all()
        if self._contexts_sub is not None:
            self._contexts_sub.cancel()
            self._contexts_sub = None

    def __repr__(self) -> str:
        return f"PluginConnection(id={self.id!r}, client={self.client_name!r})"


# ─────────────────────────────────────────────────────────────
# Connection Manager
# ─────────────────────────────────────────────────────────────

class ConnectionManager:
    """Tracks every live PluginConnection.

    Designed for asyncio: all methods are called from the server's
    event loop. No locks needed.
    """

    def __init__(self):
        # connection id → PluginConnection
        self._connections: dict[str, PluginConnection] = {}

    def register(self, connection: PluginConnection) -> PluginConnection:
        self._connections[connection.id] = connection
        logger.info(f"Plugin connected: {connection.client_name!r} as {connection.id}")
        return connection

    def unregister(self, connection_id: str) -> Optional[PluginConnection]:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.destroy()
            logger.info(f"Plugin disconnected: {connection.client_name!r} ({connection_id})")
        return connection

    def get(self, connection_id: str) -> Optional[PluginConnection]:
        return self._connections.get(connection_id)

    def all_connections(self) -> list[PluginConnection]:
        return list(self._connections.values())

    @property
    def count(self) -> int:
        return len(self._connections)

    def status(self) -> dict:
        """Summary of current connection state."""
        return {
            "total_connections": self.count,
            "connections": [
                {
                    "id":          c.id,
                    "client_name": c.client_name,
                    "connected":   c.connected,
                    "frame":       c.frame.name,
                    "context":     c.frame.context.name if c.frame.context else None,
                }
                for c in self._connections.values()
            ],
        }
