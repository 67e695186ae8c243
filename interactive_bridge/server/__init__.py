"""
interactive-bridge server — the host side of the plugin protocol.

    from interactive_bridge.server import BridgeServer, PluginConnection
"""

from interactive_bridge.server.app import BridgeServer, main
from interactive_bridge.server.connections import ConnectionManager, PluginConnection
from interactive_bridge.server.router import Router
from interactive_bridge.server.transport import Transport, WebSocketTransport

__all__ = [
    "BridgeServer", "main",
    "ConnectionManager", "PluginConnection",
    "Router",
    "Transport", "WebSocketTransport",
]
