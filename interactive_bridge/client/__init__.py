"""
interactive-bridge client — the plugin side of the protocol.

    PluginClient  — async/await API for a plugin connected to a bridge server
"""

from interactive_bridge.client.async_client import (
    ClientError,
    ConnectionError,
    PluginClient,
    ServerError,
    TimeoutError,
)

__all__ = [
    "PluginClient",
    "ClientError", "ServerError", "ConnectionError", "TimeoutError",
]
