"""
interactive-bridge — resource protocol handler between a sandboxed
plugin and a host application's live document graph.

    from interactive_bridge.document import DocumentController
    from interactive_bridge.server.connections import PluginConnection
"""

__version__ = "0.1.0"
