"""
Shared fixtures: a fresh document, a recording transport, and a plugin
connection wired to both.
"""

from __future__ import annotations

import pytest

from interactive_bridge.document import DocumentController
from interactive_bridge.server.connections import PluginConnection
from interactive_bridge.server.transport import Transport


class FakeTransport(Transport):
    """Records host-initiated calls instead of sending them."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.disconnected = False

    def call(self, message, callback=None):
        self.calls.append((message, callback))

    def disconnect(self):
        self.disconnected = True

    def sent(self, resource_prefix: str = "") -> list[dict]:
        return [m for m, _ in self.calls
                if isinstance(m, dict) and m.get("resource", "").startswith(resource_prefix)]

    def reply_all(self, response) -> None:
        """Answer every recorded call that asked for a reply."""
        for _, callback in self.calls:
            if callback is not None:
                callback(response)

    def clear(self) -> None:
        self.calls.clear()


MAMMALS = {
    "name":  "Mammals",
    "title": "Mammal Data",
    "collections": [
        {"name": "Diets", "attrs": [{"name": "Diet"}]},
        {"name": "Species", "parent": "Diets",
         "attrs": [{"name": "Name"}, {"name": "Mass"}]},
    ],
}


@pytest.fixture
def document():
    return DocumentController()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def connection(document, transport):
    conn = PluginConnection(document, transport, id="plugin-A")
    yield conn
    conn.destroy()


@pytest.fixture
def mammals(connection):
    """Connection bound to a Mammals context with two diets and three species."""
    connection.do_command({"action": "create", "resource": "dataContext", "values": MAMMALS})
    connection.do_command({
        "action": "create", "resource": "item",
        "values": [
            {"Diet": "plants", "Name": "Elephant", "Mass": 5000},
            {"Diet": "meat",   "Name": "Lion",     "Mass": 190},
            {"Diet": "plants", "Name": "Giraffe",  "Mass": 800},
        ],
    })
    connection.transport.clear()
    return connection
