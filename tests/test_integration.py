"""
interactive-bridge integration tests.

Spins up a real BridgeServer on an ephemeral port over a fresh
document, connects PluginClient instances, and exercises the full
call/reply/notice cycle.

Run with: pytest tests/test_integration.py -v
"""

from __future__ import annotations

import asyncio
import json

import pytest
import pytest_asyncio
import websockets.asyncio.client as ws_asyncio

from interactive_bridge.client import PluginClient
from interactive_bridge.server.app import BridgeServer
from interactive_bridge.server.protocol import Message, MsgType, command, hello, notify


MAMMALS = {
    "name": "Mammals",
    "collections": [
        {"name": "Diets", "attrs": [{"name": "Diet"}]},
        {"name": "Species", "parent": "Diets", "attrs": [{"name": "Name"}]},
    ],
}


@pytest_asyncio.fixture
async def server():
    srv = BridgeServer(host="127.0.0.1", port=0)
    await srv.start()
    yield srv
    await srv.stop()


async def wait_for(predicate, timeout: float = 3.0) -> None:
    """Poll until predicate() is true."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.02)
    await asyncio.wait_for(_poll(), timeout=timeout)


# ─────────────────────────────────────────────────────────────
# Request / reply
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestPluginClient:

    async def test_connect_and_welcome(self, server):
        async with PluginClient.connect("zoo", server.url, title="Zoo") as client:
            assert client.is_connected
            assert client.session_id.startswith("plugin-")
            assert client.frame["name"]
            connection = server.connections.get(client.session_id)
            assert connection.frame.title == "Zoo"

    async def test_create_and_list(self, server):
        async with PluginClient.connect("zoo", server.url) as client:
            res = await client.request(command("create", "dataContext", MAMMALS))
            assert res["success"] is True
            res = await client.request(command("get", "dataContext[Mammals].collectionList"))
            assert [c["name"] for c in res["values"]] == ["Diets", "Species"]

    async def test_batch(self, server):
        async with PluginClient.connect("zoo", server.url) as client:
            results = await client.request([
                command("create", "dataContext", MAMMALS),
                command("get", "spaceship"),
                command("create", "item", [{"Diet": "meat", "Name": "Lion"}]),
                command("get", "collection[Species].caseCount"),
            ])
            assert [r["success"] for r in results] == [True, False, True, True]
            assert results[1]["values"]["error"] == "Unknown message type: spaceship"
            assert results[3]["values"] == 1

    async def test_disconnect_unregisters(self, server):
        async with PluginClient.connect("zoo", server.url) as client:
            session = client.session_id
            await wait_for(lambda: server.connections.count == 1)
        await wait_for(lambda: server.connections.get(session) is None)
        assert all(c.type != "GameView" for c in server.document.components)


# ─────────────────────────────────────────────────────────────
# Host-initiated calls
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestNotices:

    async def test_change_notice_reaches_other_plugin_only(self, server):
        notices: dict[str, list] = {"a": [], "b": []}
        got_b = asyncio.Event()

        async with PluginClient.connect("a", server.url) as a, \
                PluginClient.connect("b", server.url) as b:

            @a.on("dataContextChangeNotice")
            def on_a(message):
                notices["a"].append(message)

            @b.on("dataContextChangeNotice")
            def on_b(message):
                notices["b"].append(message)
                got_b.set()

            await a.request(command("create", "dataContext", MAMMALS))
            await b.request(command("get", "dataContextList"))
            await a.request(command("create", "dataContext[Mammals].item",
                                    [{"Diet": "plants", "Name": "Elephant"}]))

            await asyncio.wait_for(got_b.wait(), timeout=3.0)
            (message,) = notices["b"]
            assert message["resource"] == "dataContextChangeNotice[Mammals]"
            (event,) = message["values"]
            assert event["operation"] == "createCases"
            assert {c["values"].get("Name") for c in event["cases"]} >= {"Elephant"}
            await asyncio.sleep(0.1)
            assert notices["a"] == []

    async def test_document_change_notice(self, server):
        got = asyncio.Event()
        received = []

        async with PluginClient.connect("a", server.url) as a, \
                PluginClient.connect("b", server.url) as b:

            @b.on("documentChangeNotice")
            def on_doc(message):
                received.append(message["values"])
                got.set()

            await a.request(command("create", "dataContext", {"name": "Birds"}))
            await asyncio.wait_for(got.wait(), timeout=3.0)
            assert received[0] == {"operation": "dataContextCountChanged"}

    async def test_undo_delegated_to_plugin(self, server):
        asked = asyncio.Event()
        operations = []

        async with PluginClient.connect("game", server.url) as client:

            @client.on("undoChangeNotice")
            def on_undo(message):
                operations.append(message["values"]["operation"])
                asked.set()
                return {"success": True}

            await client.request(notify("undoChangeNotice", {
                "operation": "undoableActionPerformed", "logMessage": "moved",
            }))
            assert server.document.undo_history.can_undo
            server.document.undo_history.undo()
            await asyncio.wait_for(asked.wait(), timeout=3.0)
            assert operations == ["undoAction"]
            await asyncio.sleep(0.1)
            assert server.document.undo_history.last_error is None

    async def test_interactive_state_round_trip(self, server):
        async with PluginClient.connect("game", server.url) as client:

            @client.on("interactiveState")
            def on_state(message):
                return {"success": True, "values": {"score": 12}}

            connection = server.connections.get(client.session_id)
            future = asyncio.get_running_loop().create_future()
            connection.request_interactive_state(future.set_result)
            assert await asyncio.wait_for(future, timeout=3.0) == {"score": 12}


# ─────────────────────────────────────────────────────────────
# Frame-level errors
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestFrames:

    async def test_first_frame_must_be_hello(self, server):
        async with ws_asyncio.connect(server.url) as ws:
            await ws.send(json.dumps({"type": "call", "id": "1", "message": {}}))
            reply = Message.parse(await ws.recv())
            assert reply.type == MsgType.ERROR
            assert reply["code"] == "INVALID"

    async def test_malformed_frame_keeps_connection(self, server):
        async with ws_asyncio.connect(server.url) as ws:
            await ws.send(hello("raw").serialize())
            assert Message.parse(await ws.recv()).type == MsgType.WELCOME

            await ws.send("this is not json")
            reply = Message.parse(await ws.recv())
            assert reply.type == MsgType.ERROR
            assert reply["code"] == "INVALID"

            await ws.send(json.dumps({
                "type": "call", "id": "42",
                "message": {"action": "get", "resource": "interactiveFrame"},
            }))
            reply = Message.parse(await ws.recv())
            assert reply.type == MsgType.REPLY and reply.msg_id == "42"
            assert reply.body["success"] is True

    async def test_unknown_frame_type(self, server):
        async with ws_asyncio.connect(server.url) as ws:
            await ws.send(hello("raw").serialize())
            await ws.recv()
            await ws.send(json.dumps({"type": "shout", "id": "x1"}))
            reply = Message.parse(await ws.recv())
            assert reply.type == MsgType.ERROR
            assert reply.msg_id == "x1"
            assert reply["code"] == "UNKNOWN_TYPE"
