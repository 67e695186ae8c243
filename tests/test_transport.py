"""
Tests for wire frames, command envelopes and the WebSocket transport.

Run with: pytest tests/test_transport.py -v
"""

import json

import pytest
import websockets

from interactive_bridge.server.protocol import (
    Command, Message, MsgType, call, command, data_context_change_notice,
    error_result, notify, reply, result,
)
from interactive_bridge.server.transport import WebSocketTransport


class FakeSocket:
    """Collects what the transport sends."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.closed = False
        self.fail = fail

    async def send(self, raw):
        if self.fail:
            raise websockets.exceptions.ConnectionClosedError(None, None)
        self.sent.append(json.loads(raw))

    async def close(self):
        self.closed = True


# ─────────────────────────────────────────────────────────────
# Protocol
# ─────────────────────────────────────────────────────────────

class TestProtocol:
    def test_parse_requires_type(self):
        with pytest.raises(ValueError):
            Message.parse('{"id": "1"}')
        with pytest.raises(ValueError):
            Message.parse("[1, 2]")

    def test_call_and_reply_share_id(self):
        frame = call({"action": "get", "resource": "interactiveFrame"})
        answer = reply(frame.msg_id, {"success": True})
        assert answer.type == MsgType.REPLY
        assert answer.msg_id == frame.msg_id
        assert Message.parse(answer.serialize()).body == {"success": True}

    def test_command_helpers(self):
        assert command("get", "dataContextList") == {"action": "get", "resource": "dataContextList"}
        assert notify("logMessage", "hi") == {"action": "notify", "resource": "logMessage",
                                              "values": "hi"}
        assert result(1) == {"success": True}
        assert error_result("nope") == {"success": False, "values": {"error": "nope"}}
        assert data_context_change_notice("Mammals") == "dataContextChangeNotice[Mammals]"

    def test_command_model(self):
        cmd = Command.model_validate({"action": "get", "resource": "x", "extra": 1})
        assert cmd.values is None
        with pytest.raises(ValueError):
            Command.model_validate({"action": ""})


# ─────────────────────────────────────────────────────────────
# WebSocket transport
# ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestWebSocketTransport:

    async def test_call_and_reply_routing(self):
        ws = FakeSocket()
        transport = WebSocketTransport(ws)
        replies = []
        transport.call({"action": "notify", "resource": "documentChangeNotice"}, replies.append)
        await transport.flush()

        (frame,) = ws.sent
        assert frame["type"] == "call"
        assert transport.pending_count == 1

        transport.handle_reply(Message(reply(frame["id"], {"success": True})))
        assert replies == [{"success": True}]
        assert transport.pending_count == 0

    async def test_reply_without_pending_is_ignored(self):
        transport = WebSocketTransport(FakeSocket())
        transport.handle_reply(reply("unknown", {"success": True}))

    async def test_callback_error_contained(self):
        transport = WebSocketTransport(FakeSocket())

        def broken(response):
            raise RuntimeError("boom")

        transport.call({"action": "notify"}, broken)
        await transport.flush()
        msg_id = next(iter(transport._pending))
        transport.handle_reply(reply(msg_id, {}))

    async def test_send_failure_not_raised(self):
        transport = WebSocketTransport(FakeSocket(fail=True))
        transport.call({"action": "notify"})
        await transport.flush()

    async def test_disconnect(self):
        ws = FakeSocket()
        transport = WebSocketTransport(ws)
        transport.call({"action": "notify"}, lambda r: None)
        transport.disconnect()
        transport.disconnect()
        await transport._close_task
        assert ws.closed
        assert transport.pending_count == 0
        transport.call({"action": "notify"})
        await transport.flush()
        assert len(ws.sent) == 1
