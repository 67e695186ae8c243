"""
interactive-bridge wire protocol.

Two layers live here.

Frames — what crosses the socket. A JSON object with a "type" field:

    {"type": "hello",   "id": "<uuid>", "client_name": "...", "title": "..."}
    {"type": "welcome", "id": "<same>", "session_id": "...", "server_version": "..."}
    {"type": "call",    "id": "<uuid>", "message": <command or [commands]>}
    {"type": "reply",   "id": "<same>", "message": <result or [results]>}
    {"type": "bye",     "reason": "..."}
    {"type": "error",   "id": "<uuid or null>", "code": "INVALID", "message": "..."}

Either side may send a "call"; the other side answers with a "reply"
carrying the same id. Plugin → host calls carry commands; host → plugin
calls carry notify messages and state requests.

Commands — what a call carries:

    {"action": "get", "resource": "dataContext[Mammals].collectionList"}
    {"action": "create", "resource": "dataContext[Mammals].collection[Species].case",
     "values": [{"parent": null, "values": {"Name": "Lion"}}]}

and the matching results:

    {"success": true,  "values": [...]}
    {"success": false, "values": {"error": "Unable to resolve collection: Species"}}

A call may carry a list of commands; the reply then carries a list of
results in the same order.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─────────────────────────────────────────────────────────────
# Frame type constants
# ─────────────────────────────────────────────────────────────

class MsgType:
    # Handshake
    HELLO   = "hello"       # plugin → host on connect
    WELCOME = "welcome"     # host → plugin after hello
    BYE     = "bye"         # clean disconnect notification

    # Request / response, either direction
    CALL    = "call"
    REPLY   = "reply"

    # Frame-level failure (malformed JSON, wrong first frame)
    ERROR   = "error"


class ErrorCode:
    INVALID      = "INVALID"
    INTERNAL     = "INTERNAL"
    UNKNOWN_TYPE = "UNKNOWN_TYPE"


# Host-initiated notice resources
DOCUMENT_CHANGE_NOTICE     = "documentChangeNotice"
DATA_CONTEXT_CHANGE_NOTICE = "dataContextChangeNotice"
UNDO_CHANGE_NOTICE         = "undoChangeNotice"
INTERACTIVE_STATE          = "interactiveState"


# ─────────────────────────────────────────────────────────────
# Frames
# ─────────────────────────────────────────────────────────────

def _new_id() -> str:
    return str(uuid.uuid4())


class Message(dict):
    """A wire frame — a dict with a type field and helpers.

    Subclasses dict so it serializes directly with json.dumps() and
    can be matched on ["type"] without unwrapping.
    """

    @classmethod
    def parse(cls, raw: str | bytes) -> "Message":
        """Deserialize a JSON string into a Message."""
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Expected JSON object, got {type(data)}")
        if "type" not in data:
            raise ValueError("Message missing 'type' field")
        return cls(data)

    def serialize(self) -> str:
        return json.dumps(self, default=str)

    @property
    def type(self) -> str:
        return self["type"]

    @property
    def msg_id(self) -> str | None:
        return self.get("id")

    @property
    def body(self) -> Any:
        """The command(s) or result(s) carried by a call or reply."""
        return self.get("message")

    def __repr__(self) -> str:
        return f"Message(type={self.type!r}, id={self.msg_id!r})"


def hello(client_name: str, title: str | None = None) -> Message:
    """First frame from a plugin after connecting."""
    return Message({
        "type":        MsgType.HELLO,
        "id":          _new_id(),
        "client_name": client_name,
        "title":       title,
    })


def welcome(
    session_id: str,
    request_id: str | None,
    server_version: str = "0.1.0",
    frame: dict | None = None,
) -> Message:
    return Message({
        "type":           MsgType.WELCOME,
        "id":             request_id,
        "session_id":     session_id,
        "server_version": server_version,
        "frame":          frame or {},
    })


def call(message: Any, msg_id: str | None = None) -> Message:
    return Message({"type": MsgType.CALL, "id": msg_id or _new_id(), "message": message})


def reply(request_id: str | None, message: Any) -> Message:
    return Message({"type": MsgType.REPLY, "id": request_id, "message": message})


def bye(reason: str = "client_shutdown") -> Message:
    return Message({"type": MsgType.BYE, "reason": reason})


def error(
    request_id: str | None,
    code: str,
    message: str,
    details: dict | None = None,
) -> Message:
    msg = Message({
        "type":    MsgType.ERROR,
        "id":      request_id,
        "code":    code,
        "message": message,
    })
    if details:
        msg["details"] = details
    return msg


# ─────────────────────────────────────────────────────────────
# Commands and results
# ─────────────────────────────────────────────────────────────

class Command(BaseModel):
    """One inbound command envelope."""

    model_config = ConfigDict(extra="allow")

    action: str = Field(
        ...,
        description="create, get, update, delete or notify.",
        min_length=1,
    )
    resource: Optional[str] = Field(
        default=None,
        description="Resource selector, e.g. "
        "'dataContext[Mammals].collection[Species].caseByIndex[0]'.",
    )
    values: Any = Field(
        default=None,
        description="Action payload; shape depends on the resource.",
    )


def command(action: str, resource: str, values: Any = None) -> dict:
    cmd: dict = {"action": action, "resource": resource}
    if values is not None:
        cmd["values"] = values
    return cmd


def notify(resource: str, values: Any = None) -> dict:
    return command("notify", resource, values)


def result(success: bool, values: Any = None) -> dict:
    res: dict = {"success": bool(success)}
    if values is not None:
        res["values"] = values
    return res


def error_result(message: str) -> dict:
    return {"success": False, "values": {"error": message}}


def data_context_change_notice(context_name: str) -> str:
    return f"{DATA_CONTEXT_CHANGE_NOTICE}[{context_name}]"
