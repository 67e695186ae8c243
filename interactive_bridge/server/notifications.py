"""
interactive-bridge change notifier.

Forwards data context mutations to one plugin as
``dataContextChangeNotice[<contextName>]`` notify calls.

For each batch of change records a context delivers:

  - nothing is sent until the connection is connected (has sent its
    first command)
  - unsuccessful changes are dropped
  - changes the plugin itself requested are dropped; it already has the
    direct response and must not hear about them twice
  - each survivor is projected to the external change event shape:
    an allow-listed result plus serialized affected cases
  - an empty list sends nothing; otherwise one notify carries the
    ordered list
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from interactive_bridge.server.protocol import data_context_change_notice, notify

if TYPE_CHECKING:
    from interactive_bridge.document.context import ChangeRecord, DataContext
    from interactive_bridge.document.entities import Case, Collection
    from interactive_bridge.server.connections import PluginConnection

logger = logging.getLogger(__name__)


# Result fields copied verbatim into the outgoing event
RESULT_FIELDS = ("success", "caseIDs", "caseID", "attrIDs")


def redact_result(result: dict) -> dict:
    """Allow-listed copy of a change result; collection reduced to its id."""
    redacted: dict[str, Any] = {}
    for key, value in result.items():
        if key in RESULT_FIELDS:
            redacted[key] = value
        elif key == "collection":
            redacted["collection"] = value.id if value is not None else None
        else:
            logger.info(f"Dropping change result field from notification: {key!r}")
    return redacted


def _collection_ref(collection: Optional["Collection"]) -> Optional[dict]:
    if collection is None:
        return None
    return {"id": collection.id, "name": collection.name}


def serialize_case(context: "DataContext", case: "Case") -> dict:
    """Every attribute value of the case's own collection plus identity."""
    collection = case.collection
    collection_ref = _collection_ref(collection)
    collection_ref["parent"] = _collection_ref(collection.parent)
    return {
        "id":         case.id,
        "parent":     case.parent.id if case.parent else None,
        "context":    {"id": context.id, "name": context.name},
        "collection": collection_ref,
        "values":     case.values_by_name(),
    }


class ChangeNotifier:
    """Filters and forwards one context's change batches to one connection."""

    def __init__(self, connection: "PluginConnection"):
        self.connection = connection

    def __call__(self, context: "DataContext", changes: list["ChangeRecord"]) -> None:
        self.handle_changes(context, changes)

    def filter(self, changes: list["ChangeRecord"]) -> list["ChangeRecord"]:
        own_id = self.connection.id
        return [c for c in changes if c.success and c.requester != own_id]

    def to_event(self, context: "DataContext", change: "ChangeRecord") -> dict:
        return {
            "operation": change.operation,
            "result":    redact_result(change.result),
            "cases":     [serialize_case(context, case) for case in change.cases],
        }

    def handle_changes(self, context: "DataContext", changes: list["ChangeRecord"]) -> None:
        if not self.connection.connected:
            return
        events = [self.to_event(context, c) for c in self.filter(changes)]
        if not events:
            return

        resource = data_context_change_notice(context.name)
        logger.debug(f"Sending {len(events)} change(s) to {self.connection.id}: {resource}")

        def completed(response: Any) -> None:
            logger.debug(f"{resource} acknowledged by {self.connection.id}: {response!r:.200}")

        self.connection.send_message(notify(resource, events), completed)
