"""
interactive-bridge command router.

Every command that arrives from a plugin comes here.

Design:
  - One command: validate → parse selector → pick handler by resource
    type and check the action → resolve → run the handler inside one
    document update cycle → sanitize
  - Type and action are checked before resolution, so a command that is
    both unsupported and unresolvable reports the unsupported type or
    action, never the resolution failure
  - The update cycle means a command's elementary mutations reach the
    change notifier as one batch, however many the handler made
  - Errors are caught per command and returned as
    ``{"success": false, "values": {"error": ...}}`` — they never abort
    sibling commands in a batch and never escape the router
  - A batch is processed strictly in order with no atomicity; partial
    application is expected
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from pydantic import ValidationError

from interactive_bridge.core.resolver import ResolutionFailure, ResourceResolver
from interactive_bridge.core.sanitize import sanitize_result
from interactive_bridge.core.selector import parse_selector
from interactive_bridge.core.vocabulary import Action, ResourceType
from interactive_bridge.server.handlers import ResourceHandler, build_dispatch_table
from interactive_bridge.server.protocol import Command, error_result

if TYPE_CHECKING:
    from interactive_bridge.server.connections import PluginConnection

logger = logging.getLogger(__name__)

ResponseCallback = Callable[[Any], None]


# ─────────────────────────────────────────────────────────────
# Router
# ─────────────────────────────────────────────────────────────

class Router:
    """Executes commands for one plugin connection.

    Holds:
        connection — the PluginConnection the commands came in on
        resolver   — ResourceResolver bound to the connection's frame
        dispatch   — ResourceType → ResourceHandler
    """

    def __init__(self, connection: "PluginConnection"):
        self.connection = connection
        self.resolver   = ResourceResolver(connection.document, connection.frame)
        self.dispatch: dict[ResourceType, ResourceHandler] = build_dispatch_table(connection)

    # ── Entry point ───────────────────────────────────────────

    def do_command(self, message: Any, callback: Optional[ResponseCallback] = None) -> Any:
        """Execute one command or an ordered list of them.

        The first command observed marks the connection connected. The
        result (or list of results, same order) is handed to ``callback``
        and also returned.
        """
        self.connection.connected = True
        logger.debug(f"Request from {self.connection.id}: {message!r:.500}")

        if isinstance(message, list):
            response = [self.execute(cmd) for cmd in message]
        else:
            response = self.execute(message)

        logger.debug(f"Response to {self.connection.id}: {response!r:.500}")
        if callback is not None:
            callback(response)
        return response

    # ── One command ───────────────────────────────────────────

    def execute(self, message: Any) -> dict:
        """Run one command. Never raises."""
        try:
            cmd = Command.model_validate(message)
        except ValidationError as e:
            logger.warning(f"Invalid command {message!r:.200}: {e}")
            return error_result(str(e))

        try:
            return self._execute(cmd)
        except Exception as e:
            logger.exception(f"Error executing {cmd.action} {cmd.resource!r}: {e}")
            return error_result(str(e))

    def _execute(self, cmd: Command) -> dict:
        selector = parse_selector(cmd.resource)
        action   = Action.from_string(cmd.action)
        type_    = ResourceType.from_string(selector.type)

        if type_ is ResourceType.UNSUPPORTED:
            logger.warning(f"Unknown message type: {selector.type}")
            return error_result(f"Unknown message type: {selector.type}")

        handler = self.dispatch[type_]
        if not handler.supports(action):
            logger.warning(f"Unsupported action: {cmd.action}/{selector.type}")
            return error_result(f"Unsupported action: {cmd.action}/{selector.type}")

        resolved = self.resolver.resolve(selector, action)
        if isinstance(resolved, ResolutionFailure):
            logger.info(resolved.message)
            return error_result(resolved.message)

        with self.connection.document.update_cycle():
            res = handler.handle(action, resolved, cmd.values)

        if res is None:
            res = {"success": False}
        if res.get("success") and res.get("values") is not None:
            sanitize_result(res["values"])
        return res
