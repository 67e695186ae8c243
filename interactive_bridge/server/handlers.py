"""
interactive-bridge action dispatch table.

One handler class per ResourceType. Each class declares the closed set
of actions it supports and implements one method per action:

    def get(self, resources: ResolvedResources, values) -> dict

returning a command result ``{"success": bool, "values": ...}``.
Handlers run against the document graph and may mutate it; every
mutation goes through ``DataContext.apply_change()`` tagged with the
requesting connection's id so the notification bridge can recognize
the connection's own changes.

The table is built per connection by ``build_dispatch_table()``;
resource types with no handler fall through to UnsupportedHandler,
whose action set is empty.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from interactive_bridge.core.resolver import ResolvedResources
from interactive_bridge.core.vocabulary import Action, ResourceType, component_class_for
from interactive_bridge.document.undo import UndoCommand
from interactive_bridge.server.protocol import (
    UNDO_CHANGE_NOTICE, error_result, notify, result,
)

if TYPE_CHECKING:
    from interactive_bridge.document.context import DataContext
    from interactive_bridge.document.entities import Case, Collection
    from interactive_bridge.server.connections import PluginConnection

logger = logging.getLogger(__name__)


_HANDLERS: dict[ResourceType, type["ResourceHandler"]] = {}


def handles(*resource_types: ResourceType):
    """Class decorator: register a handler class for one or more resource types."""
    def decorator(cls: type["ResourceHandler"]) -> type["ResourceHandler"]:
        for resource_type in resource_types:
            _HANDLERS[resource_type] = cls
        return cls
    return decorator


def _as_list(values: Any) -> list:
    if values is None:
        return []
    return values if isinstance(values, list) else [values]


def serializable_case(collection: "Collection", case: "Case") -> dict:
    """A case as returned to a plugin: id, parent id, collection, values by name."""
    return {
        "id":     case.id,
        "parent": case.parent.id if case.parent else None,
        "collection": {
            "name": collection.name,
            "id":   collection.id,
        },
        "values": {attr.name: case.get_value(attr.id) for attr in collection.attrs},
    }


# ─────────────────────────────────────────────────────────────
# Base
# ─────────────────────────────────────────────────────────────

class ResourceHandler:
    """Base class for every resource kind."""

    actions: frozenset[Action] = frozenset()

    def __init__(self, connection: "PluginConnection"):
        self.connection = connection

    @property
    def requester(self) -> str:
        return self.connection.id

    @property
    def document(self):
        return self.connection.document

    def supports(self, action: Optional[Action]) -> bool:
        return action is not None and action in self.actions

    def handle(self, action: Action, resources: ResolvedResources, values: Any) -> dict:
        return getattr(self, action.value)(resources, values)

    def _apply(self, context: "DataContext", change: dict) -> dict:
        return context.apply_change(change, requester=self.requester) or {}


class UnsupportedHandler(ResourceHandler):
    """Stands in for every unknown resource type. Supports nothing."""


# ─────────────────────────────────────────────────────────────
# Frame
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.INTERACTIVE_FRAME)
class InteractiveFrameHandler(ResourceHandler):
    """Title, version, dimensions and UI flags of the plugin's own frame."""

    actions = frozenset({Action.GET, Action.UPDATE})

    def get(self, resources, values=None):
        frame = resources.frame
        model = frame.model
        standalone = bool(self.document.standalone_mode)
        frame_values = {
            "title":                       model.title,
            "version":                     model.version,
            "dimensions":                  model.dimensions,
            "preventBringToFront":         model.prevent_bring_to_front,
            "preventDataContextReorg":     model.prevent_data_context_reorg,
            "externalUndoAvailable":       not standalone,
            "standaloneUndoModeAvailable": standalone,
        }
        if model.saved_state is not None:
            logger.debug(f"Sending saved state to plugin {model.title!r}")
            frame_values["savedState"] = model.saved_state
        return result(True, frame_values)

    def update(self, resources, values):
        frame = resources.frame
        model = frame.model
        values = values or {}

        if "title" in values or "name" in values:
            title = values.get("title") or values.get("name") or ""
            model.title      = title
            frame.title      = title
            frame.view_title = title
        if "version" in values:
            model.version = values["version"]
        if "dimensions" in values:
            model.dimensions = values["dimensions"]
        if values.get("preventBringToFront") is not None:
            model.prevent_bring_to_front = bool(values["preventBringToFront"])
        if values.get("preventDataContextReorg") is not None:
            model.prevent_data_context_reorg = bool(values["preventDataContextReorg"])
        return result(True)


# ─────────────────────────────────────────────────────────────
# Data contexts
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.DATA_CONTEXT)
class DataContextHandler(ResourceHandler):
    """Create, read, retitle and destroy data contexts.

    Create accepts an ordered list of collection specs. A spec naming a
    parent must come after that parent; a spec whose parent is missing
    fails on its own and the remaining specs are still created.
    """

    actions = frozenset({Action.CREATE, Action.GET, Action.UPDATE, Action.DELETE})

    def create(self, resources, values):
        props = dict(values or {})
        specs = props.pop("collections", None) or []

        context = self.document.create_data_context(props)
        if context is None:
            return result(False)
        if resources.is_default_data_context:
            resources.frame.context = context

        status = True
        for spec in specs:
            spec = dict(spec)
            parent_name = spec.get("parent")
            if parent_name is not None:
                parent = context.get_collection_by_name(parent_name)
                if parent is None:
                    logger.info(
                        f"Attempt to create collection {spec.get('name')!r}: "
                        f"unknown parent {parent_name!r}"
                    )
                    status = False
                    continue
                spec["parent"] = parent
            status = context.create_collection(spec) is not None and status

        return result(status, {"id": context.id, "name": context.name,
                               "title": context.title})

    def get(self, resources, values=None):
        context = resources.data_context
        if context is None:
            return result(False)
        return result(True, context.to_archive(exclude_cases=True))

    def update(self, resources, values):
        context = resources.data_context
        values = values or {}
        if context is not None:
            for prop in ("title", "description"):
                if values.get(prop):
                    setattr(context, prop, values[prop])
        return result(True)

    def delete(self, resources, values=None):
        context = resources.data_context
        if context is not None:
            context.destroy()
        return result(True)


@handles(ResourceType.DATA_CONTEXT_LIST)
class DataContextListHandler(ResourceHandler):
    actions = frozenset({Action.GET})

    def get(self, resources, values=None):
        return result(True, [
            {"name": c.name, "guid": c.id, "title": c.title}
            for c in self.document.contexts
        ])


# ─────────────────────────────────────────────────────────────
# Collections
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.COLLECTION)
class CollectionHandler(ResourceHandler):
    """Collections of one context. There is no delete."""

    actions = frozenset({Action.CREATE, Action.GET, Action.UPDATE})

    def get(self, resources, values=None):
        return result(True, resources.collection.to_archive(exclude_cases=True))

    @staticmethod
    def _map_parent(context: "DataContext", parent_name: Any) -> Any:
        """Parent name → collection id; unnamed → the last collection created."""
        if parent_name is not None and parent_name != "":
            collection = context.get_collection_by_name(parent_name)
            return collection.id if collection else parent_name
        last = context.last_collection
        return last.id if last else None

    def create(self, resources, values):
        context = resources.data_context
        success = True
        identifiers = []

        for spec in _as_list(values):
            spec = dict(spec or {})
            spec["parent"] = self._map_parent(context, spec.get("parent"))
            change_result = self._apply(context, {
                "operation":  "createCollection",
                "properties": spec,
                "attributes": spec.get("attributes"),
            })
            collection = change_result.get("collection")
            if not change_result.get("success") or collection is None:
                # A batch stops at its first failed spec.
                success = False
                break
            identifiers.append({"id": collection.id, "name": collection.name})

        return result(success, identifiers)

    def update(self, resources, values):
        change_result = self._apply(resources.data_context, {
            "operation":  "updateCollection",
            "collection": resources.collection,
            "properties": values or {},
        })
        return result(change_result.get("success", False))


@handles(ResourceType.COLLECTION_LIST)
class CollectionListHandler(ResourceHandler):
    """Collections ordered highest ancestor first, ultimate descendant last."""

    actions = frozenset({Action.GET})

    def get(self, resources, values=None):
        return result(True, [
            {"name": c.name, "guid": c.id, "title": c.title}
            for c in resources.data_context.collections
        ])


# ─────────────────────────────────────────────────────────────
# Attributes
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.ATTRIBUTE)
class AttributeHandler(ResourceHandler):
    actions = frozenset({Action.CREATE, Action.GET, Action.UPDATE, Action.DELETE})

    def get(self, resources, values=None):
        return result(True, resources["attribute"].to_archive())

    def create(self, resources, values):
        change_result = self._apply(resources.data_context, {
            "operation":      "createAttributes",
            "collection":     resources.collection,
            "attrPropsArray": _as_list(values),
        })
        return result(change_result.get("success", False))

    def update(self, resources, values):
        props = dict(values or {})
        props["name"] = resources["attribute"].name
        change_result = self._apply(resources.data_context, {
            "operation":      "updateAttributes",
            "collection":     resources.collection,
            "attrPropsArray": [props],
        })
        return result(change_result.get("success", False))

    def delete(self, resources, values=None):
        change_result = self._apply(resources.data_context, {
            "operation":  "deleteAttributes",
            "collection": resources.collection,
            "attrs":      [resources["attribute"]],
        })
        return result(change_result.get("success", False))


@handles(ResourceType.ATTRIBUTE_LIST)
class AttributeListHandler(ResourceHandler):
    actions = frozenset({Action.GET})

    def get(self, resources, values=None):
        collection = resources.collection
        if collection is None:
            return error_result("collection required")
        return result(True, [
            {"guid": a.id, "name": a.name, "title": a.title}
            for a in collection.attrs
        ])


# ─────────────────────────────────────────────────────────────
# Cases
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.CASE)
class CaseHandler(ResourceHandler):
    """Create one case per ``{parent, values}`` spec.

    Each spec is an independent change; a failure turns the overall
    result false but does not stop the specs after it.
    """

    actions = frozenset({Action.CREATE})

    def create(self, resources, values):
        context = resources.data_context
        collection = resources.collection
        success = True
        case_ids = []

        for spec in _as_list(values):
            spec = spec or {}
            change_result = self._apply(context, {
                "operation":  "createCases",
                "collection": collection,
                "properties": {"parent": spec.get("parent")},
                "values":     [spec.get("values") or {}],
            })
            success = bool(change_result.get("success")) and success
            new_ids = change_result.get("caseIDs") or []
            if new_ids:
                case_ids.append({"id": new_ids[0]})

        return result(success, case_ids)


@handles(ResourceType.ALL_CASES)
class AllCasesHandler(ResourceHandler):
    actions = frozenset({Action.DELETE})

    def delete(self, resources, values=None):
        context = resources.data_context
        if context is None:
            return result(False)
        change_result = self._apply(context, {
            "operation": "deleteCases",
            "cases":     context.all_cases,
            "values":    [],
        })
        return result(change_result.get("success", False))


@handles(ResourceType.CASE_BY_INDEX, ResourceType.CASE_BY_ID)
class CaseByIndexOrIDHandler(ResourceHandler):
    """A single case, addressed by position in its collection or by id."""

    actions = frozenset({Action.GET, Action.UPDATE, Action.DELETE})

    @staticmethod
    def _target(resources) -> Optional["Case"]:
        return resources.get("caseByIndex") or resources.get("caseByID")

    @staticmethod
    def _collection_of(resources, case: "Case") -> Optional["Collection"]:
        collection = resources.collection
        if collection is None and case is not None:
            collection = resources.data_context.get_collection_by_id(case.collection.id)
        return collection

    def get(self, resources, values=None):
        case = self._target(resources)
        if case is None:
            return result(False)
        collection = self._collection_of(resources, case)
        serialized = serializable_case(collection, case)
        serialized["children"] = [child.id for child in case.children]
        return result(True, {
            "case":      serialized,
            "caseIndex": collection.get_case_index_by_id(case.id),
        })

    def update(self, resources, values):
        case = self._target(resources)
        collection = self._collection_of(resources, case)
        if case is None or collection is None or not values:
            return result(False)
        change_result = self._apply(resources.data_context, {
            "operation":  "updateCases",
            "collection": collection,
            "cases":      [case],
            "values":     [values.get("values") or {}],
        })
        return result(change_result.get("success", False))

    def delete(self, resources, values=None):
        case = self._target(resources)
        collection = self._collection_of(resources, case)
        if case is None or collection is None:
            return result(False)
        change_result = self._apply(resources.data_context, {
            "operation":  "deleteCases",
            "collection": collection,
            "cases":      [case],
            "values":     [],
        })
        return result(change_result.get("success", False))


@handles(ResourceType.CASE_COUNT)
class CaseCountHandler(ResourceHandler):
    actions = frozenset({Action.GET})

    def get(self, resources, values=None):
        collection = resources.collection
        if collection is None:
            return error_result("collection required")
        return result(True, len(collection.cases))


@handles(ResourceType.ITEM)
class ItemHandler(ResourceHandler):
    """Raw item insertion, split across the context's collections."""

    actions = frozenset({Action.CREATE})

    def create(self, resources, values):
        context = resources.data_context
        case_ids = None
        if context is not None:
            case_ids = context.add_items(values, requester=self.requester)
        return result(case_ids is not None, case_ids)


@handles(ResourceType.CASE_SEARCH)
class CaseSearchHandler(ResourceHandler):
    actions = frozenset({Action.GET})

    def get(self, resources, values=None):
        matches = resources.get("caseSearch")
        if matches is None:
            return result(False, [])
        collection = resources.collection
        return result(True, [serializable_case(collection, c) for c in matches])


# ─────────────────────────────────────────────────────────────
# Selection
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.SELECTION_LIST)
class SelectionListHandler(ResourceHandler):
    """Selected cases of a context.

    create replaces the selection, update extends it; both take a list
    of case ids and go through one selectCases change.
    """

    actions = frozenset({Action.CREATE, Action.GET, Action.UPDATE})

    def get(self, resources, values=None):
        context = resources.data_context
        collection = resources.collection
        selected = [
            case for case in context.get_selected_cases()
            if collection is None or case.collection is collection
        ]
        return result(True, [
            {
                "collectionID":   case.collection.id,
                "collectionName": case.collection.name,
                "caseID":         case.id,
            }
            for case in selected
        ])

    def create(self, resources, values):
        return self._select(resources, values, extend=False)

    def update(self, resources, values):
        return self._select(resources, values, extend=True)

    def _select(self, resources, values, extend: bool) -> dict:
        context = resources.data_context
        collection = resources.collection
        lookup = collection.get_case_by_id if collection else context.get_case_by_id
        cases = [lookup(case_id) for case_id in _as_list(values)]
        change_result = self._apply(context, {
            "operation":  "selectCases",
            "collection": collection,
            "cases":      cases,
            "select":     True,
            "extend":     extend,
        })
        return result(change_result.get("success", False))


# ─────────────────────────────────────────────────────────────
# Components
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.COMPONENT)
class ComponentHandler(ResourceHandler):
    """Views in the document.

    Create maps the plugin's type token (graph, caseTable, slider…) to a
    host view class and hands off to the document's generic
    component-creation entry point. Unknown types are rejected before
    anything is created. Update touches title and description only.
    """

    actions = frozenset({Action.CREATE, Action.GET, Action.UPDATE, Action.DELETE})

    def create(self, resources, values):
        props = dict(values or {})
        type_name = props.get("type")
        view_class = component_class_for(type_name)
        if view_class is None:
            logger.info(f"Unknown component type: {type_name!r}")
            return result(False)

        props.update({
            "document":         self.document,
            "type":             view_class,
            "allowMoreThanOne": True,
        })
        component = self.document.create_component(props)
        if component is None:
            return result(False)
        return result(True, {"id": component.id, "name": component.name,
                             "title": component.title})

    def get(self, resources, values=None):
        return result(True, resources["component"].to_archive())

    def update(self, resources, values):
        resources["component"].update(values or {})
        return result(True)

    def delete(self, resources, values=None):
        resources["component"].destroy()
        return result(True)


@handles(ResourceType.COMPONENT_LIST)
class ComponentListHandler(ResourceHandler):
    actions = frozenset({Action.GET})

    def get(self, resources, values=None):
        return result(True, [
            {"id": c.id, "name": c.name, "title": c.title}
            for c in self.document.components
        ])


# ─────────────────────────────────────────────────────────────
# Globals
# ─────────────────────────────────────────────────────────────

@handles(ResourceType.GLOBAL)
class GlobalHandler(ResourceHandler):
    actions = frozenset({Action.GET, Action.UPDATE})

    def get(self, resources, values=None):
        return result(True, resources["global"].to_archive())

    def update(self, resources, values):
        values = values or {}
        if "value" not in values:
            return error_result("value required")
        resources["global"].value = values["value"]
        return result(True)


@handles(ResourceType.GLOBAL_LIST)
class GlobalListHandler(ResourceHandler):
    actions = frozenset({Action.GET})

    def get(self, resources, values=None):
        return result(True, [g.to_archive() for g in self.document.globals])


# ─────────────────────────────────────────────────────────────
# Notifications from the plugin
# ─────────────────────────────────────────────────────────────

def format_log_message(values: Any) -> str:
    """Plain string, or ``{formatStr, replaceArgs}`` with %@ placeholders."""
    if isinstance(values, dict) and "formatStr" in values:
        text = str(values["formatStr"])
        for arg in values.get("replaceArgs") or []:
            text = text.replace("%@", str(arg), 1)
        return text
    return str(values)


@handles(ResourceType.LOG_MESSAGE)
class LogMessageHandler(ResourceHandler):
    actions = frozenset({Action.NOTIFY})

    def notify(self, resources, values):
        self.document.log_user(format_log_message(values))
        return result(True)


@handles(ResourceType.UNDO_CHANGE_NOTICE)
class UndoChangeNoticeHandler(ResourceHandler):
    """Keeps the host undo stack in step with the plugin's own actions.

    When the plugin reports it performed an undoable action, a command is
    pushed onto the host stack. Undoing or redoing that command does not
    touch the document; it asks the plugin to undo or redo its own action
    and surfaces an error if the plugin reports failure. Undo/redo button
    presses in the plugin drive the host stack directly.
    """

    actions = frozenset({Action.NOTIFY})

    def notify(self, resources, values):
        values = values or {}
        operation = values.get("operation")
        undo_history = self.document.undo_history

        if operation == "undoableActionPerformed":
            log_message = values.get("logMessage") or "Unknown action"
            undo_history.execute(self._plugin_command(log_message))
        elif operation == "undoButtonPress":
            undo_history.undo()
        elif operation == "redoButtonPress":
            undo_history.redo()
        return result(True)

    def _plugin_command(self, log_message: str) -> UndoCommand:
        connection = self.connection
        undo_history = self.document.undo_history

        def completed(response: Any) -> None:
            if isinstance(response, dict) and response.get("success") is False:
                undo_history.show_error_alert("Data Interactive error")

        def ask_plugin(operation: str) -> None:
            connection.send_message(
                notify(UNDO_CHANGE_NOTICE, {"operation": operation}), completed,
            )

        return UndoCommand(
            name="interactive.undoableAction",
            undo_string="Undo interactive action",
            redo_string="Redo interactive action",
            log=f"Interactive action occurred: {log_message}",
            undo=lambda: ask_plugin("undoAction"),
            redo=lambda: ask_plugin("redoAction"),
        )


# ─────────────────────────────────────────────────────────────
# Table
# ─────────────────────────────────────────────────────────────

def build_dispatch_table(connection: "PluginConnection") -> dict[ResourceType, ResourceHandler]:
    """One handler instance per ResourceType, bound to a connection."""
    instances: dict[type, ResourceHandler] = {}
    table: dict[ResourceType, ResourceHandler] = {}
    for resource_type in ResourceType:
        cls = _HANDLERS.get(resource_type, UnsupportedHandler)
        if cls not in instances:
            instances[cls] = cls(connection)
        table[resource_type] = instances[cls]
    return table
