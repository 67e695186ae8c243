"""
interactive-bridge data contexts.

A DataContext owns one collection hierarchy and its cases. Every
mutation goes through ``apply_change()`` — the single boundary that both
mutates and records a ChangeRecord — so observers see a consistent,
ordered feed of what happened and who asked for it.

Change feed:
    context.subscribe(callback) → Subscription
    callback(context, changes)  — changes recorded since the last drain

When the owning DocumentController is inside an update cycle, delivery
is deferred until the outermost cycle exits, so one command produces
at most one callback per context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from interactive_bridge.document.entities import (
    Attribute, Case, Collection, legalize_attribute_name, next_id,
)

if TYPE_CHECKING:
    from interactive_bridge.document.graph import DocumentController

logger = logging.getLogger(__name__)

ChangeCallback = Callable[["DataContext", list["ChangeRecord"]], None]


# ─────────────────────────────────────────────────────────────
# Change records and subscriptions
# ─────────────────────────────────────────────────────────────

@dataclass
class ChangeRecord:
    """One accepted (or rejected) mutation of a data context.

    requester — identity of whoever asked for the change; None when the
                change came from the host UI or another host subsystem.
    result    — what apply_change() returned (success, ids, collection…)
    cases     — the cases the change touched, for notification payloads
    """
    operation: str
    result:    dict
    requester: Optional[str] = None
    cases:     list[Case] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.result.get("success"))


class Subscription:
    """A live registration on a listener list. Cancel it to stop delivery.

    Usable as a context manager; cancel() is idempotent.
    """

    def __init__(self, listeners: list, callback: Callable):
        self._listeners = listeners
        self.callback = callback
        listeners.append(callback)

    @property
    def active(self) -> bool:
        return any(cb is self.callback for cb in self._listeners)

    def cancel(self) -> None:
        for i, cb in enumerate(self._listeners):
            if cb is self.callback:
                del self._listeners[i]
                return

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


# ─────────────────────────────────────────────────────────────
# Data context
# ─────────────────────────────────────────────────────────────

class DataContext:
    """A named container for one collection hierarchy and its cases."""

    def __init__(
        self,
        name: str,
        document: Optional["DocumentController"] = None,
        title: Optional[str] = None,
        description: str = "",
        id: Optional[int] = None,
        **props: Any,
    ):
        self.id: int = id if id is not None else next_id()
        self.name: str = name
        self.title: str = title or name
        self.description: str = description
        self.document = document
        self.props: dict[str, Any] = props
        self._collections: list[Collection] = []
        self._selection: list[Case] = []
        self._listeners: list[ChangeCallback] = []
        self._new_changes: list[ChangeRecord] = []
        self.change_count = 0
        self.destroyed = False

        self._operations: dict[str, Callable[[dict], tuple[dict, list[Case]]]] = {
            "createCollection": self._do_create_collection,
            "updateCollection": self._do_update_collection,
            "createAttributes": self._do_create_attributes,
            "updateAttributes": self._do_update_attributes,
            "deleteAttributes": self._do_delete_attributes,
            "createCases":      self._do_create_cases,
            "updateCases":      self._do_update_cases,
            "deleteCases":      self._do_delete_cases,
            "selectCases":      self._do_select_cases,
        }

    # ── Lookup ────────────────────────────────────────────────

    @property
    def collections(self) -> list[Collection]:
        """Collections ordered ancestor first, ultimate descendant last."""
        return sorted(self._collections, key=lambda c: c.depth())

    @property
    def last_collection(self) -> Optional[Collection]:
        """The most recently created collection."""
        return self._collections[-1] if self._collections else None

    def get_collection_by_name(self, name: Any) -> Optional[Collection]:
        for collection in self._collections:
            if collection.name == name:
                return collection
        return None

    def get_collection_by_id(self, collection_id: Any) -> Optional[Collection]:
        for collection in self._collections:
            if str(collection.id) == str(collection_id):
                return collection
        return None

    def get_attribute_by_name(self, name: Any) -> Optional[Attribute]:
        for collection in self._collections:
            attr = collection.get_attribute_by_name(name)
            if attr is not None:
                return attr
        return None

    def get_case_by_id(self, case_id: Any) -> Optional[Case]:
        for collection in self._collections:
            case = collection.get_case_by_id(case_id)
            if case is not None:
                return case
        return None

    @property
    def all_cases(self) -> list[Case]:
        return [case for c in self.collections for case in c.cases]

    def get_selected_cases(self) -> list[Case]:
        return list(self._selection)

    # ── Collections ───────────────────────────────────────────

    def _find_parent(self, parent: Any) -> Optional[Collection]:
        if isinstance(parent, Collection):
            return parent if parent in self._collections else None
        return self.get_collection_by_id(parent) or self.get_collection_by_name(parent)

    def create_collection(self, spec: dict) -> Optional[Collection]:
        """Create a collection directly (no change record). None on failure."""
        spec = dict(spec or {})
        name = spec.pop("name", None) or f"Collection{len(self._collections) + 1}"
        if self.get_collection_by_name(name) is not None:
            logger.debug(f"Collection {name!r} already exists in {self.name!r}")
            return None

        parent = None
        if spec.get("parent") is not None:
            parent = self._find_parent(spec["parent"])
            if parent is None:
                return None
        attrs = spec.get("attributes") or spec.get("attrs") or []
        # context, id and parent are assigned here, never by the plugin.
        props = {key: spec[key] for key in Collection.EDITABLE if key in spec}
        collection = Collection(name, self, parent=parent, **props)
        self._collections.append(collection)
        for attr_props in attrs:
            if attr_props.get("name"):
                collection.add_attribute(attr_props)
        return collection

    # ── Changes ───────────────────────────────────────────────

    def apply_change(self, change: dict, requester: Optional[str] = None) -> dict:
        """Perform one mutation and record it. Returns the change result.

        The change dict names an ``operation`` plus operation-specific
        fields (collection, cases, values, properties…). Unknown
        operations and rejected changes return ``{"success": False}``
        and are still recorded, so observers can see the attempt.
        """
        operation = change.get("operation", "")
        do = self._operations.get(operation)
        if do is None:
            logger.warning(f"Unknown change operation: {operation!r}")
            result, cases = {"success": False}, []
        else:
            result, cases = do(change)

        self._record(ChangeRecord(operation=operation, result=result,
                                  requester=requester, cases=cases))
        return result

    def _record(self, record: ChangeRecord) -> None:
        self._new_changes.append(record)
        self.change_count += 1
        if self.document is not None:
            self.document.change_occurred(self)
        else:
            self.flush_changes()

    def _do_create_collection(self, change: dict) -> tuple[dict, list[Case]]:
        spec = dict(change.get("properties") or {})
        if change.get("attributes") and not spec.get("attributes"):
            spec["attributes"] = change["attributes"]
        collection = self.create_collection(spec)
        if collection is None:
            return {"success": False}, []
        return {"success": True, "collection": collection}, []

    def _do_update_collection(self, change: dict) -> tuple[dict, list[Case]]:
        collection = change.get("collection")
        if collection is None:
            return {"success": False}, []
        collection.update(change.get("properties") or {})
        return {"success": True, "collection": collection}, []

    def _do_create_attributes(self, change: dict) -> tuple[dict, list[Case]]:
        collection = change.get("collection")
        props_list = change.get("attrPropsArray") or []
        if isinstance(props_list, dict):
            props_list = [props_list]
        if collection is None or not props_list:
            return {"success": False}, []

        attr_ids = []
        for props in props_list:
            name = props.get("name")
            if not name or self.get_attribute_by_name(legalize_attribute_name(name)):
                return {"success": False, "attrIDs": attr_ids}, []
            attr_ids.append(collection.add_attribute(props).id)
        return {"success": True, "collection": collection, "attrIDs": attr_ids}, []

    def _do_update_attributes(self, change: dict) -> tuple[dict, list[Case]]:
        collection = change.get("collection")
        attr_ids = []
        for props in change.get("attrPropsArray") or []:
            name = props.get("name")
            attr = (collection.get_attribute_by_name(name) if collection
                    else self.get_attribute_by_name(name))
            if attr is None:
                return {"success": False, "attrIDs": attr_ids}, []
            attr.update(props)
            attr_ids.append(attr.id)
        result = {"success": bool(attr_ids), "attrIDs": attr_ids}
        if collection is not None:
            result["collection"] = collection
        return result, []

    def _do_delete_attributes(self, change: dict) -> tuple[dict, list[Case]]:
        attr_ids = []
        for attr in change.get("attrs") or []:
            if attr is None or attr.collection is None:
                continue
            attr.collection.remove_attribute(attr)
            attr_ids.append(attr.id)
        return {"success": bool(attr_ids), "attrIDs": attr_ids}, []

    def _do_create_cases(self, change: dict) -> tuple[dict, list[Case]]:
        collection = change.get("collection")
        if collection is None or collection not in self._collections:
            return {"success": False, "caseIDs": []}, []

        parent_id = (change.get("properties") or {}).get("parent")
        parent = None
        if parent_id is not None:
            parent = self.get_case_by_id(parent_id)
            if parent is None or parent.collection is not collection.parent:
                return {"success": False, "caseIDs": []}, []

        created = []
        for values in change.get("values") or [{}]:
            case = Case(collection, parent=parent)
            case.set_values_by_name(values)
            collection.cases.append(case)
            created.append(case)

        ids = [case.id for case in created]
        return {
            "success":    True,
            "collection": collection,
            "caseIDs":    ids,
            "caseID":     ids[0] if ids else None,
        }, created

    def _do_update_cases(self, change: dict) -> tuple[dict, list[Case]]:
        cases = [c for c in change.get("cases") or [] if c is not None]
        values = change.get("values") or []
        if not cases:
            return {"success": False}, []
        for case, case_values in zip(cases, values):
            case.set_values_by_name(case_values or {})
        return {"success": True, "caseIDs": [c.id for c in cases]}, cases

    def _do_delete_cases(self, change: dict) -> tuple[dict, list[Case]]:
        requested = [c for c in change.get("cases") or [] if c is not None]
        doomed: list[Case] = []
        for case in requested:
            for victim in [case] + case.descendants():
                if victim not in doomed:
                    doomed.append(victim)
        for case in doomed:
            if case in case.collection.cases:
                case.collection.cases.remove(case)
            if case.parent is not None and case in case.parent.children:
                case.parent.children.remove(case)
            if case in self._selection:
                self._selection.remove(case)
        return {"success": True, "caseIDs": [c.id for c in doomed]}, doomed

    def _do_select_cases(self, change: dict) -> tuple[dict, list[Case]]:
        cases = [c for c in change.get("cases") or [] if c is not None]
        select = change.get("select", True)
        if not change.get("extend"):
            self._selection = []
        for case in cases:
            if select and case not in self._selection:
                self._selection.append(case)
            elif not select and case in self._selection:
                self._selection.remove(case)
        return {"success": True, "caseIDs": [c.id for c in cases]}, []

    # ── Items ─────────────────────────────────────────────────

    def add_items(self, items: Any, requester: Optional[str] = None) -> Optional[list[int]]:
        """Insert flat items, splitting each across the collection hierarchy.

        An item is a dict of attribute name → value. For every collection,
        ancestor first, an existing case under the same parent whose values
        match is reused; the leaf case is always new. Returns the leaf case
        ids, or None if the context has no collections.
        """
        if isinstance(items, dict):
            items = [items]
        collections = self.collections
        if not collections or not isinstance(items, list):
            return None

        created: list[Case] = []
        leaf_ids: list[int] = []
        for item in items:
            parent = None
            for depth, collection in enumerate(collections):
                values = {a.name: item.get(a.name, item.get(a.title))
                          for a in collection.attrs}
                is_leaf = depth == len(collections) - 1
                case = None if is_leaf else self._find_matching_case(collection, parent, values)
                if case is None:
                    case = Case(collection, parent=parent)
                    case.set_values_by_name(values)
                    collection.cases.append(case)
                    created.append(case)
                parent = case
            leaf_ids.append(parent.id)

        if created:
            result = {"success": True, "caseIDs": [c.id for c in created]}
            self._record(ChangeRecord(operation="createCases", result=result,
                                      requester=requester, cases=created))
        return leaf_ids

    @staticmethod
    def _find_matching_case(collection: Collection, parent: Optional[Case],
                            values: dict) -> Optional[Case]:
        for case in collection.cases:
            if case.parent is parent and case.values_by_name() == values:
                return case
        return None

    # ── Subscription ──────────────────────────────────────────

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        """Register for change delivery. Cancel the returned subscription to stop."""
        return Subscription(self._listeners, callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def drain_changes(self) -> list[ChangeRecord]:
        changes, self._new_changes = self._new_changes, []
        return changes

    def flush_changes(self) -> None:
        """Deliver the pending change list to every subscriber, once."""
        changes = self.drain_changes()
        if not changes:
            return
        for callback in list(self._listeners):
            try:
                callback(self, changes)
            except Exception as e:
                logger.exception(f"Error in change listener for {self.name!r}: {e}")

    # ── Lifecycle / archive ───────────────────────────────────

    def destroy(self) -> None:
        """Remove this context and everything in it from the document."""
        if self.destroyed:
            return
        self.destroyed = True
        self._collections.clear()
        self._selection.clear()
        if self.document is not None:
            self.document.remove_context(self)

    def to_archive(self, exclude_cases: bool = False) -> dict:
        return {
            "guid":        self.id,
            "name":        self.name,
            "title":       self.title,
            "description": self.description,
            "collections": [c.to_archive(exclude_cases=exclude_cases)
                            for c in self.collections],
        }

    def __repr__(self) -> str:
        return f"DataContext(name={self.name!r}, id={self.id})"
