"""
interactive-bridge document entities.

The nouns of the host document. Everything a plugin can address is one
of these, or a DataContext (see context.py) that owns them.

Containment:
    DocumentController
    ├── DataContext
    │   └── Collection        (parent → child chain, ancestor first)
    │       ├── Attribute
    │       └── Case          (parent case lives in the parent collection)
    ├── Component             (views; InteractiveFrame is the plugin's own)
    └── GlobalValue

Identity: every object gets an integer id from a process-wide counter.
Archives expose that id as ``guid``; the result sanitizer projects it
onto the wire ``id`` field.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from interactive_bridge.document.context import DataContext
    from interactive_bridge.document.graph import DocumentController


_ids = itertools.count(1)


def next_id() -> int:
    return next(_ids)


def legalize_attribute_name(name: Any) -> str:
    """Turn an arbitrary display name into a legal attribute name.

    "Body Mass (kg)" → "Body_Mass__kg_", "2nd" → "_2nd".
    """
    text = re.sub(r"\W", "_", str(name).strip())
    if text and text[0].isdigit():
        text = "_" + text
    return text


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


# ─────────────────────────────────────────────────────────────
# Attribute
# ─────────────────────────────────────────────────────────────

class Attribute:
    """One column of a collection."""

    EDITABLE = ("title", "type", "description", "formula", "precision",
                "unit", "editable", "hidden")

    def __init__(
        self,
        name: str,
        collection: Optional["Collection"] = None,
        title: Optional[str] = None,
        id: Optional[int] = None,
        **props: Any,
    ):
        self.id: int = id if id is not None else next_id()
        self.name: str = legalize_attribute_name(name)
        self.title: str = title or str(name)
        self.collection = collection
        self.type: Optional[str] = props.get("type")
        self.description: str = props.get("description", "")
        self.formula: Optional[str] = props.get("formula")
        self.precision: Optional[int] = props.get("precision")
        self.unit: Optional[str] = props.get("unit")
        self.editable: bool = props.get("editable", True)
        self.hidden: bool = props.get("hidden", False)

    def update(self, props: dict) -> None:
        for key in self.EDITABLE:
            if key in props:
                setattr(self, key, props[key])
        if props.get("newName"):
            self.name = legalize_attribute_name(props["newName"])

    def to_archive(self) -> dict:
        return {
            "guid":        self.id,
            "name":        self.name,
            "title":       self.title,
            "type":        self.type,
            "description": self.description,
            "formula":     self.formula,
            "precision":   self.precision,
            "unit":        self.unit,
            "editable":    self.editable,
            "hidden":      self.hidden,
        }

    def __repr__(self) -> str:
        return f"Attribute(name={self.name!r}, id={self.id})"


# ─────────────────────────────────────────────────────────────
# Case
# ─────────────────────────────────────────────────────────────

class Case:
    """One row of a collection. Values are keyed by attribute id."""

    def __init__(
        self,
        collection: "Collection",
        parent: Optional["Case"] = None,
        id: Optional[int] = None,
    ):
        self.id: int = id if id is not None else next_id()
        self.collection = collection
        self.parent = parent
        self.children: list[Case] = []
        self._values: dict[int, Any] = {}
        if parent is not None:
            parent.children.append(self)

    def get_value(self, attr_id: int) -> Any:
        if attr_id in self._values:
            return self._values[attr_id]
        # Values of parent-collection attributes are inherited.
        if self.parent is not None:
            return self.parent.get_value(attr_id)
        return None

    def set_value(self, attr_id: int, value: Any) -> None:
        self._values[attr_id] = value

    def drop_value(self, attr_id: int) -> None:
        self._values.pop(attr_id, None)

    def set_values_by_name(self, values: dict) -> None:
        """Assign values keyed by attribute name; unknown names are ignored."""
        for name, value in (values or {}).items():
            attr = self.collection.get_attribute_by_name(name)
            if attr is not None:
                self.set_value(attr.id, value)

    def values_by_name(self) -> dict:
        """Values of this case's own collection, keyed by attribute name."""
        return {attr.name: self.get_value(attr.id) for attr in self.collection.attrs}

    def descendants(self) -> list["Case"]:
        found = []
        for child in self.children:
            found.append(child)
            found.extend(child.descendants())
        return found

    def __repr__(self) -> str:
        return f"Case(id={self.id}, collection={self.collection.name!r})"


# ─────────────────────────────────────────────────────────────
# Collection
# ─────────────────────────────────────────────────────────────

_SEARCH_RE = re.compile(r"^\s*(.+?)\s*(==|!=|<=|>=|<|>)\s*(.*?)\s*$")


class Collection:
    """An ordered set of cases sharing attributes."""

    EDITABLE = ("title", "description", "labels", "collapseChildren")

    def __init__(
        self,
        name: str,
        context: "DataContext",
        parent: Optional["Collection"] = None,
        title: Optional[str] = None,
        id: Optional[int] = None,
        **props: Any,
    ):
        self.id: int = id if id is not None else next_id()
        self.name: str = name
        self.title: str = title or name
        self.context = context
        self.parent = parent
        self.description: str = props.get("description", "")
        self.labels: dict = props.get("labels") or {}
        self.collapseChildren: bool = props.get("collapseChildren", False)
        self.attrs: list[Attribute] = []
        self.cases: list[Case] = []

    # ── Attributes ────────────────────────────────────────────

    def add_attribute(self, props: dict) -> Attribute:
        props = dict(props)
        name = props.pop("name")
        attr = Attribute(name, collection=self, **props)
        self.attrs.append(attr)
        return attr

    def get_attribute_by_name(self, name: str) -> Optional[Attribute]:
        for attr in self.attrs:
            if attr.name == name:
                return attr
        return None

    def remove_attribute(self, attr: Attribute) -> None:
        if attr in self.attrs:
            self.attrs.remove(attr)
            for case in self.cases:
                case.drop_value(attr.id)

    # ── Cases ─────────────────────────────────────────────────

    def get_case_at(self, index: Any) -> Optional[Case]:
        try:
            i = int(index)
        except (TypeError, ValueError):
            return None
        if 0 <= i < len(self.cases):
            return self.cases[i]
        return None

    def get_case_by_id(self, case_id: Any) -> Optional[Case]:
        for case in self.cases:
            if str(case.id) == str(case_id):
                return case
        return None

    def get_case_index_by_id(self, case_id: Any) -> Optional[int]:
        for i, case in enumerate(self.cases):
            if str(case.id) == str(case_id):
                return i
        return None

    def search_cases(self, expression: str) -> Optional[list[Case]]:
        """Cases matching ``attr <op> value``. None if the expression is malformed."""
        match = _SEARCH_RE.match(expression or "")
        if not match:
            return None
        name, op, raw = match.groups()
        attr = (self.get_attribute_by_name(name)
                or self.get_attribute_by_name(legalize_attribute_name(name)))
        if attr is None:
            return None

        def test(value: Any) -> bool:
            left, right = _to_number(value), _to_number(raw)
            if left is None or right is None:
                left, right = ("" if value is None else str(value)), raw
            if op == "==": return left == right
            if op == "!=": return left != right
            if op == "<":  return left <  right
            if op == "<=": return left <= right
            if op == ">":  return left >  right
            return left >= right

        try:
            return [case for case in self.cases if test(case.get_value(attr.id))]
        except TypeError:
            return None

    # ── Properties / archive ──────────────────────────────────

    def update(self, props: dict) -> None:
        for key in self.EDITABLE:
            if key in props:
                setattr(self, key, props[key])
        if props.get("name"):
            self.name = props["name"]

    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth() + 1

    def to_archive(self, exclude_cases: bool = False) -> dict:
        archive = {
            "guid":        self.id,
            "name":        self.name,
            "title":       self.title,
            "description": self.description,
            "labels":      self.labels,
            "parent":      self.parent.id if self.parent else None,
            "collapseChildren": self.collapseChildren,
            "attrs":       [a.to_archive() for a in self.attrs],
        }
        if not exclude_cases:
            archive["cases"] = [
                {
                    "guid":   case.id,
                    "parent": case.parent.id if case.parent else None,
                    "values": case.values_by_name(),
                }
                for case in self.cases
            ]
        return archive

    def __repr__(self) -> str:
        return f"Collection(name={self.name!r}, id={self.id})"


# ─────────────────────────────────────────────────────────────
# Components
# ─────────────────────────────────────────────────────────────

class Component:
    """A view in the host document — graph, table, slider, plugin frame."""

    def __init__(
        self,
        type: str,
        document: Optional["DocumentController"] = None,
        name: Optional[str] = None,
        title: Optional[str] = None,
        id: Optional[int] = None,
        **props: Any,
    ):
        self.id: int = id if id is not None else next_id()
        self.type: str = type
        self.document = document
        self.name: str = name or f"{type}{self.id}"
        self.title: str = title or self.name
        self.description: str = props.pop("description", "")
        self.allow_more_than_one: bool = props.pop("allowMoreThanOne", True)
        self.storage: dict[str, Any] = props
        self.destroyed = False

    def update(self, props: dict) -> None:
        for key in ("title", "description"):
            if props.get(key):
                setattr(self, key, props[key])

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True
        if self.document is not None:
            self.document.remove_component(self)

    def to_archive(self) -> dict:
        return {
            "guid":             self.id,
            "type":             self.type,
            "name":             self.name,
            "title":            self.title,
            "description":      self.description,
            "componentStorage": dict(self.storage),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, id={self.id})"


@dataclass
class InteractiveModel:
    """Frame metadata a plugin reads and writes through interactiveFrame."""
    title:                      Optional[str] = None
    version:                    Optional[str] = None
    dimensions:                 Optional[dict] = None
    prevent_bring_to_front:     bool = False
    prevent_data_context_reorg: bool = False
    saved_state:                Optional[Any] = None


class InteractiveFrame(Component):
    """The component embedding one plugin.

    It is the host controller a plugin connection resolves against: it
    carries the frame model, the title shown on the host view, and the
    data context the plugin is bound to by default.
    """

    VIEW_TYPE = "GameView"

    def __init__(
        self,
        document: Optional["DocumentController"] = None,
        name: Optional[str] = None,
        title: Optional[str] = None,
        context: Optional["DataContext"] = None,
        **props: Any,
    ):
        super().__init__(self.VIEW_TYPE, document=document, name=name,
                         title=title, **props)
        self.model = InteractiveModel(title=title)
        self.view_title: str = title or ""
        self.context = context

    def to_archive(self) -> dict:
        archive = super().to_archive()
        archive["componentStorage"].update({
            "currentGameName":  self.model.title,
            "savedGameState":   self.model.saved_state,
        })
        return archive


# ─────────────────────────────────────────────────────────────
# Global values
# ─────────────────────────────────────────────────────────────

@dataclass
class GlobalValue:
    """A named document-wide scalar (slider value, constant)."""
    name:  str
    value: Any = 0
    id:    int = field(default_factory=next_id)

    def to_archive(self) -> dict:
        return {"guid": self.id, "name": self.name, "value": self.value}
