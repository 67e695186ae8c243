"""
interactive-bridge resource resolver.

Turns a parsed ResourceSelector into live document objects:

    selector  {dataContext: "Mammals", collection: "Species", type: "attributeList"}
    resolved  {interactiveFrame: <frame>, dataContext: <DataContext>,
               collection: <Collection>}

Rules:
  - The plugin's own frame (its host controller) is always present,
    under "interactiveFrame".
  - Unless the terminal type lives on the document or the frame, a
    selector that names no data context gets the "#default" context:
    the one the frame is bound to. Creating a data context is the
    exception — a brand-new context is never forced onto the default.
    Either way ``is_default_data_context`` is set when no context was named.
  - collection and attribute are looked up in the resolved context;
    attributes are retried under their legalized name.
  - caseByID is looked up in the context, caseByIndex and caseSearch
    in the resolved collection.
  - Every named part of the selector must resolve to something. The
    first one that does not yields a ResolutionFailure naming it; no
    partial result is returned.

Failures are returned, not raised; the router reports them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

from interactive_bridge.core.selector import ResourceSelector
from interactive_bridge.core.vocabulary import (
    Action, CONTEXT_FREE_TYPES, DEFAULT_CONTEXT,
)
from interactive_bridge.document.entities import legalize_attribute_name

if TYPE_CHECKING:
    from interactive_bridge.document.context import DataContext
    from interactive_bridge.document.entities import InteractiveFrame
    from interactive_bridge.document.graph import DocumentController


# ─────────────────────────────────────────────────────────────
# Result variants
# ─────────────────────────────────────────────────────────────

class ResolvedResources(dict):
    """Resource type name → live object. Always holds "interactiveFrame"."""

    def __init__(self, *args, is_default_data_context: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.is_default_data_context = is_default_data_context

    @property
    def frame(self) -> "InteractiveFrame":
        return self["interactiveFrame"]

    @property
    def data_context(self) -> Optional["DataContext"]:
        return self.get("dataContext")

    @property
    def collection(self):
        return self.get("collection")

    def __repr__(self) -> str:
        return (f"ResolvedResources({sorted(self.keys())}, "
                f"default_context={self.is_default_data_context})")


@dataclass(frozen=True)
class ResolutionFailure:
    """A named resource that could not be found."""
    key:   str
    value: Any

    @property
    def message(self) -> str:
        return f"Unable to resolve {self.key}: {self.value}"

    def __str__(self) -> str:
        return self.message


Resolution = Union[ResolvedResources, ResolutionFailure]


# ─────────────────────────────────────────────────────────────
# Resolver
# ─────────────────────────────────────────────────────────────

class ResourceResolver:
    """Resolves selectors against one document on behalf of one frame."""

    def __init__(self, document: "DocumentController", frame: "InteractiveFrame"):
        self.document = document
        self.frame    = frame

    def resolve(
        self,
        selector: ResourceSelector,
        action: Optional[Action | str] = None,
    ) -> Resolution:
        action = Action.from_string(action) if isinstance(action, str) else action
        names = dict(selector)
        result = ResolvedResources(interactiveFrame=self.frame)

        if selector.type not in CONTEXT_FREE_TYPES:
            if names.get("dataContext") is None:
                creating_context = (action is Action.CREATE
                                    and selector.type == "dataContext")
                if not creating_context:
                    names["dataContext"] = DEFAULT_CONTEXT
                result.is_default_data_context = True
            result["dataContext"] = self._resolve_context(names.get("dataContext"))

        context = result.get("dataContext")

        if names.get("component"):
            result["component"] = self.document.get_component_by_name(names["component"])
        if names.get("global"):
            result["global"] = self.document.get_global_by_name(names["global"])
        if names.get("collection"):
            result["collection"] = context and context.get_collection_by_name(names["collection"])
        if names.get("attribute"):
            result["attribute"] = context and self._resolve_attribute(context, names["attribute"])
        if names.get("caseByID"):
            result["caseByID"] = context and context.get_case_by_id(names["caseByID"])

        collection = result.get("collection")
        if names.get("caseByIndex"):
            result["caseByIndex"] = collection and collection.get_case_at(names["caseByIndex"])
        if names.get("caseSearch"):
            result["caseSearch"] = collection and collection.search_cases(names["caseSearch"])

        for key, value in names.items():
            if result.get(key) is None:
                return ResolutionFailure(key, value)
        return result

    def _resolve_context(self, name: Optional[str]) -> Optional["DataContext"]:
        if not name:
            return None
        if name == DEFAULT_CONTEXT:
            return self.frame.context
        return self.document.get_context_by_name(name)

    @staticmethod
    def _resolve_attribute(context: "DataContext", name: str):
        return (context.get_attribute_by_name(name)
                or context.get_attribute_by_name(legalize_attribute_name(name)))
