"""
interactive-bridge vocabulary types.

Action, ResourceType — the closed sets every selector, command and
handler refers to — plus the small lookup tables the resolver and the
component handler share.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


# ─────────────────────────────────────────────────────────────
# Action
# ─────────────────────────────────────────────────────────────

class Action(str, Enum):
    """The verbs a command may carry."""
    CREATE = "create"
    GET    = "get"
    UPDATE = "update"
    DELETE = "delete"
    NOTIFY = "notify"

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["Action"]:
        """Parse an action name. Returns None for anything unknown."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None


# ─────────────────────────────────────────────────────────────
# Resource types
# ─────────────────────────────────────────────────────────────

class ResourceType(str, Enum):
    """Every addressable resource kind.

    The value is the token used on the wire, in selectors such as
    ``dataContext[D].collection[C].caseByIndex[0]``. Incoming tokens
    that are not listed here map to UNSUPPORTED rather than raising,
    so the router can answer with an error result.
    """
    INTERACTIVE_FRAME   = "interactiveFrame"
    DATA_CONTEXT        = "dataContext"
    DATA_CONTEXT_LIST   = "dataContextList"
    COLLECTION          = "collection"
    COLLECTION_LIST     = "collectionList"
    ATTRIBUTE           = "attribute"
    ATTRIBUTE_LIST      = "attributeList"
    CASE                = "case"
    ALL_CASES           = "allCases"
    CASE_BY_INDEX       = "caseByIndex"
    CASE_BY_ID          = "caseByID"
    CASE_COUNT          = "caseCount"
    CASE_SEARCH         = "caseSearch"
    ITEM                = "item"
    SELECTION_LIST      = "selectionList"
    COMPONENT           = "component"
    COMPONENT_LIST      = "componentList"
    GLOBAL              = "global"
    GLOBAL_LIST         = "globalList"
    LOG_MESSAGE         = "logMessage"
    UNDO_CHANGE_NOTICE  = "undoChangeNotice"
    UNSUPPORTED         = "unsupported"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "ResourceType":
        """Map a selector token to a ResourceType; unknown → UNSUPPORTED."""
        if not value or value == cls.UNSUPPORTED.value:
            return cls.UNSUPPORTED
        try:
            return cls(value)
        except ValueError:
            return cls.UNSUPPORTED


# Resource types that live on the document or on the plugin's own frame.
# Selectors of these types never imply a default data context.
CONTEXT_FREE_TYPES: frozenset[str] = frozenset({
    "interactiveFrame",
    "logMessage",
    "dataContextList",
    "undoChangeNotice",
    "undoableActionPerformed",
    "component",
    "componentList",
    "global",
    "globalList",
})

# Sentinel data context name: "whichever context this plugin is bound to".
DEFAULT_CONTEXT = "#default"


# ─────────────────────────────────────────────────────────────
# Component types
# ─────────────────────────────────────────────────────────────

# External component type token → host view class identifier.
COMPONENT_TYPES: dict[str, str] = {
    "graph":      "GraphView",
    "caseTable":  "TableView",
    "map":        "MapView",
    "slider":     "SliderView",
    "calculator": "Calculator",
    "text":       "TextView",
    "webView":    "WebView",
    "guide":      "GuideView",
}


def component_class_for(type_name: Optional[str]) -> Optional[str]:
    """Return the view class for an external component type, or None."""
    if not type_name:
        return None
    return COMPONENT_TYPES.get(type_name)
