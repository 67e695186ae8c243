"""
interactive-bridge document graph.

    from interactive_bridge.document import (
        DocumentController, DataContext, ChangeRecord, Subscription,
        Collection, Attribute, Case, Component, InteractiveFrame,
        GlobalValue, UndoHistory, UndoCommand,
    )
"""

from interactive_bridge.document.context import (
    ChangeRecord,
    DataContext,
    Subscription,
)
from interactive_bridge.document.entities import (
    Attribute,
    Case,
    Collection,
    Component,
    GlobalValue,
    InteractiveFrame,
    InteractiveModel,
    legalize_attribute_name,
)
from interactive_bridge.document.graph import DocumentController
from interactive_bridge.document.undo import UndoCommand, UndoHistory

__all__ = [
    "DocumentController", "DataContext", "ChangeRecord", "Subscription",
    "Attribute", "Case", "Collection", "Component", "GlobalValue",
    "InteractiveFrame", "InteractiveModel", "legalize_attribute_name",
    "UndoCommand", "UndoHistory",
]
