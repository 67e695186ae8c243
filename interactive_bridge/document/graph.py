"""
interactive-bridge document controller.

The live document graph every plugin connection resolves against:
the ordered list of data contexts (with an added/removed signal), the
components, the global values, the undo history and the user log.

Update cycles:

    with document.update_cycle():
        context.apply_change(...)
        context.apply_change(...)

Changes made inside a cycle are held back; when the outermost cycle
exits, each touched context delivers its change list to its
subscribers once, and the context-list signal fires once if contexts
were added or removed. Outside a cycle, delivery is immediate.
"""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from interactive_bridge.document.context import DataContext, Subscription
from interactive_bridge.document.entities import (
    Component, GlobalValue, InteractiveFrame,
)
from interactive_bridge.document.undo import UndoHistory

logger = logging.getLogger(__name__)
user_logger = logging.getLogger("interactive_bridge.user")

USER_LOG_LIMIT = 500

ContextsCallback = Callable[["DocumentController"], None]


class DocumentController:
    """Owns the contexts, components and globals of one open document."""

    def __init__(self, standalone_mode: bool = False):
        self.standalone_mode = standalone_mode
        self.undo_history = UndoHistory()
        self.user_log: deque[str] = deque(maxlen=USER_LOG_LIMIT)

        self._contexts:   list[DataContext] = []
        self._components: list[Component] = []
        self._globals:    list[GlobalValue] = []

        self._context_listeners: list[ContextsCallback] = []
        self._cycle_depth = 0
        self._pending: list[DataContext] = []
        self._contexts_changed = False

    # ── Data contexts ─────────────────────────────────────────

    @property
    def contexts(self) -> list[DataContext]:
        return list(self._contexts)

    def create_data_context(self, props: Optional[dict] = None) -> Optional[DataContext]:
        """Create and register a new context. None if the name is taken."""
        props = dict(props or {})
        name = props.pop("name", None) or self._unique_context_name()
        if self.get_context_by_name(name) is not None:
            logger.debug(f"Data context {name!r} already exists")
            return None
        context = DataContext(name, document=self, **props)
        self._contexts.append(context)
        self._signal_contexts_changed()
        return context

    def _unique_context_name(self) -> str:
        n = len(self._contexts) + 1
        while self.get_context_by_name(f"Data_Context_{n}"):
            n += 1
        return f"Data_Context_{n}"

    def get_context_by_name(self, name: Any) -> Optional[DataContext]:
        for context in self._contexts:
            if context.name == name:
                return context
        return None

    def get_context_by_id(self, context_id: Any) -> Optional[DataContext]:
        for context in self._contexts:
            if str(context.id) == str(context_id):
                return context
        return None

    def remove_context(self, context: DataContext) -> None:
        if context in self._contexts:
            self._contexts.remove(context)
            if context in self._pending:
                self._pending.remove(context)
            for component in self._components:
                if isinstance(component, InteractiveFrame) and component.context is context:
                    component.context = None
            self._signal_contexts_changed()

    def observe_contexts(self, callback: ContextsCallback) -> Subscription:
        """Register for the "contexts added/removed" signal."""
        return Subscription(self._context_listeners, callback)

    def _signal_contexts_changed(self) -> None:
        if self._cycle_depth > 0:
            self._contexts_changed = True
            return
        for callback in list(self._context_listeners):
            try:
                callback(self)
            except Exception as e:
                logger.exception(f"Error in context-list listener: {e}")

    # ── Components ────────────────────────────────────────────

    @property
    def components(self) -> list[Component]:
        return list(self._components)

    def create_component(self, props: dict) -> Optional[Component]:
        """Generic component-creation entry point. ``props["type"]`` is a view class."""
        props = dict(props or {})
        props.pop("document", None)
        view_type = props.pop("type", None)
        if not view_type:
            return None
        allow_more = props.get("allowMoreThanOne", True)
        if not allow_more and any(c.type == view_type for c in self._components):
            logger.debug(f"Component of type {view_type!r} already present")
            return None
        component = Component(view_type, document=self, **props)
        self._components.append(component)
        return component

    def create_interactive_frame(
        self,
        title: Optional[str] = None,
        context: Optional[DataContext] = None,
        **props: Any,
    ) -> InteractiveFrame:
        frame = InteractiveFrame(document=self, title=title, context=context, **props)
        self._components.append(frame)
        return frame

    def get_component_by_name(self, name: Any) -> Optional[Component]:
        for component in self._components:
            if component.name == name:
                return component
        # Components may also be addressed by id.
        for component in self._components:
            if str(component.id) == str(name):
                return component
        return None

    def remove_component(self, component: Component) -> None:
        if component in self._components:
            self._components.remove(component)

    # ── Globals ───────────────────────────────────────────────

    @property
    def globals(self) -> list[GlobalValue]:
        return list(self._globals)

    def create_global(self, name: str, value: Any = 0) -> GlobalValue:
        existing = self.get_global_by_name(name)
        if existing is not None:
            return existing
        global_value = GlobalValue(name=name, value=value)
        self._globals.append(global_value)
        return global_value

    def get_global_by_name(self, name: Any) -> Optional[GlobalValue]:
        for global_value in self._globals:
            if global_value.name == name:
                return global_value
        return None

    # ── User log ──────────────────────────────────────────────

    def log_user(self, text: str) -> None:
        """Record a user-visible log entry."""
        self.user_log.append(text)
        user_logger.info(text)

    # ── Update cycles ─────────────────────────────────────────

    @contextmanager
    def update_cycle(self) -> Iterator["DocumentController"]:
        """Coalesce change delivery until the outermost cycle exits."""
        self._cycle_depth += 1
        try:
            yield self
        finally:
            self._cycle_depth -= 1
            if self._cycle_depth == 0:
                self._flush()

    @property
    def in_update_cycle(self) -> bool:
        return self._cycle_depth > 0

    def change_occurred(self, context: DataContext) -> None:
        """Called by a context after it records a change."""
        if self._cycle_depth > 0:
            if context not in self._pending:
                self._pending.append(context)
            return
        context.flush_changes()

    def _flush(self) -> None:
        # Context-list observers resubscribe first so a context created in
        # this cycle delivers its changes to them.
        if self._contexts_changed:
            self._contexts_changed = False
            self._signal_contexts_changed()
        pending, self._pending = self._pending, []
        for context in pending:
            context.flush_changes()
