"""
Host undo/redo stack.

Commands are pushed with ``execute()``; ``undo()`` and ``redo()`` walk
the two stacks. A command's undo/redo steps are plain callables, so a
command may delegate the real work elsewhere (e.g. to a plugin).
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def _noop() -> None:
    return None


class UndoCommand:
    """One reversible step on the undo stack."""

    def __init__(
        self,
        name: str,
        undo_string: str = "",
        redo_string: str = "",
        log: str = "",
        execute: Optional[Callable[[], None]] = None,
        undo: Optional[Callable[[], None]] = None,
        redo: Optional[Callable[[], None]] = None,
    ):
        self.name        = name
        self.undo_string = undo_string
        self.redo_string = redo_string
        self.log         = log
        self._execute    = execute or _noop
        self._undo       = undo or _noop
        self._redo       = redo or _noop

    def execute(self) -> None:
        self._execute()

    def undo(self) -> None:
        self._undo()

    def redo(self) -> None:
        self._redo()

    def __repr__(self) -> str:
        return f"UndoCommand(name={self.name!r})"


class UndoHistory:
    """Undo and redo stacks plus the last user-visible error."""

    def __init__(self):
        self._undo_stack: list[UndoCommand] = []
        self._redo_stack: list[UndoCommand] = []
        self.last_error: Optional[str] = None

    def execute(self, command: UndoCommand) -> None:
        command.execute()
        self._undo_stack.append(command)
        self._redo_stack.clear()
        if command.log:
            logger.info(command.log)

    def undo(self) -> bool:
        if not self._undo_stack:
            return False
        command = self._undo_stack.pop()
        command.undo()
        self._redo_stack.append(command)
        return True

    def redo(self) -> bool:
        if not self._redo_stack:
            return False
        command = self._redo_stack.pop()
        command.redo()
        self._undo_stack.append(command)
        return True

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    @property
    def next_undo(self) -> Optional[UndoCommand]:
        return self._undo_stack[-1] if self._undo_stack else None

    def show_error_alert(self, message: str) -> None:
        self.last_error = message
        logger.warning(f"Undo/redo failed: {message}")
