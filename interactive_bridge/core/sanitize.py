"""
Result sanitizer.

Internal archives identify objects by ``guid``; the wire vocabulary uses
``id``. Rather than rewrite every payload builder, results are walked
once on the way out and each mapping that carries a ``guid`` gains an
``id`` with the same value. An existing ``id`` is never overwritten and
``guid`` itself is left in place.
"""

from __future__ import annotations

from typing import Any

MAX_LEVELS   = 10
INTERNAL_ID  = "guid"
EXTERNAL_ID  = "id"


def _rename_identity(obj: dict) -> None:
    internal = obj.get(INTERNAL_ID)
    if internal is not None and EXTERNAL_ID not in obj:
        obj[EXTERNAL_ID] = internal


def _visit(obj: Any, level: int) -> None:
    if level < 0 or obj is None or isinstance(obj, (str, bytes, int, float, bool)):
        return
    if isinstance(obj, (list, tuple)):
        for item in obj:
            _visit(item, level - 1)
    elif isinstance(obj, dict):
        for value in obj.values():
            _visit(value, level - 1)
        _rename_identity(obj)


def sanitize_result(values: Any, max_levels: int = MAX_LEVELS) -> Any:
    """Project internal identity fields onto the wire id field, in place.

    Recurses at most ``max_levels`` deep, so cyclic or runaway payloads
    terminate. Returns ``values`` for convenience; primitives come back
    unchanged.
    """
    _visit(values, max_levels)
    return values
