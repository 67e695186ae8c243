"""
interactive-bridge resource selectors.

A resource selector is the compact path string a plugin uses to name a
resource in the document:

    "interactiveFrame"
    "dataContext[Mammals]"
    "dataContext[Mammals].collection[Species].attribute[Mass]"
    "dataContext[#default].collection[Species].caseByIndex[0]"

Each dot-separated segment is either ``type[name]`` — which records a
named resource and makes ``type`` the terminal — or a bare token, which
only sets the terminal. Parsing never fails: a segment that does not
match the bracket form is taken as a bare type, and an unknown type is
passed through for the resolver and router to reject.

    >>> sel = parse_selector("dataContext[D].collection[C].attributeList")
    >>> sel["dataContext"], sel["collection"], sel.type
    ('D', 'C', 'attributeList')
"""

from __future__ import annotations

import re
from typing import Optional


_SEGMENT_RE = re.compile(r"([A-Za-z0-9_]+)\[([#_A-Za-z0-9][^\]]*)]")


class ResourceSelector(dict):
    """A parsed selector — resource type name → requested name.

    Subclasses dict so the named parts can be iterated and looked up
    directly; the terminal resource type lives on ``.type`` and is not
    one of the keys.
    """

    def __init__(self, *args, type: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.type = type

    def named(self, resource_type: str) -> Optional[str]:
        """The requested name for a resource type, or None."""
        return self.get(resource_type)

    def copy(self) -> "ResourceSelector":
        return ResourceSelector(self, type=self.type)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ResourceSelector):
            return self.type == other.type and dict.__eq__(self, other)
        return dict.__eq__(self, other)

    __hash__ = None

    def __repr__(self) -> str:
        return f"ResourceSelector(type={self.type!r}, {dict.__repr__(self)})"


def parse_selector(resource: Optional[str]) -> ResourceSelector:
    """Parse a resource selector string. Never raises."""
    selector = ResourceSelector()
    if not isinstance(resource, str):
        return selector

    for segment in resource.split("."):
        match = _SEGMENT_RE.search(segment)
        if match:
            resource_type, name = match.group(1), match.group(2)
            selector[resource_type] = name
            selector.type = resource_type
        else:
            selector.type = segment
    return selector
