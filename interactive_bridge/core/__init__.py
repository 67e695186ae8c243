"""
interactive-bridge core — the transport-free pieces of the protocol.

    from interactive_bridge.core import (
        # Vocabulary
        Action, ResourceType, CONTEXT_FREE_TYPES, DEFAULT_CONTEXT,
        COMPONENT_TYPES, component_class_for,
        # Selectors
        ResourceSelector, parse_selector,
        # Resolution
        ResourceResolver, ResolvedResources, ResolutionFailure,
        # Sanitizing
        sanitize_result,
    )
"""

from interactive_bridge.core.vocabulary import (
    Action,
    COMPONENT_TYPES,
    CONTEXT_FREE_TYPES,
    DEFAULT_CONTEXT,
    ResourceType,
    component_class_for,
)
from interactive_bridge.core.selector import ResourceSelector, parse_selector
from interactive_bridge.core.resolver import (
    ResolutionFailure,
    ResolvedResources,
    ResourceResolver,
)
from interactive_bridge.core.sanitize import MAX_LEVELS, sanitize_result

__all__ = [
    # Vocabulary
    "Action", "ResourceType", "CONTEXT_FREE_TYPES", "DEFAULT_CONTEXT",
    "COMPONENT_TYPES", "component_class_for",
    # Selectors
    "ResourceSelector", "parse_selector",
    # Resolution
    "ResourceResolver", "ResolvedResources", "ResolutionFailure",
    # Sanitizing
    "sanitize_result", "MAX_LEVELS",
]
