"""
deprecation_detector.resolver - Inheritance Resolution

Class/interface ancestor chains across application and dependency roots.
"""

from deprecation_detector.resolver.ancestors import AncestorResolver, TypeNode

__all__ = [
    "AncestorResolver",
    "TypeNode",
]
