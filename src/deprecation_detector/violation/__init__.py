"""
deprecation_detector.violation - Violation Detection

The violation record, the six checkers and their composition, and
plain-text rendering.
"""

from deprecation_detector.violation.violation import Violation, ViolationKind
from deprecation_detector.violation.checkers import (
    ClassViolationChecker,
    ComposedViolationChecker,
    InterfaceViolationChecker,
    MethodDefinitionViolationChecker,
    MethodViolationChecker,
    SuperTypeViolationChecker,
    TypeHintViolationChecker,
    ViolationChecker,
    dedupe_violations,
    default_checkers,
)
from deprecation_detector.violation.renderer import group_by_file, render_violations, violations_to_json

__all__ = [
    "Violation",
    "ViolationKind",
    "ViolationChecker",
    "ClassViolationChecker",
    "InterfaceViolationChecker",
    "MethodViolationChecker",
    "SuperTypeViolationChecker",
    "TypeHintViolationChecker",
    "MethodDefinitionViolationChecker",
    "ComposedViolationChecker",
    "dedupe_violations",
    "default_checkers",
    "group_by_file",
    "render_violations",
    "violations_to_json",
]
