"""
Violation Rendering

Plain-text and JSON output of a violation list. Violations are grouped
per file in the order the files were checked; within a file they keep
checker order.
"""

import json
from collections import OrderedDict
from typing import Dict, List, Sequence

from deprecation_detector.violation.violation import Violation, ViolationKind


KIND_LABELS = {
    ViolationKind.CLASS: "class",
    ViolationKind.INTERFACE: "interface",
    ViolationKind.METHOD: "method",
    ViolationKind.SUPER_TYPE: "super type",
    ViolationKind.TYPE_HINT: "type hint",
    ViolationKind.METHOD_DEFINITION: "method definition",
}


def group_by_file(violations: Sequence[Violation]) -> Dict[str, List[Violation]]:
    grouped: Dict[str, List[Violation]] = OrderedDict()
    for violation in violations:
        grouped.setdefault(violation.file, []).append(violation)
    return grouped


def render_violations(violations: Sequence[Violation]) -> str:
    """Generate CLI-friendly text, one block per file."""
    lines = []
    for path, file_violations in group_by_file(violations).items():
        lines.append(path)
        lines.append("-" * 60)
        for number, violation in enumerate(file_violations, start=1):
            label = KIND_LABELS[violation.kind]
            lines.append(f"  {number:3}. line {violation.line:<5} {label:18} {violation.symbol}")
            if violation.message:
                lines.append(f"       {violation.message}")
        lines.append("")
    return "\n".join(lines)


def violations_to_json(violations: Sequence[Violation], indent: int = 2) -> str:
    return json.dumps([violation.to_dict() for violation in violations], indent=indent)
