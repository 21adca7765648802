"""
Violation Record

One reported use or declaration of a deprecated symbol. Checkers produce
them, renderers consume them. Violations have no identity beyond their
fields; two checkers reporting the same location produce two records.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple


class ViolationKind(Enum):
    """Which kind of usage was found."""
    CLASS = "class"                         # reference to a deprecated class
    INTERFACE = "interface"                 # reference to a deprecated interface
    METHOD = "method"                       # call of a deprecated method
    SUPER_TYPE = "super_type"               # extends/implements a deprecated type
    TYPE_HINT = "type_hint"                 # deprecated type in a declaration
    METHOD_DEFINITION = "method_definition" # overrides a deprecated method


@dataclass(frozen=True)
class Violation:
    """A single deprecated usage found in a source file."""
    kind: ViolationKind
    symbol: str             # e.g. "Foo\\Old" or "Foo\\Bar::baz"
    file: str
    line: int
    column: int = 0
    message: str = ""       # the deprecation message of the matched rule
    checker: str = ""       # name of the checker that reported it

    @property
    def location_key(self) -> Tuple[str, int, int, str]:
        """Identifies a usage independently of which checker found it."""
        return (self.file, self.line, self.column, self.symbol.lower())

    @property
    def sort_key(self) -> Tuple[str, int, int]:
        return (self.file, self.line, self.column)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'symbol': self.symbol,
            'file': self.file,
            'line': self.line,
            'column': self.column,
            'message': self.message,
            'checker': self.checker,
        }

    def __str__(self):
        loc = f"{self.file}:{self.line}"
        if self.column:
            loc += f":{self.column}"
        text = f"{loc}: {self.kind.value} {self.symbol}"
        if self.message:
            text += f" ({self.message})"
        return text
