"""
Error Taxonomy

Failures that stop a whole load are exceptions. Per-file and per-type
gaps are plain records: they are collected and reported, never raised.
"""

from dataclasses import dataclass
from typing import Any, Dict


class DeprecationDetectorError(Exception):
    """Base class for errors raised by deprecation_detector."""


class RuleSetLoadError(DeprecationDetectorError):
    """A rule set source is missing, unreadable or has an invalid format."""
    def __init__(self, message: str, path: str = None):
        self.path = path
        if path:
            super().__init__(f"{message}: {path}")
        else:
            super().__init__(message)


class CacheError(DeprecationDetectorError):
    """Rule set cache failure. Always degraded to a miss or a skipped write."""


class CacheReadError(CacheError):
    pass


class CacheWriteError(CacheError):
    pass


@dataclass(frozen=True)
class SourceParseWarning:
    """A source file that could not be parsed and was left out."""
    path: str
    message: str
    line: int = 0
    column: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "message": self.message,
            "line": self.line,
            "column": self.column,
        }

    def __str__(self):
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class AncestorResolutionGap:
    """An ancestor name that no configured source root declares."""
    type_name: str
    missing: str

    def __str__(self):
        return f"{self.type_name}: ancestor {self.missing} not found in any source root"
