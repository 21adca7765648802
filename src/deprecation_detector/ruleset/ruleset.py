"""
Rule Set Model

An immutable collection of deprecated classes, interfaces and methods,
each with its deprecation message. Loaders assemble rule sets through a
RuleSetBuilder; checkers only ever read them.

Lookups follow PHP's resolution rules: class, interface and method names
are case-insensitive and a leading namespace separator is ignored. The
spelling that was recorded is kept for display and serialization.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple


RULESET_FORMAT = "deprecation-detector.ruleset"
RULESET_VERSION = 1


class RuleKind(Enum):
    """Kinds of deprecated symbols a rule set can hold."""
    CLASS = "class"
    INTERFACE = "interface"
    METHOD = "method"


@dataclass(frozen=True)
class Deprecation:
    """One rule set entry."""
    kind: RuleKind
    name: str  # "Foo\\Bar" or "Foo\\Bar::baz"
    message: str


def normalize_name(name: str) -> str:
    """Lookup key for a class-like or method name."""
    return name.lstrip('\\').lower()


def method_key(class_name: str, method: str) -> Tuple[str, str]:
    return normalize_name(class_name), method.lower()


class RuleSet:
    """
    Deprecated symbols and their messages.

    Each (kind, name) pair maps to exactly one message. Instances are
    never mutated after construction; use RuleSetBuilder or merge().
    """

    def __init__(
        self,
        classes: Optional[Dict[str, str]] = None,
        interfaces: Optional[Dict[str, str]] = None,
        methods: Optional[Dict[Tuple[str, str], str]] = None,
    ):
        self._classes: Dict[str, Deprecation] = {}
        self._interfaces: Dict[str, Deprecation] = {}
        self._methods: Dict[Tuple[str, str], Deprecation] = {}

        for name, message in (classes or {}).items():
            self._classes[normalize_name(name)] = Deprecation(RuleKind.CLASS, name.lstrip('\\'), message)
        for name, message in (interfaces or {}).items():
            self._interfaces[normalize_name(name)] = Deprecation(RuleKind.INTERFACE, name.lstrip('\\'), message)
        for (class_name, method), message in (methods or {}).items():
            owner = class_name.lstrip('\\')
            self._methods[method_key(class_name, method)] = Deprecation(
                RuleKind.METHOD, f"{owner}::{method}", message)

    @classmethod
    def empty(cls) -> "RuleSet":
        return cls()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_class(self, name: str) -> Optional[Deprecation]:
        return self._classes.get(normalize_name(name))

    def get_interface(self, name: str) -> Optional[Deprecation]:
        return self._interfaces.get(normalize_name(name))

    def get_method(self, class_name: str, method: str) -> Optional[Deprecation]:
        return self._methods.get(method_key(class_name, method))

    def get_super_type(self, name: str) -> Optional[Deprecation]:
        """A deprecated class or interface used as a parent or implemented interface."""
        return self.get_class(name) or self.get_interface(name)

    def get_type_hint(self, name: str) -> Optional[Deprecation]:
        """A deprecated class or interface named in a type declaration."""
        return self.get_class(name) or self.get_interface(name)

    def has_class(self, name: str) -> bool:
        return normalize_name(name) in self._classes

    def has_interface(self, name: str) -> bool:
        return normalize_name(name) in self._interfaces

    def has_method(self, class_name: str, method: str) -> bool:
        return method_key(class_name, method) in self._methods

    # =========================================================================
    # VIEWS
    # =========================================================================

    @property
    def classes(self) -> Dict[str, str]:
        return {d.name: d.message for d in self._classes.values()}

    @property
    def interfaces(self) -> Dict[str, str]:
        return {d.name: d.message for d in self._interfaces.values()}

    @property
    def methods(self) -> Dict[Tuple[str, str], str]:
        result = {}
        for d in self._methods.values():
            class_name, _, method = d.name.rpartition('::')
            result[(class_name, method)] = d.message
        return result

    @property
    def super_types(self) -> Dict[str, str]:
        """Names whose use as a declared parent or interface is deprecated."""
        return {**self.classes, **self.interfaces}

    @property
    def type_hints(self) -> Dict[str, str]:
        """Names whose use in a type declaration is deprecated."""
        return {**self.classes, **self.interfaces}

    def __iter__(self) -> Iterator[Deprecation]:
        yield from self._classes.values()
        yield from self._interfaces.values()
        yield from self._methods.values()

    def __len__(self) -> int:
        return len(self._classes) + len(self._interfaces) + len(self._methods)

    def is_empty(self) -> bool:
        return len(self) == 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleSet):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(dump_rule_set(self))

    def __repr__(self):
        return (f"RuleSet({len(self._classes)} classes, {len(self._interfaces)} interfaces, "
                f"{len(self._methods)} methods)")

    # =========================================================================
    # COMBINATION AND SERIALIZATION
    # =========================================================================

    def merge(self, other: "RuleSet") -> "RuleSet":
        """A new rule set with other's entries overwriting ours."""
        builder = RuleSetBuilder()
        builder.merge(self)
        builder.merge(other)
        return builder.build()

    def to_dict(self) -> Dict[str, Any]:
        methods: Dict[str, Dict[str, str]] = {}
        for (class_name, method), message in self.methods.items():
            methods.setdefault(class_name, {})[method] = message
        return {
            "format": RULESET_FORMAT,
            "version": RULESET_VERSION,
            "classes": self.classes,
            "interfaces": self.interfaces,
            "methods": methods,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "RuleSet":
        """
        Rebuild a rule set from to_dict() output.

        Raises:
            ValueError: if the data is not a rule set of a known version.
        """
        if not isinstance(data, dict):
            raise ValueError("rule set must be a JSON object")
        if data.get("format") != RULESET_FORMAT:
            raise ValueError(f"unrecognized rule set format {data.get('format')!r}")
        if data.get("version") != RULESET_VERSION:
            raise ValueError(f"unsupported rule set version {data.get('version')!r}")

        classes = _string_map(data.get("classes", {}), "classes")
        interfaces = _string_map(data.get("interfaces", {}), "interfaces")
        raw_methods = data.get("methods", {})
        if not isinstance(raw_methods, dict):
            raise ValueError("'methods' must be an object")
        methods = {}
        for class_name, entries in raw_methods.items():
            for method, message in _string_map(entries, f"methods.{class_name}").items():
                methods[(class_name, method)] = message
        return cls(classes, interfaces, methods)


def _string_map(value: Any, label: str) -> Dict[str, str]:
    if not isinstance(value, dict):
        raise ValueError(f"'{label}' must be an object")
    for key, message in value.items():
        if not isinstance(message, str):
            raise ValueError(f"'{label}.{key}' must be a string")
    return dict(value)


def dump_rule_set(rule_set: RuleSet) -> str:
    """Canonical JSON text for a rule set."""
    return json.dumps(rule_set.to_dict(), sort_keys=True, indent=2)


def load_rule_set(text: str) -> RuleSet:
    """Parse dump_rule_set() output. Raises ValueError on bad input."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    return RuleSet.from_dict(data)


class RuleSetBuilder:
    """Mutable accumulator for rule set entries; later entries overwrite."""

    def __init__(self):
        self._classes: Dict[str, Tuple[str, str]] = {}
        self._interfaces: Dict[str, Tuple[str, str]] = {}
        self._methods: Dict[Tuple[str, str], Tuple[Tuple[str, str], str]] = {}

    def add_class(self, name: str, message: str) -> "RuleSetBuilder":
        self._classes[normalize_name(name)] = (name, message)
        return self

    def add_interface(self, name: str, message: str) -> "RuleSetBuilder":
        self._interfaces[normalize_name(name)] = (name, message)
        return self

    def add_method(self, class_name: str, method: str, message: str) -> "RuleSetBuilder":
        self._methods[method_key(class_name, method)] = ((class_name, method), message)
        return self

    def merge(self, rule_set: RuleSet) -> "RuleSetBuilder":
        for name, message in rule_set.classes.items():
            self.add_class(name, message)
        for name, message in rule_set.interfaces.items():
            self.add_interface(name, message)
        for (class_name, method), message in rule_set.methods.items():
            self.add_method(class_name, method, message)
        return self

    def __len__(self) -> int:
        return len(self._classes) + len(self._interfaces) + len(self._methods)

    def build(self) -> RuleSet:
        return RuleSet(
            classes=dict(self._classes.values()),
            interfaces=dict(self._interfaces.values()),
            methods=dict(self._methods.values()),
        )
