"""
Parsed File Model

Declarations and usages extracted from one PHP source file. This is the
only view of a file the rule loaders, the ancestor resolver and the
violation checkers ever see; token streams are discarded after parsing.

All class-like names are fully qualified without a leading backslash.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple


# Reference contexts
REF_NEW = 'new'
REF_STATIC = 'static'
REF_CLASS_CONSTANT = 'class'
REF_INSTANCEOF = 'instanceof'
REF_CATCH = 'catch'
REF_EXTENDS = 'extends'
REF_IMPLEMENTS = 'implements'
REF_TRAIT = 'use'

# Type hint positions
HINT_PARAMETER = 'parameter'
HINT_RETURN = 'return'
HINT_PROPERTY = 'property'


@dataclass(frozen=True)
class NameReference:
    """A class-like name written at a specific location."""
    name: str
    line: int
    column: int
    context: str = REF_NEW


@dataclass(frozen=True)
class MethodCall:
    """A method call whose receiver type could be determined statically."""
    class_name: str
    method: str
    line: int
    column: int
    is_static: bool = False


@dataclass(frozen=True)
class TypeHint:
    """A class-like type named in a parameter, return or property declaration."""
    name: str
    line: int
    column: int
    position: str = HINT_PARAMETER
    declared_in: str = ""  # e.g. "App\\Foo::bar" or "App\\Foo::$baz"


@dataclass
class Parameter:
    name: str
    types: List[str] = field(default_factory=list)
    line: int = 0
    column: int = 0


@dataclass
class MethodDeclaration:
    """A method declared in a class, interface or trait body."""
    name: str
    owner: str
    line: int = 0
    column: int = 0
    parameters: List[Parameter] = field(default_factory=list)
    return_types: List[str] = field(default_factory=list)
    doc: Optional[str] = None
    is_static: bool = False
    is_abstract: bool = False


@dataclass
class PropertyDeclaration:
    name: str
    types: List[str] = field(default_factory=list)
    line: int = 0
    column: int = 0
    doc: Optional[str] = None


@dataclass
class ClassDeclaration:
    """
    A class, interface, trait or enum declaration.

    For interfaces the extended interfaces are kept in ``interface_refs``
    and ``parent_ref`` stays empty, so both kinds expose their super
    types the same way.
    """
    name: str
    kind: str = 'class'  # 'class', 'interface', 'trait', 'enum'
    line: int = 0
    column: int = 0
    parent_ref: Optional[NameReference] = None
    interface_refs: List[NameReference] = field(default_factory=list)
    trait_refs: List[NameReference] = field(default_factory=list)
    methods: List[MethodDeclaration] = field(default_factory=list)
    properties: List[PropertyDeclaration] = field(default_factory=list)
    doc: Optional[str] = None

    @property
    def parent(self) -> Optional[str]:
        return self.parent_ref.name if self.parent_ref else None

    @property
    def interfaces(self) -> List[str]:
        return [ref.name for ref in self.interface_refs]

    @property
    def super_type_refs(self) -> List[NameReference]:
        """Declared parent first, then implemented/extended interfaces."""
        refs = [self.parent_ref] if self.parent_ref else []
        return refs + list(self.interface_refs)

    @property
    def is_interface(self) -> bool:
        return self.kind == 'interface'

    def get_method(self, name: str) -> Optional[MethodDeclaration]:
        lowered = name.lower()
        for method in self.methods:
            if method.name.lower() == lowered:
                return method
        return None

    def property_type(self, name: str) -> Optional[str]:
        """The single class-like type of a property, if it has one."""
        for prop in self.properties:
            if prop.name == name and len(prop.types) == 1:
                return prop.types[0]
        return None

    def __repr__(self):
        return f"ClassDeclaration({self.kind} {self.name}, {len(self.methods)} methods)"


@dataclass
class ParsedFile:
    """Everything the checkers need from one source file."""
    path: str
    namespace: str = ""
    classes: List[ClassDeclaration] = field(default_factory=list)
    references: List[NameReference] = field(default_factory=list)
    method_calls: List[MethodCall] = field(default_factory=list)
    type_hints: List[TypeHint] = field(default_factory=list)

    def iter_methods(self) -> Iterator[Tuple[ClassDeclaration, MethodDeclaration]]:
        for cls in self.classes:
            for method in cls.methods:
                yield cls, method

    def get_class(self, name: str) -> Optional[ClassDeclaration]:
        lowered = name.lower()
        for cls in self.classes:
            if cls.name.lower() == lowered:
                return cls
        return None

    def summary(self) -> Dict[str, Any]:
        return {
            'path': self.path,
            'namespace': self.namespace,
            'classes': len(self.classes),
            'references': len(self.references),
            'method_calls': len(self.method_calls),
            'type_hints': len(self.type_hints),
        }

    def __repr__(self):
        return f"ParsedFile({self.path}, {len(self.classes)} classes)"
