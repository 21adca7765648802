"""
Violation Checkers

Each checker inspects one kind of usage in a parsed file and reports the
ones that match a rule set entry:

- ClassViolationChecker: references to deprecated classes
- InterfaceViolationChecker: references to deprecated interfaces
- MethodViolationChecker: calls of deprecated methods, including calls
  made through a subtype of the method's owner
- SuperTypeViolationChecker: declarations extending or implementing a
  deprecated type
- TypeHintViolationChecker: deprecated types in parameter, return and
  property declarations
- MethodDefinitionViolationChecker: methods overriding a deprecated
  ancestor method, even without a marker of their own

Checkers hold configuration only, so one instance can check any number
of files, from any number of threads.
"""

from typing import List, Optional, Sequence, Tuple

from deprecation_detector.parser.nodes import ClassDeclaration, ParsedFile
from deprecation_detector.resolver.ancestors import AncestorResolver
from deprecation_detector.ruleset.ruleset import Deprecation, RuleSet, normalize_name
from deprecation_detector.violation.violation import Violation, ViolationKind


class ViolationChecker:
    """Base class for violation checkers."""

    name: str = "checker"
    kind: ViolationKind = ViolationKind.CLASS

    def __init__(self, rule_set: RuleSet):
        self.rule_set = rule_set

    def check(self, parsed: ParsedFile) -> List[Violation]:
        """Check a parsed file and return the violations found in it."""
        raise NotImplementedError

    def _violation(self, rule: Deprecation, parsed: ParsedFile, line: int, column: int) -> Violation:
        return Violation(
            kind=self.kind,
            symbol=rule.name,
            file=parsed.path,
            line=line,
            column=column,
            message=rule.message,
            checker=self.name,
        )


class ClassViolationChecker(ViolationChecker):
    """Any written reference to a deprecated class."""

    name = "class"
    kind = ViolationKind.CLASS

    def check(self, parsed: ParsedFile) -> List[Violation]:
        violations = []
        for ref in parsed.references:
            rule = self.rule_set.get_class(ref.name)
            if rule is not None:
                violations.append(self._violation(rule, parsed, ref.line, ref.column))
        return violations


class InterfaceViolationChecker(ViolationChecker):
    """Any written reference to a deprecated interface."""

    name = "interface"
    kind = ViolationKind.INTERFACE

    def check(self, parsed: ParsedFile) -> List[Violation]:
        violations = []
        for ref in parsed.references:
            rule = self.rule_set.get_interface(ref.name)
            if rule is not None:
                violations.append(self._violation(rule, parsed, ref.line, ref.column))
        return violations


class MethodViolationChecker(ViolationChecker):
    """
    Calls of deprecated methods.

    The receiver type and then its ancestors, closest first, are looked
    up in the rule set; the first entry found is reported. Without a
    resolver only the receiver type itself is considered.
    """

    name = "method"
    kind = ViolationKind.METHOD

    def __init__(self, rule_set: RuleSet, resolver: Optional[AncestorResolver] = None):
        super().__init__(rule_set)
        self.resolver = resolver

    def _candidates(self, class_name: str) -> Tuple[str, ...]:
        if self.resolver is None:
            return (class_name,)
        return (class_name,) + self.resolver.ancestors(class_name)

    def check(self, parsed: ParsedFile) -> List[Violation]:
        violations = []
        for call in parsed.method_calls:
            for candidate in self._candidates(call.class_name):
                rule = self.rule_set.get_method(candidate, call.method)
                if rule is not None:
                    violations.append(self._violation(rule, parsed, call.line, call.column))
                    break
        return violations


class SuperTypeViolationChecker(ViolationChecker):
    """Class and interface declarations whose parent or interfaces are deprecated."""

    name = "super_type"
    kind = ViolationKind.SUPER_TYPE

    def check(self, parsed: ParsedFile) -> List[Violation]:
        violations = []
        for cls in parsed.classes:
            for ref in cls.super_type_refs:
                rule = self.rule_set.get_super_type(ref.name)
                if rule is not None:
                    violations.append(self._violation(rule, parsed, ref.line, ref.column))
        return violations


class TypeHintViolationChecker(ViolationChecker):
    """Deprecated types named in parameter, return and property declarations."""

    name = "type_hint"
    kind = ViolationKind.TYPE_HINT

    def check(self, parsed: ParsedFile) -> List[Violation]:
        violations = []
        for hint in parsed.type_hints:
            rule = self.rule_set.get_type_hint(hint.name)
            if rule is not None:
                violations.append(self._violation(rule, parsed, hint.line, hint.column))
        return violations


class MethodDefinitionViolationChecker(ViolationChecker):
    """
    Methods that override a deprecated ancestor method.

    Ancestors are walked closest first. The walk stops at the first
    ancestor that either has a rule for the method (a violation) or
    declares the method itself without one (the deprecated declaration,
    if any, is shadowed by a supported one).
    """

    name = "method_definition"
    kind = ViolationKind.METHOD_DEFINITION

    def __init__(self, rule_set: RuleSet, resolver: Optional[AncestorResolver] = None):
        super().__init__(rule_set)
        self.resolver = resolver

    def _ancestors_of(self, cls: ClassDeclaration) -> List[str]:
        if self.resolver is not None and cls.name in self.resolver:
            return list(self.resolver.ancestors(cls.name))

        # The declaring file is not under a resolver root: start from the
        # declared super types instead.
        chain = []
        seen = {normalize_name(cls.name)}
        for super_type in ([cls.parent] if cls.parent else []) + cls.interfaces:
            expanded = (super_type,)
            if self.resolver is not None:
                expanded += self.resolver.ancestors(super_type)
            for name in expanded:
                key = normalize_name(name)
                if key not in seen:
                    seen.add(key)
                    chain.append(name)
        return chain

    def check(self, parsed: ParsedFile) -> List[Violation]:
        violations = []
        for cls in parsed.classes:
            if not cls.methods:
                continue
            ancestors = self._ancestors_of(cls)
            for method in cls.methods:
                for ancestor in ancestors:
                    rule = self.rule_set.get_method(ancestor, method.name)
                    if rule is not None:
                        violations.append(self._violation(rule, parsed, method.line, method.column))
                        break
                    if self.resolver is not None and self.resolver.declares_method(ancestor, method.name):
                        break
        return violations


# ============================================================================
# COMPOSITION
# ============================================================================

def default_checkers(rule_set: RuleSet, resolver: Optional[AncestorResolver] = None) -> List[ViolationChecker]:
    """All six checkers, in reporting order."""
    return [
        ClassViolationChecker(rule_set),
        InterfaceViolationChecker(rule_set),
        MethodViolationChecker(rule_set, resolver),
        SuperTypeViolationChecker(rule_set),
        TypeHintViolationChecker(rule_set),
        MethodDefinitionViolationChecker(rule_set, resolver),
    ]


class ComposedViolationChecker(ViolationChecker):
    """
    Runs a fixed list of checkers over one file and concatenates their
    results in checker order.

    With dedupe=True, a usage reported by several checkers (same file,
    position and symbol) is kept only once, from the first checker.
    """

    name = "composed"

    def __init__(self, checkers: Sequence[ViolationChecker], dedupe: bool = False):
        self.checkers = list(checkers)
        self.dedupe = dedupe

    @classmethod
    def for_rule_set(cls, rule_set: RuleSet, resolver: Optional[AncestorResolver] = None,
                     dedupe: bool = False) -> "ComposedViolationChecker":
        return cls(default_checkers(rule_set, resolver), dedupe=dedupe)

    def check(self, parsed: Optional[ParsedFile]) -> List[Violation]:
        if parsed is None:
            return []

        violations = []
        for checker in self.checkers:
            violations.extend(checker.check(parsed))

        if self.dedupe:
            violations = dedupe_violations(violations)
        return violations


def dedupe_violations(violations: Sequence[Violation]) -> List[Violation]:
    """Drop violations whose location and symbol were already reported."""
    seen = set()
    result = []
    for violation in violations:
        key = violation.location_key
        if key in seen:
            continue
        seen.add(key)
        result.append(violation)
    return result
