"""
Ancestor Resolver

Builds the class/interface inheritance graph of one or more source roots
(typically the application under check, then its dependencies) and
answers two questions about it:

- ancestors(T): T's parent classes, closest first, followed by every
  interface T or one of those parents implements, each expanded through
  the interfaces it extends.
- find_method_origin(T, m): the closest ancestor that declares m.

The graph holds declarations only; syntax trees are dropped as soon as
each file's headers have been read. When two roots declare the same
name, the root configured first wins. Ancestors that no root declares
end their branch: the chain still names them, but cannot continue past
them.

Chains are memoized. The graph itself never changes after construction,
so a chain computed once stays valid; concurrent callers may compute the
same chain twice but only one result is published.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from deprecation_detector.errors import AncestorResolutionGap, SourceParseWarning
from deprecation_detector.finder import ParsedFileFinder
from deprecation_detector.parser.nodes import ClassDeclaration, ParsedFile
from deprecation_detector.ruleset.ruleset import normalize_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TypeNode:
    """One declared class or interface."""
    name: str
    kind: str  # 'class' or 'interface'
    parent: Optional[str]
    interfaces: Tuple[str, ...]
    methods: Tuple[str, ...]
    source_root: str
    path: str = ""

    @property
    def method_keys(self) -> FrozenSet[str]:
        return frozenset(method.lower() for method in self.methods)

    def declares(self, method: str) -> bool:
        return method.lower() in self.method_keys

    @classmethod
    def from_declaration(cls, decl: ClassDeclaration, source_root: str, path: str = "") -> "TypeNode":
        return cls(
            name=decl.name,
            kind='interface' if decl.is_interface else 'class',
            parent=decl.parent,
            interfaces=tuple(decl.interfaces),
            methods=tuple(method.name for method in decl.methods),
            source_root=source_root,
            path=path,
        )


class AncestorResolver:
    """
    Inheritance graph over a list of source roots.

    Usage:
        resolver = AncestorResolver([Path("src"), Path("vendor")])
        resolver.ancestors("App\\Controller\\HomeController")
        resolver.find_method_origin("App\\Controller\\HomeController", "render")
    """

    def __init__(self, source_roots: Sequence = ()):
        self.source_roots: List[Path] = [Path(root) for root in source_roots]
        self.skipped: List[SourceParseWarning] = []
        self.shadowed = 0
        self._nodes: Dict[str, TypeNode] = {}
        self._chains: Dict[str, Tuple[str, ...]] = {}
        self._gaps: Set[AncestorResolutionGap] = set()
        self._lock = threading.Lock()

        for root in self.source_roots:
            self._index_root(root)

    @classmethod
    def from_parsed_files(cls, roots: Sequence[Iterable[ParsedFile]]) -> "AncestorResolver":
        """Build a resolver from already parsed files, one group per root, in priority order."""
        resolver = cls()
        for index, files in enumerate(roots):
            for parsed in files:
                resolver._add_file(parsed, f"<root {index}>")
        return resolver

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    def _index_root(self, root: Path) -> None:
        if not root.exists():
            logger.warning(f"Source root {root} does not exist, skipping")
            return

        before = len(self._nodes)
        finder = ParsedFileFinder(root)
        for parsed in finder:
            self._add_file(parsed, str(root))
        self.skipped.extend(finder.skipped)
        logger.info(f"Indexed {len(self._nodes) - before} types from {len(finder)} files in {root}")

    def _add_file(self, parsed: ParsedFile, source_root: str) -> None:
        for decl in parsed.classes:
            key = normalize_name(decl.name)
            existing = self._nodes.get(key)
            if existing is not None:
                if existing.source_root != source_root:
                    self.shadowed += 1
                    logger.debug(f"{decl.name} in {parsed.path} is shadowed by {existing.path}")
                continue
            self._nodes[key] = TypeNode.from_declaration(decl, source_root, parsed.path)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, name: str) -> Optional[TypeNode]:
        return self._nodes.get(normalize_name(name))

    def __contains__(self, name: str) -> bool:
        return normalize_name(name) in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def resolution_gaps(self) -> List[AncestorResolutionGap]:
        """Ancestors that were named but not found, from the queries made so far."""
        with self._lock:
            return sorted(self._gaps, key=lambda gap: (gap.type_name, gap.missing))

    def ancestors(self, name: str) -> Tuple[str, ...]:
        """
        Ordered ancestors of name: parent classes closest first, then
        interfaces. Unknown types have no ancestors.
        """
        key = normalize_name(name)
        with self._lock:
            cached = self._chains.get(key)
        if cached is not None:
            return cached

        gaps: List[AncestorResolutionGap] = []
        chain = self._compute_chain(key, gaps)
        with self._lock:
            self._gaps.update(gaps)
            return self._chains.setdefault(key, chain)

    def _compute_chain(self, key: str, gaps: List[AncestorResolutionGap]) -> Tuple[str, ...]:
        node = self._nodes.get(key)
        if node is None:
            return ()

        chain: List[str] = []
        seen = {key}

        # Parent classes
        lineage = [node]
        current = node
        while current.parent:
            parent_key = normalize_name(current.parent)
            if parent_key in seen:
                logger.debug(f"Inheritance cycle through {current.parent} while resolving {node.name}")
                break
            seen.add(parent_key)
            parent = self._nodes.get(parent_key)
            if parent is None:
                chain.append(current.parent)
                gaps.append(AncestorResolutionGap(current.name, current.parent))
                break
            chain.append(parent.name)
            lineage.append(parent)
            current = parent

        # Interfaces, depth first through the interfaces they extend
        for owner in lineage:
            stack = list(reversed(owner.interfaces))
            while stack:
                iface = stack.pop()
                iface_key = normalize_name(iface)
                if iface_key in seen:
                    continue
                seen.add(iface_key)
                iface_node = self._nodes.get(iface_key)
                if iface_node is None:
                    chain.append(iface)
                    gaps.append(AncestorResolutionGap(owner.name, iface))
                    continue
                chain.append(iface_node.name)
                stack.extend(reversed(iface_node.interfaces))

        return tuple(chain)

    def declares_method(self, type_name: str, method: str) -> bool:
        node = self.get(type_name)
        return node is not None and node.declares(method)

    def find_method_origin(self, type_name: str, method: str, include_self: bool = False) -> Optional[str]:
        """
        The closest ancestor of type_name that declares method.

        With include_self, type_name itself is considered first.
        """
        candidates = self.ancestors(type_name)
        if include_self:
            candidates = (type_name,) + candidates
        for candidate in candidates:
            node = self.get(candidate)
            if node is not None and node.declares(method):
                return node.name
        return None
