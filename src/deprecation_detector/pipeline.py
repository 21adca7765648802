"""
Check Pipeline

Wires one check run together:

    rule set source -> loader (+ cache) -> RuleSet
    source root + dependency root -> AncestorResolver
    RuleSet + AncestorResolver -> ComposedViolationChecker
    source files -> parse -> check -> violations

The rule set and resolver are fully built before the first file is
checked and are only read afterwards, so files can be checked in
parallel. Results keep file order regardless of the worker count.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from deprecation_detector.config import DEFAULT_VENDOR_DIR, CheckConfig
from deprecation_detector.errors import AncestorResolutionGap, SourceParseWarning
from deprecation_detector.finder import parse_source_file, scan_sources
from deprecation_detector.resolver.ancestors import AncestorResolver
from deprecation_detector.ruleset.cache import RuleSetCache
from deprecation_detector.ruleset.loader import ComposerLoader, RuleSetSource, SourceKind, loader_for, select_source
from deprecation_detector.ruleset.ruleset import RuleSet
from deprecation_detector.violation.checkers import ComposedViolationChecker
from deprecation_detector.violation.violation import Violation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    processed: int
    total: int


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class CheckResult:
    """Outcome of one check run."""
    violations: List[Violation] = field(default_factory=list)
    files_checked: int = 0
    skipped: List[SourceParseWarning] = field(default_factory=list)
    resolution_gaps: List[AncestorResolutionGap] = field(default_factory=list)

    @property
    def has_violations(self) -> bool:
        return bool(self.violations)

    def summary(self) -> str:
        text = f"{len(self.violations)} violations in {self.files_checked} files"
        if self.skipped:
            text += f", {len(self.skipped)} files skipped"
        return text


class CheckPipeline:
    """
    One configured check run.

    Usage:
        pipeline = CheckPipeline(CheckConfig(source=Path("src")))
        result = pipeline.run()
    """

    def __init__(self, config: Optional[CheckConfig] = None, progress: Optional[ProgressCallback] = None):
        self.config = config or CheckConfig()
        self.progress = progress

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    def build_rule_set_loader(self, source: RuleSetSource) -> RuleSetCache:
        loader = loader_for(source, self.config.vendor_dir)
        return RuleSetCache(loader, self.config.cache_dir, enabled=self.config.use_cache)

    def load_rule_set(self, source: RuleSetSource) -> RuleSet:
        """
        Raises:
            RuleSetLoadError: if the rule set cannot be loaded
        """
        rule_set = self.build_rule_set_loader(source).load_rule_set(source.path)
        logger.info(f"Loaded {rule_set!r} from {source}")
        return rule_set

    def resolver_roots(self, source_root: Path, source: RuleSetSource) -> List[Path]:
        """Application code first, then the code the rule set came from."""
        roots = [source_root]
        if source.kind == SourceKind.DIRECTORY:
            dependency_root = source.path
        elif source.kind == SourceKind.LOCKFILE:
            dependency_root = ComposerLoader(vendor_dir=self.config.vendor_dir).vendor_dir_for(source.path)
        else:
            dependency_root = self.config.vendor_dir or Path(DEFAULT_VENDOR_DIR)
        if dependency_root.is_dir() and dependency_root.resolve() != source_root.resolve():
            roots.append(dependency_root)
        return roots

    def build_resolver(self, source_root: Path, source: RuleSetSource) -> AncestorResolver:
        return AncestorResolver(self.resolver_roots(source_root, source))

    def build_checker(self, rule_set: RuleSet, resolver: Optional[AncestorResolver]) -> ComposedViolationChecker:
        return ComposedViolationChecker.for_rule_set(rule_set, resolver, dedupe=self.config.dedupe)

    # =========================================================================
    # RUN
    # =========================================================================

    def _notify(self, processed: int, total: int) -> None:
        if self.progress is not None:
            self.progress(ProgressEvent(processed, total))

    @staticmethod
    def check_file(checker: ComposedViolationChecker, path: Path
                   ) -> Tuple[List[Violation], Optional[SourceParseWarning]]:
        """Check one file. An unparseable file yields no violations and a warning."""
        parsed, warning = parse_source_file(path)
        if warning is not None:
            return [], warning
        return checker.check(parsed), None

    def check_files(self, checker: ComposedViolationChecker, paths: List[Path]) -> CheckResult:
        result = CheckResult()
        total = len(paths)
        self._notify(0, total)

        def check(path: Path):
            return self.check_file(checker, path)

        if self.config.workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
                outcomes = executor.map(check, paths)
                self._collect(result, outcomes, total)
        else:
            self._collect(result, map(check, paths), total)
        return result

    def _collect(self, result: CheckResult, outcomes, total: int) -> None:
        for processed, (violations, warning) in enumerate(outcomes, start=1):
            if warning is not None:
                # Already warned about while indexing the source root
                logger.debug(f"Skipping unparseable file {warning}")
                result.skipped.append(warning)
            else:
                result.files_checked += 1
                result.violations.extend(violations)
            self._notify(processed, total)

    def run(self, source_root: Optional[Path] = None, ruleset: Optional[Path] = None) -> CheckResult:
        """
        Check every source file under source_root.

        Raises:
            FileNotFoundError: if source_root does not exist
            RuleSetLoadError: if the rule set cannot be loaded
        """
        source_root = Path(source_root or self.config.source)
        if not source_root.exists():
            raise FileNotFoundError(f"Source path does not exist: {source_root}")

        source = select_source(ruleset or self.config.ruleset)
        rule_set = self.load_rule_set(source)

        resolver = self.build_resolver(source_root, source)
        checker = self.build_checker(rule_set, resolver)

        paths = list(scan_sources(source_root))
        logger.info(f"Checking {len(paths)} files under {source_root} with {self.config.workers} worker(s)")
        result = self.check_files(checker, paths)
        result.resolution_gaps = resolver.resolution_gaps
        logger.info(f"Check finished: {result.summary()}")
        return result
