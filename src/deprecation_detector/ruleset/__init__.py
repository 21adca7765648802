"""
deprecation_detector.ruleset - Deprecation Rule Sets

The RuleSet model, the three loaders that build it (source directory,
composer.lock, rule file) and the content-addressed cache around them.
"""

from deprecation_detector.ruleset.ruleset import (
    RULESET_FORMAT,
    RULESET_VERSION,
    Deprecation,
    RuleKind,
    RuleSet,
    RuleSetBuilder,
    dump_rule_set,
    load_rule_set,
    normalize_name,
)
from deprecation_detector.ruleset.markers import collect_deprecations, deprecation_message
from deprecation_detector.ruleset.loader import (
    LOCKFILE_NAME,
    ComposerLoader,
    DirectoryLoader,
    LockedPackage,
    RuleFileLoader,
    RuleSetLoader,
    RuleSetSource,
    SourceKind,
    loader_for,
    select_source,
    write_rule_file,
)
from deprecation_detector.ruleset.cache import (
    CACHE_VERSION,
    DEFAULT_CACHE_DIR,
    RuleSetCache,
    compute_fingerprint,
)

__all__ = [
    # Model
    "RULESET_FORMAT",
    "RULESET_VERSION",
    "Deprecation",
    "RuleKind",
    "RuleSet",
    "RuleSetBuilder",
    "dump_rule_set",
    "load_rule_set",
    "normalize_name",
    # Markers
    "collect_deprecations",
    "deprecation_message",
    # Loaders
    "LOCKFILE_NAME",
    "ComposerLoader",
    "DirectoryLoader",
    "LockedPackage",
    "RuleFileLoader",
    "RuleSetLoader",
    "RuleSetSource",
    "SourceKind",
    "loader_for",
    "select_source",
    "write_rule_file",
    # Cache
    "CACHE_VERSION",
    "DEFAULT_CACHE_DIR",
    "RuleSetCache",
    "compute_fingerprint",
]
