"""
Rule Set Loaders

Three ways to obtain a RuleSet:

- DirectoryLoader: scan a source tree for @deprecated declarations
- ComposerLoader: read composer.lock and scan each installed package
- RuleFileLoader: read a previously serialized rule file

Which loader applies is decided once, at the boundary, by select_source().
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from deprecation_detector.errors import RuleSetLoadError, SourceParseWarning
from deprecation_detector.finder import ParsedFileFinder
from deprecation_detector.ruleset.markers import collect_deprecations
from deprecation_detector.ruleset.ruleset import RuleSet, RuleSetBuilder, dump_rule_set, load_rule_set

logger = logging.getLogger(__name__)


LOCKFILE_NAME = "composer.lock"
DEFAULT_VENDOR_DIR = "vendor"


class SourceKind(Enum):
    """Where a rule set comes from."""
    DIRECTORY = "directory"
    LOCKFILE = "lockfile"
    RULE_FILE = "rule_file"


@dataclass(frozen=True)
class RuleSetSource:
    kind: SourceKind
    path: Path

    def __str__(self):
        return f"{self.kind.value}:{self.path}"


def select_source(path) -> RuleSetSource:
    """Classify a rule set path: directory, lock file or rule file."""
    path = Path(path)
    if path.is_dir():
        return RuleSetSource(SourceKind.DIRECTORY, path)
    if path.name == LOCKFILE_NAME:
        return RuleSetSource(SourceKind.LOCKFILE, path)
    return RuleSetSource(SourceKind.RULE_FILE, path)


class RuleSetLoader:
    """Base class for rule set loaders."""

    # Part of the cache key, so entries from different loaders never mix
    name = "loader"

    def load_rule_set(self, path) -> RuleSet:
        """
        Load a rule set from path.

        Raises:
            RuleSetLoadError: if path is missing, unreadable or invalid
        """
        raise NotImplementedError

    def source_paths(self, path) -> List[Path]:
        """Paths other than path whose contents the loaded rule set depends on."""
        return []


class DirectoryLoader(RuleSetLoader):
    """Builds a rule set from the @deprecated markers in a source tree."""

    name = "directory"

    def __init__(self):
        self.warnings: List[SourceParseWarning] = []

    def load_rule_set(self, path) -> RuleSet:
        path = Path(path)
        if not path.is_dir():
            raise RuleSetLoadError("Rule set directory does not exist", str(path))

        builder = RuleSetBuilder()
        finder = ParsedFileFinder(path)
        for parsed in finder:
            collect_deprecations(parsed, builder)

        self.warnings = list(finder.skipped)
        logger.info(f"Collected {len(builder)} deprecations from {len(finder)} files in {path}"
                    + (f" ({len(finder.skipped)} skipped)" if finder.skipped else ""))
        return builder.build()


@dataclass(frozen=True)
class LockedPackage:
    """One package entry of composer.lock."""
    name: str
    version: Optional[str]
    install_path: Path


class ComposerLoader(RuleSetLoader):
    """
    Builds a rule set from the packages pinned in composer.lock.

    Each package's installed sources are scanned with the directory
    loader and the results merged in lock file order. Packages that are
    not installed are skipped with a warning.
    """

    name = "composer"

    def __init__(self, directory_loader: Optional[DirectoryLoader] = None, vendor_dir: Optional[Path] = None):
        self.directory_loader = directory_loader or DirectoryLoader()
        self.vendor_dir = Path(vendor_dir) if vendor_dir else None
        self.warnings: List[SourceParseWarning] = []
        self.skipped_packages: List[str] = []

    def load_rule_set(self, path) -> RuleSet:
        path = Path(path)
        if not path.is_file():
            raise RuleSetLoadError("Lock file does not exist", str(path))
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise RuleSetLoadError(f"Lock file is unreadable ({e})", str(path)) from e
        except json.JSONDecodeError as e:
            raise RuleSetLoadError(f"Lock file is not valid JSON ({e.msg} at line {e.lineno})", str(path)) from e

        packages = self.read_packages(data, path)

        builder = RuleSetBuilder()
        self.warnings = []
        for package in packages:
            if not package.install_path.is_dir():
                logger.warning(f"Package {package.name} is not installed at {package.install_path}, skipping")
                self.skipped_packages.append(package.name)
                continue
            builder.merge(self.directory_loader.load_rule_set(package.install_path))
            self.warnings.extend(self.directory_loader.warnings)

        logger.info(f"Collected {len(builder)} deprecations from {len(packages)} packages in {path}")
        return builder.build()

    def source_paths(self, path) -> List[Path]:
        """The install path of every package in the lock file."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            packages = self.read_packages(data, path)
        except (OSError, ValueError, RuleSetLoadError):
            # load_rule_set reports the problem
            return []
        return [package.install_path for package in packages]

    def vendor_dir_for(self, lock_path: Path) -> Path:
        """Where the packages of lock_path are installed."""
        if self.vendor_dir is not None:
            return self.vendor_dir
        # composer.json may relocate the vendor directory
        manifest = lock_path.parent / "composer.json"
        if manifest.is_file():
            try:
                config = json.loads(manifest.read_text(encoding="utf-8")).get("config") or {}
            except (OSError, ValueError, AttributeError):
                config = {}
            vendor = config.get("vendor-dir") if isinstance(config, dict) else None
            if isinstance(vendor, str) and vendor:
                return lock_path.parent / vendor
        return lock_path.parent / DEFAULT_VENDOR_DIR

    def read_packages(self, data: Any, lock_path: Path) -> List[LockedPackage]:
        """
        The usable package entries of a decoded lock file.

        Raises:
            RuleSetLoadError: if the lock file has no package lists at all
        """
        if not isinstance(data, dict) or not any(
                isinstance(data.get(section), list) for section in ("packages", "packages-dev")):
            raise RuleSetLoadError("Lock file has no package list", str(lock_path))

        vendor_dir = self.vendor_dir_for(lock_path)
        self.skipped_packages = []
        packages = []
        for section in ("packages", "packages-dev"):
            entries = data.get(section)
            if not isinstance(entries, list):
                continue
            for index, entry in enumerate(entries):
                name = entry.get("name") if isinstance(entry, dict) else None
                if not isinstance(name, str) or not name:
                    logger.warning(f"Skipping malformed entry {section}[{index}] in {lock_path}")
                    self.skipped_packages.append(f"{section}[{index}]")
                    continue

                install_path = entry.get("install-path")
                if isinstance(install_path, str) and install_path:
                    path = lock_path.parent / install_path
                else:
                    path = vendor_dir / name

                version = entry.get("version")
                packages.append(LockedPackage(name, version if isinstance(version, str) else None, path))
        return packages


class RuleFileLoader(RuleSetLoader):
    """Reads a rule set written by write_rule_file()."""

    name = "rule_file"

    def load_rule_set(self, path) -> RuleSet:
        path = Path(path)
        if not path.is_file():
            raise RuleSetLoadError("Rule file does not exist", str(path))
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RuleSetLoadError(f"Rule file is unreadable ({e})", str(path)) from e
        try:
            return load_rule_set(text)
        except ValueError as e:
            raise RuleSetLoadError(f"Unrecognized rule file format ({e})", str(path)) from e


def write_rule_file(rule_set: RuleSet, path) -> Path:
    """Serialize rule_set so RuleFileLoader can read it back."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_rule_set(rule_set), encoding="utf-8")
    return path


def loader_for(source: RuleSetSource, vendor_dir: Optional[Path] = None) -> RuleSetLoader:
    """The loader that handles source."""
    if source.kind == SourceKind.DIRECTORY:
        return DirectoryLoader()
    if source.kind == SourceKind.LOCKFILE:
        return ComposerLoader(vendor_dir=vendor_dir)
    return RuleFileLoader()
