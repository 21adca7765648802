"""
Source File Finder

Enumerates PHP source files under a root and parses them. Files that
cannot be read or parsed are recorded as SourceParseWarnings and left
out; they never abort a scan.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from deprecation_detector.errors import SourceParseWarning
from deprecation_detector.parser import ParsedFile, parse_source_recovering, read_source

logger = logging.getLogger(__name__)


SOURCE_SUFFIXES = ('.php',)


def scan_sources(root: Path) -> Iterator[Path]:
    """
    Yield source files under root in a stable (sorted) order.

    Hidden directories are skipped. A root that is itself a source file
    yields just that file.
    """
    root = Path(root)
    if root.is_file():
        if root.suffix.lower() in SOURCE_SUFFIXES:
            yield root
        return
    if not root.is_dir():
        return

    for file_path in sorted(root.rglob('*')):
        if file_path.suffix.lower() not in SOURCE_SUFFIXES:
            continue
        relpath = file_path.relative_to(root)
        if any(part.startswith('.') for part in relpath.parts[:-1]):
            continue
        if file_path.is_file():
            yield file_path


def parse_source_file(path: Path) -> Tuple[Optional[ParsedFile], Optional[SourceParseWarning]]:
    """Parse one file, returning either the ParsedFile or the reason it was skipped."""
    try:
        source = read_source(str(path))
    except OSError as e:
        return None, SourceParseWarning(str(path), f"unreadable: {e}")

    result = parse_source_recovering(source, str(path))
    if result.success:
        return result.parsed, None

    error = result.errors[0]
    return None, SourceParseWarning(str(path), error.message, error.line, error.column)


class ParsedFileFinder:
    """
    Parsed source files under one root.

    Usage:
        finder = ParsedFileFinder(Path("src"))
        for parsed in finder:
            ...
        print(len(finder.skipped), "files skipped")
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.skipped: List[SourceParseWarning] = []
        self._paths: Optional[List[Path]] = None

    def paths(self) -> List[Path]:
        if self._paths is None:
            self._paths = list(scan_sources(self.root))
        return self._paths

    def __len__(self) -> int:
        return len(self.paths())

    def __iter__(self) -> Iterator[ParsedFile]:
        for path in self.paths():
            parsed, warning = parse_source_file(path)
            if warning is not None:
                logger.warning(f"Skipping unparseable file {warning}")
                self.skipped.append(warning)
                continue
            yield parsed
