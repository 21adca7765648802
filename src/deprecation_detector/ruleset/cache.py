"""
Rule Set Cache

Content-addressed persistence around any rule set loader. Entries are
keyed by (loader identity, cache format version, source fingerprint,
fingerprints of the installed packages a lock file points at), so a
changed lock file, source tree or vendor directory never reuses a stale
rule set.

Each entry is a JSON document carrying a checksum of its payload. An
entry that is unreadable, truncated or fails its checksum is a cache
miss: the wrapped loader runs again and the entry is rewritten.
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from deprecation_detector.errors import CacheReadError, CacheWriteError
from deprecation_detector.finder import scan_sources
from deprecation_detector.ruleset.loader import RuleSetLoader
from deprecation_detector.ruleset.ruleset import RuleSet

logger = logging.getLogger(__name__)


# Bump when the entry layout or the rule set model changes
CACHE_VERSION = 1

DEFAULT_CACHE_DIR = ".rules"


def compute_content_hash(data: bytes) -> str:
    """Compute SHA256 hash of content."""
    return hashlib.sha256(data).hexdigest()


def compute_tree_fingerprint(root: Path) -> str:
    """
    Fingerprint a source tree from its files' relative paths, sizes and
    modification times.
    """
    hasher = hashlib.sha256()
    for file_path in scan_sources(root):
        stat = file_path.stat()
        relpath = file_path.relative_to(root).as_posix()
        hasher.update(relpath.encode('utf-8'))
        hasher.update(f"\0{stat.st_size}\0{stat.st_mtime_ns}\n".encode('utf-8'))
    return hasher.hexdigest()


def compute_fingerprint(path: Path) -> str:
    path = Path(path)
    if path.is_dir():
        return compute_tree_fingerprint(path)
    return compute_content_hash(path.read_bytes())


def _payload_checksum(payload: dict) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(',', ':'))
    return compute_content_hash(canonical.encode('utf-8'))


class RuleSetCache(RuleSetLoader):
    """
    Caching wrapper around a rule set loader.

    Usage:
        cache = RuleSetCache(ComposerLoader(), cache_dir=".rules")
        rule_set = cache.load_rule_set("composer.lock")
    """

    def __init__(self, loader: RuleSetLoader, cache_dir=DEFAULT_CACHE_DIR, enabled: bool = True):
        self.loader = loader
        self.cache_dir = Path(cache_dir)
        self.enabled = enabled
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def name(self) -> str:
        return self.loader.name

    def source_paths(self, path):
        return self.loader.source_paths(path)

    def disable(self) -> None:
        """Always run the wrapped loader; neither read nor write entries."""
        self.enabled = False

    def enable(self) -> None:
        self.enabled = True

    def set_cache_dir(self, cache_dir) -> None:
        self.cache_dir = Path(cache_dir)

    def cache_key(self, path) -> str:
        """
        Key over the loader, the cache version, path's fingerprint and the
        location and fingerprint of everything the loader reads besides path
        (the installed packages of a lock file).
        """
        path = Path(path)
        parts = [self.loader.name, str(CACHE_VERSION), compute_fingerprint(path)]
        for source_path in self.loader.source_paths(path):
            state = compute_fingerprint(source_path) if source_path.exists() else "missing"
            parts.append(f"{source_path.resolve().as_posix()}={state}")
        return compute_content_hash("\0".join(parts).encode('utf-8'))

    def entry_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def load_rule_set(self, path) -> RuleSet:
        path = Path(path)
        if not self.enabled or not path.exists():
            # A missing source is reported by the wrapped loader
            return self.loader.load_rule_set(path)

        try:
            key = self.cache_key(path)
        except OSError as e:
            logger.warning(f"Cannot fingerprint {path} ({e}), loading without cache")
            return self.loader.load_rule_set(path)

        with self._lock_for(key):
            try:
                cached = self.read(key)
            except CacheReadError as e:
                logger.warning(f"Ignoring unusable cache entry: {e}")
                cached = None
            if cached is not None:
                logger.debug(f"Rule set cache hit for {path} ({key[:12]})")
                return cached

            logger.debug(f"Rule set cache miss for {path} ({key[:12]})")
            rule_set = self.loader.load_rule_set(path)
            try:
                self.write(key, rule_set)
            except CacheWriteError as e:
                logger.warning(f"Could not persist rule set: {e}")
            return rule_set

    def read(self, key: str) -> Optional[RuleSet]:
        """
        The cached rule set for key, or None if there is no entry.

        Raises:
            CacheReadError: if the entry exists but cannot be used
        """
        entry = self.entry_path(key)
        if not entry.exists():
            return None
        try:
            document = json.loads(entry.read_text(encoding='utf-8'))
        except (OSError, UnicodeDecodeError, ValueError) as e:
            raise CacheReadError(f"{entry}: {e}") from e

        if not isinstance(document, dict) or document.get("version") != CACHE_VERSION:
            raise CacheReadError(f"{entry}: unknown cache entry version")
        payload = document.get("ruleset")
        if not isinstance(payload, dict) or document.get("checksum") != _payload_checksum(payload):
            raise CacheReadError(f"{entry}: checksum mismatch")
        try:
            return RuleSet.from_dict(payload)
        except ValueError as e:
            raise CacheReadError(f"{entry}: {e}") from e

    def write(self, key: str, rule_set: RuleSet) -> Path:
        """
        Persist rule_set under key. The entry appears atomically.

        Raises:
            CacheWriteError: if the entry cannot be written
        """
        entry = self.entry_path(key)
        payload = rule_set.to_dict()
        document = {
            "version": CACHE_VERSION,
            "loader": self.loader.name,
            "checksum": _payload_checksum(payload),
            "ruleset": payload,
        }

        tmp_name = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                'w', encoding='utf-8', dir=self.cache_dir, prefix=f".{key[:12]}.", suffix='.tmp', delete=False,
            ) as tmp:
                tmp_name = tmp.name
                json.dump(document, tmp, sort_keys=True)
            os.replace(tmp_name, entry)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheWriteError(f"{entry}: {e}") from e
        return entry

    def clear(self) -> int:
        """Delete all cache entries. Returns how many were removed."""
        removed = 0
        if not self.cache_dir.is_dir():
            return removed
        for entry in self.cache_dir.glob('*.json'):
            entry.unlink()
            removed += 1
        return removed
