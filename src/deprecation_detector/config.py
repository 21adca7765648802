"""
Check Configuration

Defaults match the layout of a typical Composer project: application
code in src/, dependencies pinned in composer.lock and installed under
vendor/.

Settings are layered, later layers winning:
    1. defaults below
    2. YAML config file (explicit path, or the first of CONFIG_SEARCH_PATHS)
    3. environment variables
    4. command line options

Environment overrides:
    DEPRECATION_DETECTOR_CACHE_DIR   cache directory
    DEPRECATION_DETECTOR_NO_CACHE    1/true/yes disables the rule set cache
    DEPRECATION_DETECTOR_WORKERS     number of files checked in parallel
"""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_SOURCE = "src/"
DEFAULT_RULESET = "composer.lock"
DEFAULT_CACHE_DIR = ".rules/"
DEFAULT_VENDOR_DIR = "vendor"

ENV_CACHE_DIR = "DEPRECATION_DETECTOR_CACHE_DIR"
ENV_NO_CACHE = "DEPRECATION_DETECTOR_NO_CACHE"
ENV_WORKERS = "DEPRECATION_DETECTOR_WORKERS"

CONFIG_FILE_NAME = "deprecation-detector.yaml"

# Config file locations (checked in order)
CONFIG_SEARCH_PATHS = [
    Path(CONFIG_FILE_NAME),
    Path.home() / ".deprecation-detector" / "config.yaml",
]

# Settings a config file may contain, with their YAML types
FILE_SETTINGS = {
    "source": str,
    "ruleset": str,
    "cache_dir": str,
    "use_cache": bool,
    "vendor_dir": str,
    "workers": int,
    "dedupe": bool,
    "verbose": bool,
}


def _env_flag(value: str) -> bool:
    return value.lower() not in ("", "0", "false", "no")


def find_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """The config file to read, or None to run on defaults."""
    if explicit_path is not None:
        explicit_path = Path(explicit_path)
        if explicit_path.is_file():
            return explicit_path
        logger.warning(f"Config file {explicit_path} does not exist, using defaults")
        return None

    for config_path in CONFIG_SEARCH_PATHS:
        if config_path.is_file():
            return config_path
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Settings from one YAML config file, keyed by CheckConfig field.

    Keys may be spelled with dashes (cache-dir). Unknown keys and values
    of the wrong type are dropped with a warning.

    Raises:
        OSError: if the file cannot be read
        yaml.YAMLError: if it is not valid YAML
        ValueError: if it is not a mapping
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"expected a mapping of settings, got {type(data).__name__}")

    settings = {}
    for key, value in data.items():
        name = str(key).replace('-', '_')
        expected = FILE_SETTINGS.get(name)
        if expected is None:
            logger.warning(f"Ignoring unknown setting {key!r} in {path}")
            continue
        # bool is an int subclass; workers: true is not a worker count
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            logger.warning(f"Ignoring setting {key!r} in {path}: expected {expected.__name__}, got {value!r}")
            continue
        settings[name] = value
    return settings


@dataclass(frozen=True)
class CheckConfig:
    """Everything a check run needs to know."""
    source: Path = Path(DEFAULT_SOURCE)
    ruleset: Path = Path(DEFAULT_RULESET)
    cache_dir: Path = Path(DEFAULT_CACHE_DIR)
    use_cache: bool = True
    vendor_dir: Optional[Path] = None  # None: beside the rule set lock file
    workers: int = 1
    dedupe: bool = False
    verbose: bool = False

    def __post_init__(self):
        # Accept plain strings for the path fields
        for name in ("source", "ruleset", "cache_dir", "vendor_dir"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, Path(value))
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")

    def with_overrides(self, **changes) -> "CheckConfig":
        """Copy with the given fields replaced; None values are ignored."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    @classmethod
    def from_file(cls, path: Optional[Path] = None, base: Optional["CheckConfig"] = None) -> "CheckConfig":
        """
        Apply a YAML config file to base (or the defaults).

        A config file that cannot be loaded is reported and ignored.
        """
        config = base or cls()
        config_path = find_config_file(path)
        if config_path is None:
            return config

        try:
            config = config.with_overrides(**read_config_file(config_path))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            return config
        logger.info(f"Loaded config from {config_path}")
        return config

    @classmethod
    def from_env(cls, base: Optional["CheckConfig"] = None,
                 environ: Optional[Mapping[str, str]] = None) -> "CheckConfig":
        """Apply DEPRECATION_DETECTOR_* environment overrides to base (or the defaults)."""
        config = base or cls()
        environ = os.environ if environ is None else environ
        changes = {}

        cache_dir = environ.get(ENV_CACHE_DIR)
        if cache_dir:
            changes["cache_dir"] = Path(cache_dir)

        no_cache = environ.get(ENV_NO_CACHE)
        if no_cache is not None and _env_flag(no_cache):
            changes["use_cache"] = False

        workers = environ.get(ENV_WORKERS)
        if workers:
            try:
                changes["workers"] = max(1, int(workers))
            except ValueError:
                logger.warning(f"Ignoring {ENV_WORKERS}={workers!r}: not an integer")

        return replace(config, **changes) if changes else config


def load_config(config_path: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None) -> CheckConfig:
    """Defaults, then the config file, then the environment."""
    return CheckConfig.from_env(CheckConfig.from_file(config_path), environ)
