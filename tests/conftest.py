"""
Pytest configuration and shared fixtures.
"""

import json
import sys
import textwrap
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from deprecation_detector.parser import parse_source


# =============================================================================
# PHP SOURCES
# =============================================================================

LIBRARY_FILES = {
    "src/Old.php": """
        <?php
        namespace Acme;

        /**
         * @deprecated use New instead
         */
        class Old
        {
        }
    """,
    "src/Bar.php": """
        <?php
        namespace Acme;

        class Bar
        {
            /**
             * @deprecated use n() instead
             */
            public function m()
            {
            }

            public function n()
            {
            }
        }
    """,
    "src/LegacyInterface.php": """
        <?php
        namespace Acme;

        /**
         * @deprecated implement Runner instead
         */
        interface LegacyInterface
        {
            public function run();
        }
    """,
}

APPLICATION_FILES = {
    "Foo.php": """
        <?php
        namespace App;

        use Acme\\Bar;

        class Foo extends Bar
        {
        }
    """,
    "Service.php": """
        <?php
        namespace App;

        use Acme\\Old;

        class Service
        {
            public function handle(Foo $foo)
            {
                $foo->m();
                return new Old();
            }
        }
    """,
}


def php(source: str) -> str:
    """Dedent an inline PHP snippet."""
    return textwrap.dedent(source).lstrip()


def write_tree(root: Path, files: dict) -> Path:
    """Write {relative path: source} under root."""
    for relpath, source in files.items():
        path = root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(php(source), encoding="utf-8")
    return root


def parse(source: str, filename: str = "test.php"):
    """Parse an inline PHP snippet."""
    return parse_source(php(source), filename)


# =============================================================================
# TREE FIXTURES
# =============================================================================

@pytest.fixture
def make_tree(tmp_path):
    """Factory writing a PHP tree into a named directory under tmp_path."""
    def factory(name: str, files: dict) -> Path:
        return write_tree(tmp_path / name, files)
    return factory


@pytest.fixture
def acme_library(make_tree):
    """A library with one deprecated class, interface and method."""
    return make_tree("library", LIBRARY_FILES)


@pytest.fixture
def acme_project(tmp_path):
    """
    A Composer project: composer.lock pinning acme/lib, installed under
    vendor/, and application code under src/.
    """
    project = tmp_path / "project"
    write_tree(project / "vendor" / "acme" / "lib", LIBRARY_FILES)
    write_tree(project / "src", APPLICATION_FILES)
    lock = {
        "packages": [{"name": "acme/lib", "version": "1.0.0"}],
        "packages-dev": [],
    }
    (project / "composer.lock").write_text(json.dumps(lock), encoding="utf-8")
    return project
