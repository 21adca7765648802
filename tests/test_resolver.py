"""
Tests for the ancestor resolver.
"""

import threading

import pytest
from deprecation_detector.errors import AncestorResolutionGap
from deprecation_detector.resolver import AncestorResolver

from conftest import parse


APPLICATION = {
    "Foo.php": """
        <?php
        namespace App;

        use Acme\\Bar;

        class Foo extends Bar
        {
            public function own() {}
        }
    """,
}

LIBRARY = {
    "Bar.php": """
        <?php
        namespace Acme;

        class Bar
        {
            public function m() {}
        }
    """,
}


def resolver_for(*sources):
    """Resolver over one root per source snippet."""
    return AncestorResolver.from_parsed_files([[parse(source, f"root{i}.php")] for i, source in enumerate(sources)])


class TestConstruction:
    """Test indexing source roots."""

    def test_types_from_all_roots(self, make_tree):
        app = make_tree("app", APPLICATION)
        lib = make_tree("lib", LIBRARY)
        resolver = AncestorResolver([app, lib])

        assert "App\\Foo" in resolver
        assert "Acme\\Bar" in resolver
        assert len(resolver) == 2

    def test_first_root_wins(self, make_tree):
        app = make_tree("app", {"Bar.php": """
            <?php
            namespace Acme;

            class Bar extends Patched {}
        """})
        lib = make_tree("lib", LIBRARY)
        resolver = AncestorResolver([app, lib])

        node = resolver.get("Acme\\Bar")
        assert node.source_root == str(app)
        assert node.parent == "Acme\\Patched"
        assert resolver.shadowed == 1

    def test_unparseable_file_is_skipped(self, make_tree):
        files = dict(LIBRARY)
        files["Broken.php"] = "<?php class Broken {"
        resolver = AncestorResolver([make_tree("lib", files)])

        assert "Acme\\Bar" in resolver
        assert "Broken" not in resolver
        assert len(resolver.skipped) == 1

    def test_missing_root_is_ignored(self, tmp_path, make_tree):
        resolver = AncestorResolver([tmp_path / "missing", make_tree("lib", LIBRARY)])
        assert "Acme\\Bar" in resolver

    def test_lookup_is_case_insensitive(self):
        resolver = resolver_for(LIBRARY["Bar.php"])
        assert resolver.get("acme\\BAR").name == "Acme\\Bar"
        assert resolver.declares_method("Acme\\Bar", "M")


class TestAncestors:
    """Test ancestor chain queries."""

    def test_across_roots(self, make_tree):
        resolver = AncestorResolver([make_tree("app", APPLICATION), make_tree("lib", LIBRARY)])
        assert resolver.ancestors("App\\Foo") == ("Acme\\Bar",)

    def test_parents_then_interfaces(self):
        resolver = resolver_for("""
            <?php
            interface I0 {}
            interface I1 extends I0 {}
            interface I2 {}
            class A {}
            class B extends A implements I2 {}
            class C extends B implements I1 {}
        """)
        assert resolver.ancestors("C") == ("B", "A", "I1", "I0", "I2")

    def test_shared_interface_listed_once(self):
        resolver = resolver_for("""
            <?php
            interface Base {}
            interface Left extends Base {}
            interface Right extends Base {}
            class Impl implements Left, Right {}
        """)
        assert resolver.ancestors("Impl") == ("Left", "Base", "Right")

    def test_unknown_type_has_no_ancestors(self):
        assert resolver_for("<?php class A {}").ancestors("Nope") == ()

    def test_self_cycle_terminates(self):
        resolver = resolver_for("<?php class Loop extends Loop {}")
        assert resolver.ancestors("Loop") == ()

    def test_two_class_cycle_terminates(self):
        resolver = resolver_for("""
            <?php
            class A extends B {}
            class B extends A {}
        """)
        assert resolver.ancestors("A") == ("B",)
        assert resolver.ancestors("B") == ("A",)

    def test_interface_cycle_terminates(self):
        resolver = resolver_for("""
            <?php
            interface I extends J {}
            interface J extends I {}
        """)
        assert resolver.ancestors("I") == ("J",)

    def test_unknown_ancestor_ends_branch(self):
        resolver = resolver_for("""
            <?php
            class Child extends Middle {}
            class Middle extends \\Framework\\Missing implements \\Framework\\Contract {}
        """)
        assert resolver.ancestors("Child") == ("Middle", "Framework\\Missing", "Framework\\Contract")
        assert AncestorResolutionGap("Middle", "Framework\\Missing") in resolver.resolution_gaps
        assert AncestorResolutionGap("Middle", "Framework\\Contract") in resolver.resolution_gaps

    def test_chains_are_memoized(self):
        resolver = resolver_for(APPLICATION["Foo.php"], LIBRARY["Bar.php"])
        assert resolver.ancestors("App\\Foo") is resolver.ancestors("app\\foo")

    def test_concurrent_queries_agree(self):
        resolver = resolver_for("""
            <?php
            class A {}
            class B extends A {}
            class C extends B {}
        """)
        results = []

        def query():
            results.append(resolver.ancestors("C"))

        threads = [threading.Thread(target=query) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert set(results) == {("B", "A")}


class TestMethodOrigin:
    """Test finding the ancestor that declares a method."""

    @pytest.fixture
    def resolver(self):
        return resolver_for(APPLICATION["Foo.php"], LIBRARY["Bar.php"])

    def test_inherited_method(self, resolver):
        assert resolver.find_method_origin("App\\Foo", "m") == "Acme\\Bar"

    def test_own_method_needs_include_self(self, resolver):
        assert resolver.find_method_origin("App\\Foo", "own") is None
        assert resolver.find_method_origin("App\\Foo", "own", include_self=True) == "App\\Foo"

    def test_unknown_method(self, resolver):
        assert resolver.find_method_origin("App\\Foo", "missing") is None

    def test_interface_method(self):
        resolver = resolver_for("""
            <?php
            interface Runner { public function run(); }
            class Job implements Runner { public function run() {} }
        """)
        assert resolver.find_method_origin("Job", "run") == "Runner"
