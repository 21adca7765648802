"""
Tests for the command line interface and violation rendering.
"""

import json

import pytest
from deprecation_detector.cli import main
from deprecation_detector.config import ENV_CACHE_DIR, ENV_NO_CACHE, ENV_WORKERS
from deprecation_detector.ruleset import RuleFileLoader
from deprecation_detector.violation import (
    Violation,
    ViolationKind,
    render_violations,
    violations_to_json,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (ENV_CACHE_DIR, ENV_NO_CACHE, ENV_WORKERS):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def check_args(acme_project, tmp_path):
    return [
        "check",
        str(acme_project / "src"),
        str(acme_project / "composer.lock"),
        "--cache-dir", str(tmp_path / ".rules"),
    ]


class TestCheckCommand:
    """Test `deprecation-detector check`."""

    def test_reports_violations(self, check_args, capsys):
        assert main(check_args) == 0

        out = capsys.readouterr().out
        assert "Checking your application for deprecations" in out
        assert "There are 2 deprecations:" in out
        assert "Service.php" in out
        assert "Acme\\Old" in out
        assert "Acme\\Bar::m" in out
        assert "use n() instead" in out

    def test_no_violations(self, acme_project, make_tree, capsys):
        clean = make_tree("clean", {"Clean.php": "<?php class Clean {}"})
        code = main(["check", str(clean), str(acme_project / "composer.lock"), "--no-cache"])

        assert code == 0
        assert "There are no violations - congratulations!" in capsys.readouterr().out

    def test_invalid_source(self, acme_project, tmp_path, capsys):
        code = main(["check", str(tmp_path / "missing"), str(acme_project / "composer.lock")])

        assert code == 1
        assert "Source directory argument is invalid" in capsys.readouterr().err

    def test_invalid_rule_set_path(self, acme_project, tmp_path, capsys):
        code = main(["check", str(acme_project / "src"), str(tmp_path / "missing.lock")])

        assert code == 1
        assert "Rule set argument is invalid" in capsys.readouterr().err

    def test_unloadable_rule_set(self, acme_project, tmp_path, capsys):
        rules = tmp_path / "rules.json"
        rules.write_text("{broken", encoding="utf-8")
        code = main(["check", str(acme_project / "src"), str(rules), "--no-cache"])

        assert code == 1
        assert "check aborted" in capsys.readouterr().err

    def test_skipped_files_are_counted(self, check_args, acme_project, capsys):
        (acme_project / "src" / "Broken.php").write_text("<?php class Broken {", encoding="utf-8")

        assert main(check_args) == 0
        assert "1 files could not be parsed and were skipped" in capsys.readouterr().out

    def test_verbose_progress(self, check_args, capsys):
        assert main(check_args + ["--verbose", "--workers", "2"]) == 0

        out = capsys.readouterr().out
        assert "found 2 files" in out
        assert "checked 2/2 files" in out

    def test_cache_dir_option(self, check_args, tmp_path):
        main(check_args)
        assert list((tmp_path / ".rules").glob("*.json"))

    def test_config_file(self, acme_project, tmp_path, capsys):
        config = tmp_path / "deprecation-detector.yaml"
        config.write_text(
            f"source: {json.dumps(str(acme_project / 'src'))}\n"
            f"ruleset: {json.dumps(str(acme_project / 'composer.lock'))}\n"
            "use-cache: false\n",
            encoding="utf-8",
        )

        assert main(["check", "--config", str(config)]) == 0
        assert "There are 2 deprecations:" in capsys.readouterr().out

    def test_arguments_override_config_file(self, acme_project, make_tree, tmp_path, capsys):
        clean = make_tree("clean", {"Clean.php": "<?php class Clean {}"})
        config = tmp_path / "deprecation-detector.yaml"
        config.write_text(f"source: {json.dumps(str(acme_project / 'src'))}\n", encoding="utf-8")

        code = main(["check", str(clean), str(acme_project / "composer.lock"), "--config", str(config), "--no-cache"])
        assert code == 0
        assert "There are no violations" in capsys.readouterr().out

    def test_verbose_from_config_file_configures_logging(self, check_args, tmp_path, monkeypatch):
        levels = []
        monkeypatch.setattr("deprecation_detector.cli.configure_logging", levels.append)
        config = tmp_path / "deprecation-detector.yaml"
        config.write_text("verbose: true\n", encoding="utf-8")

        assert main(check_args + ["--config", str(config)]) == 0
        assert levels == [True]

    def test_quiet_by_default(self, check_args, tmp_path, monkeypatch):
        levels = []
        monkeypatch.setattr("deprecation_detector.cli.configure_logging", levels.append)
        monkeypatch.setattr("deprecation_detector.config.CONFIG_SEARCH_PATHS", [])

        assert main(check_args) == 0
        assert levels == [False]


class TestDumpCommand:
    """Test `deprecation-detector dump`."""

    def test_writes_rule_file(self, acme_library, tmp_path, capsys):
        output = tmp_path / "rules.json"

        assert main(["dump", str(acme_library), str(output)]) == 0
        assert "Wrote 3 deprecations" in capsys.readouterr().out
        assert len(RuleFileLoader().load_rule_set(output)) == 3

    def test_missing_rule_set(self, tmp_path, capsys):
        code = main(["dump", str(tmp_path / "composer.lock"), str(tmp_path / "rules.json")])

        assert code == 1
        assert not (tmp_path / "rules.json").exists()

    def test_unwritable_output(self, acme_library, tmp_path, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")

        assert main(["dump", str(acme_library), str(blocker / "rules.json")]) == 1
        assert "cannot write" in capsys.readouterr().err


class TestMain:
    """Test argument handling."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "check" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "deprecation-detector" in capsys.readouterr().out


class TestRendering:
    """Test violation output formats."""

    VIOLATIONS = [
        Violation(ViolationKind.CLASS, "Acme\\Old", "src/Service.php", 11, 24, "use New instead", "class"),
        Violation(ViolationKind.METHOD, "Acme\\Bar::m", "src/Service.php", 10, 15, "", "method"),
        Violation(ViolationKind.TYPE_HINT, "Acme\\Old", "src/Other.php", 3, 1, "use New instead", "type_hint"),
    ]

    def test_grouped_by_file_in_order(self):
        lines = render_violations(self.VIOLATIONS).splitlines()

        assert lines[0] == "src/Service.php"
        assert lines[1] == "-" * 60
        assert lines[2].startswith("    1. line 11")
        assert lines[2].endswith("Acme\\Old")
        assert lines[3].strip() == "use New instead"
        assert lines[4].startswith("    2. line 10")
        assert lines[6] == "src/Other.php"
        assert "type hint" in lines[8]

    def test_empty(self):
        assert render_violations([]) == ""

    def test_json(self):
        data = json.loads(violations_to_json(self.VIOLATIONS))
        assert [item["kind"] for item in data] == ["class", "method", "type_hint"]
        assert data[1]["symbol"] == "Acme\\Bar::m"
