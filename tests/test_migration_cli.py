# CUI // SP-CTI
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

"""Tests for tools.log_migration.migration_cli."""

import json

import pytest

from tools.log_migration.migration_cli import EXIT_FAILED, EXIT_OK, build_parser, main
from tests.conftest import snapshot, write_project

FAST_YAML = (
    "validation:\n"
    "  run_tests: false\n"
    "  performance_iterations: 10\n"
    "  performance_threshold_pct: 1000000\n"
)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "fast.yaml"
    path.write_text(FAST_YAML, encoding="utf-8")
    return str(path)


def _run(capsys, *argv):
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, out


class TestParser:
    """Tests for argument parsing."""

    def test_subcommand_required(self):
        """Running without a sub-command exits with a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_rollback_needs_scope(self):
        """rollback requires --component or --all."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["rollback", "--run-dir", "x"])

    def test_component_is_repeatable(self):
        """--component may be given several times."""
        args = build_parser().parse_args(
            ["migrate", "--component", "CLI", "--component", "Storage"])
        assert args.component == ["CLI", "Storage"]


class TestCommands:
    """Tests for the sub-commands against a sample project."""

    def test_analyze_json(self, capsys, sample_project, config_file):
        """analyze --json prints the analysis report and changes nothing."""
        before = snapshot(sample_project)
        code, out = _run(capsys, "analyze", "--project-root", str(sample_project),
                         "--config", config_file, "--json")
        assert code == EXIT_OK
        analysis = json.loads(out)
        assert analysis["total_calls"] == 8
        assert snapshot(sample_project) == before

    def test_migrate_status_rollback(self, capsys, sample_project, config_file):
        """A migrate run shows up in status and can be rolled back by run id."""
        before = snapshot(sample_project)
        code, out = _run(capsys, "migrate", "--project-root", str(sample_project),
                         "--config", config_file, "--json")
        assert code == EXIT_OK
        report = json.loads(out)
        assert report["success"] is True
        run_id = report["execution_id"]

        code, out = _run(capsys, "status", "--project-root", str(sample_project),
                         "--config", config_file, "--json")
        runs = json.loads(out)["runs"]
        assert [(r["run_id"], r["status"]) for r in runs] == [(run_id, "complete")]
        assert runs[0]["calls_migrated"] == 8

        code, out = _run(capsys, "rollback", "--project-root", str(sample_project),
                         "--config", config_file, "--run-dir", run_id, "--all", "--json")
        assert code == EXIT_OK
        assert json.loads(out)["count"] == 5
        assert snapshot(sample_project) == before

    def test_rollback_single_component(self, capsys, sample_project, config_file):
        """rollback --component restores only that component's files."""
        _run(capsys, "migrate", "--project-root", str(sample_project), "--config", config_file)
        run_dir = next((sample_project / ".log-migration" / "runs").iterdir())

        code, _ = _run(capsys, "rollback", "--project-root", str(sample_project),
                       "--config", config_file, "--run-dir", str(run_dir),
                       "--component", "Storage")
        assert code == EXIT_OK
        assert "print(" in (sample_project / "src" / "storage" / "store.py").read_text(
            encoding="utf-8")
        assert "print(" not in (sample_project / "src" / "cli" / "main.py").read_text(
            encoding="utf-8")

    def test_migrate_text_output(self, capsys, sample_project, config_file):
        """Without --json a human-readable summary is printed."""
        code, out = _run(capsys, "migrate", "--project-root", str(sample_project),
                         "--config", config_file, "--dry-run")
        assert code == EXIT_OK
        assert "Status:   SUCCESS (COMPLETE)" in out

    def test_migrate_failure_exit_code(self, capsys, sample_project, config_file):
        """A failed run exits with status 1."""
        write_project(sample_project, {
            "src/api/raw.py": "import sys\n\n\ndef emit(x):\n    sys.stdout.write(x)\n",
        })
        code, out = _run(capsys, "migrate", "--project-root", str(sample_project),
                         "--config", config_file, "--json")
        assert code == EXIT_FAILED
        assert json.loads(out)["stage"] == "FAILED"

    def test_validate_before_and_after(self, capsys, sample_project, config_file):
        """validate fails on residual Interface calls and passes after migration."""
        code, out = _run(capsys, "validate", "--project-root", str(sample_project),
                         "--config", config_file, "--skip-tests", "--json")
        assert code == EXIT_FAILED
        assert json.loads(out)["checks"]["residual"] is False

        _run(capsys, "migrate", "--project-root", str(sample_project), "--config", config_file)
        code, out = _run(capsys, "validate", "--project-root", str(sample_project),
                         "--config", config_file, "--skip-tests", "--json")
        assert code == EXIT_OK
        assert json.loads(out)["metrics"]["residual_calls"] == 0

    def test_status_without_runs(self, capsys, sample_project, config_file):
        """status on a fresh project reports no runs."""
        code, out = _run(capsys, "status", "--project-root", str(sample_project),
                         "--config", config_file)
        assert code == EXIT_OK
        assert "No migration runs" in out

    def test_rollback_unknown_run(self, capsys, sample_project, config_file):
        """Rolling back a run that does not exist fails cleanly."""
        code, _ = _run(capsys, "rollback", "--project-root", str(sample_project),
                       "--config", config_file, "--run-dir", "missing", "--all")
        assert code == EXIT_FAILED


class TestRunCommands:
    """Tests for per-file rollback, scoped validation, report and analytics."""

    def _migrate(self, capsys, project, config_file):
        code, out = _run(capsys, "migrate", "--project-root", str(project),
                         "--config", config_file, "--json")
        assert code == EXIT_OK
        return json.loads(out)["execution_id"]

    def test_rollback_single_file(self, capsys, sample_project, config_file):
        """rollback --file restores that file and leaves the rest migrated."""
        before = snapshot(sample_project)
        run_id = self._migrate(capsys, sample_project, config_file)

        code, out = _run(capsys, "rollback", "--project-root", str(sample_project),
                         "--config", config_file, "--run-dir", run_id,
                         "--file", "src/cli/main.py", "--json")
        assert code == EXIT_OK
        assert json.loads(out)["count"] == 1
        assert snapshot(sample_project)["src/cli/main.py"] == before["src/cli/main.py"]
        assert "print(" not in (sample_project / "src" / "storage" / "store.py").read_text(
            encoding="utf-8")

    def test_rollback_file_without_backup(self, capsys, sample_project, config_file):
        """A file the run never backed up cannot be rolled back."""
        run_id = self._migrate(capsys, sample_project, config_file)
        code, _ = _run(capsys, "rollback", "--project-root", str(sample_project),
                       "--config", config_file, "--run-dir", run_id,
                       "--file", "src/storage/constants.py")
        assert code == EXIT_FAILED

    def test_rollback_scopes_are_exclusive(self):
        """--file cannot be combined with --all."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["rollback", "--run-dir", "x", "--all", "--file", "a.py"])

    def test_validate_single_component(self, capsys, sample_project, config_file):
        """validate --component only looks at that component's files."""
        code, out = _run(capsys, "validate", "--project-root", str(sample_project),
                         "--config", config_file, "--skip-tests", "--component", "Storage",
                         "--json")
        assert code == EXIT_OK
        result = json.loads(out)
        assert result["metrics"]["files_validated"] == 3
        assert result["metrics"]["residual_calls"] == 3

        code, out = _run(capsys, "validate", "--project-root", str(sample_project),
                         "--config", config_file, "--skip-tests", "--component", "Interface",
                         "--json")
        assert code == EXIT_FAILED
        assert json.loads(out)["checks"]["residual"] is False

    def test_report_formats(self, capsys, sample_project, config_file, tmp_path):
        """report prints the latest run as JSON or text, optionally to a file."""
        run_id = self._migrate(capsys, sample_project, config_file)

        code, out = _run(capsys, "report", "--project-root", str(sample_project),
                         "--config", config_file, "--format", "json")
        assert code == EXIT_OK
        report = json.loads(out)
        assert report["execution_id"] == run_id
        assert report["success"] is True

        target = tmp_path / "out" / "report.txt"
        code, out = _run(capsys, "report", "--project-root", str(sample_project),
                         "--config", config_file, "--run-dir", run_id,
                         "--format", "text", "--output", str(target))
        assert code == EXIT_OK
        assert str(target) in out
        text = target.read_text(encoding="utf-8")
        assert "Status:   SUCCESS (COMPLETE)" in text
        assert "syntax ok" in text

    def test_report_without_runs(self, capsys, sample_project, config_file):
        """report on a project with no finished runs fails cleanly."""
        code, _ = _run(capsys, "report", "--project-root", str(sample_project),
                       "--config", config_file)
        assert code == EXIT_FAILED

    def test_analytics(self, capsys, sample_project, config_file):
        """analytics surfaces logger call sites of the latest run."""
        self._migrate(capsys, sample_project, config_file)

        code, out = _run(capsys, "analytics", "--project-root", str(sample_project),
                         "--config", config_file, "--json")
        assert code == EXIT_OK
        analytics = json.loads(out)
        assert analytics["total_migrated"] == 8
        assert analytics["completion_percentage"] == 100.0
        assert sum(analytics["call_sites"].values()) == 8
        assert analytics["call_sites"]["log@CLI"] == 1
        assert analytics["call_sites_by_component"]["Storage"] == 3
        assert analytics["recommendations"]

        code, out = _run(capsys, "analytics", "--project-root", str(sample_project),
                         "--config", config_file)
        assert code == EXIT_OK
        assert "log@CLI" in out
