# CUI // SP-CTI
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

"""Tests for tools.log_migration.migration_validator."""

import logging
import subprocess
from unittest.mock import patch

import pytest

from tools.log_migration.component_log import ComponentLog
from tools.log_migration.migration_models import (
    BackupEntry,
    ComponentMigrationConfig,
    ComponentTag,
    Priority,
)
from tools.log_migration.migration_validator import (
    PYTHON_PLACEHOLDER,
    MigrationValidator,
    resolve_test_command,
)
from tools.log_migration.post_conditions import PostConditionRule
from tests.conftest import write_project

LOGGER_SOURCE = "class ComponentLog:\n    pass\n"


def _validator(root, **settings):
    base = {"performance_iterations": 0, "run_tests": False}
    base.update(settings)
    return MigrationValidator(root, settings=base)


class TestResolveTestCommand:
    """Tests for the {python} placeholder."""

    def test_placeholder_expands(self):
        """{python} becomes the running interpreter."""
        assert resolve_test_command([PYTHON_PLACEHOLDER, "-m", "pytest"]) == [
            sys.executable, "-m", "pytest"]

    def test_string_command_is_split(self):
        """A single string is split on whitespace."""
        assert resolve_test_command("{python} -m pytest -q")[1:] == ["-m", "pytest", "-q"]


class TestSyntax:
    """Tests for check_syntax."""

    def test_broken_file_is_error(self, tmp_path):
        """A touched file that does not parse fails validation."""
        write_project(tmp_path, {"a.py": "def f(:\n", "b.py": "x = 1\n"})
        result = _validator(tmp_path).check_syntax([tmp_path / "a.py", tmp_path / "b.py"])
        assert not result.passed
        assert len(result.errors) == 1
        assert "a.py" in result.errors[0]
        assert result.checks["syntax"] is False

    def test_malformed_backup_downgrades_to_warning(self, tmp_path):
        """A file already broken before migration only warns."""
        write_project(tmp_path, {"a.py": "def f(:\n", "bak/a.py": "def f(:\n"})
        entry = BackupEntry(str(tmp_path / "a.py"), str(tmp_path / "bak" / "a.py"),
                            ComponentTag.CORE)
        result = _validator(tmp_path).check_syntax([tmp_path / "a.py"], [entry])
        assert result.passed
        assert "already malformed" in result.warnings[0]


class TestImports:
    """Tests for check_imports."""

    def test_missing_import(self, tmp_path):
        """Using ComponentLog without importing it is an error."""
        write_project(tmp_path, {"a.py": 'ComponentLog.info("Core", "x")\n'})
        result = _validator(tmp_path).check_imports([tmp_path / "a.py"])
        assert not result.passed
        assert "does not import" in result.errors[0]

    def test_unresolved_import(self, tmp_path):
        """An import pointing at a module that does not exist is an error."""
        write_project(tmp_path, {
            "src/app.py": "from src.utils.component_log import ComponentLog\n"
                          'ComponentLog.info("Core", "x")\n',
        })
        result = _validator(tmp_path).check_imports([tmp_path / "src" / "app.py"])
        assert not result.passed
        assert "does not resolve" in result.errors[0]

    def test_absolute_and_relative_imports_resolve(self, tmp_path):
        """Both import styles resolve once the logger module exists."""
        write_project(tmp_path, {
            "src/utils/component_log.py": LOGGER_SOURCE,
            "src/app.py": "from src.utils.component_log import ComponentLog\n"
                          'ComponentLog.info("Core", "x")\n',
            "src/storage/db.py": "from ..utils.component_log import ComponentLog\n"
                                 'ComponentLog.info("Storage", "x")\n',
        })
        files = [tmp_path / "src" / "app.py", tmp_path / "src" / "storage" / "db.py"]
        result = _validator(tmp_path).check_imports(files)
        assert result.passed, result.errors

    def test_files_without_logger_are_ignored(self, tmp_path):
        """Files that never mention ComponentLog need no import."""
        write_project(tmp_path, {"a.py": "x = 1\n"})
        assert _validator(tmp_path).check_imports([tmp_path / "a.py"]).passed


class TestResidual:
    """Tests for check_residual."""

    def _strict_validator(self, root):
        interface = ComponentMigrationConfig(
            component=ComponentTag.INTERFACE, priority=Priority.HIGH,
            paths=("**/api/**/*.py",), rules=(PostConditionRule.NO_DIRECT_STDOUT,),
        )
        return MigrationValidator(root, settings={"performance_iterations": 0},
                                  component_configs=[interface])

    def test_strict_component_residuals_are_errors(self, sample_project):
        """Residual calls in a component forbidding stdout fail validation."""
        result = self._strict_validator(sample_project).check_residual()
        assert not result.passed
        assert len(result.errors) == 1
        assert "src/api/server.py" in result.errors[0]

    def test_lenient_residuals_warn_once(self, sample_project):
        """Residuals elsewhere produce a single aggregate warning."""
        result = _validator(sample_project).check_residual()
        assert result.passed
        assert len(result.warnings) == 1
        assert result.metrics["residual_calls"] == 8
        assert result.metrics["migration_coverage"] == 0.0

    def test_residuals_limited_to_components(self, sample_project):
        """A component filter counts only files classified into those components."""
        validator = self._strict_validator(sample_project)
        storage = validator.check_residual(["Storage"])
        assert storage.passed
        assert storage.metrics["residual_calls"] == 3

        interface = validator.validate_static(components=["Interface"])
        assert not interface.passed
        assert interface.metrics["files_validated"] == 2

    def test_coverage_counts_migrated_calls(self, tmp_path):
        """Coverage is migrated / (migrated + residual)."""
        write_project(tmp_path, {
            "a.py": 'ComponentLog.info("Core", "x")\nComponentLog.log("Core", "y")\n'
                    "print('z')\n",
        })
        result = _validator(tmp_path).check_residual()
        assert result.metrics["migrated_calls"] == 2
        assert result.metrics["residual_calls"] == 1
        assert result.metrics["migration_coverage"] == pytest.approx(66.67)

    def test_logger_module_not_counted(self, tmp_path):
        """The logger module's own print calls are not residuals."""
        write_project(tmp_path, {"src/utils/component_log.py": "print('inside logger')\n"})
        result = _validator(tmp_path).check_residual()
        assert result.metrics["residual_calls"] == 0
        assert result.metrics["migration_coverage"] == 100.0


class TestTagConsistency:
    """Tests for check_tag_consistency."""

    def test_mismatched_tag(self, tmp_path):
        """A literal tag differing from the file's classification is an error."""
        write_project(tmp_path, {"src/cli/main.py": 'ComponentLog.info("Storage", "x")\n'})
        result = _validator(tmp_path).check_tag_consistency([tmp_path / "src" / "cli" / "main.py"])
        assert not result.passed
        assert "'CLI'" in result.errors[0]

    def test_matching_and_dynamic_tags_pass(self, tmp_path):
        """Matching literals pass; non-literal tags are not checked."""
        write_project(tmp_path, {
            "src/cli/main.py": 'ComponentLog.info("CLI", "x")\nComponentLog.info(tag, "y")\n',
        })
        result = _validator(tmp_path).check_tag_consistency([tmp_path / "src" / "cli" / "main.py"])
        assert result.passed


class TestRunTestSuite:
    """Tests for run_test_suite."""

    def test_exit_zero_passes(self, tmp_path):
        """A zero exit code passes and is recorded."""
        validator = _validator(tmp_path, test_command=[sys.executable, "-c", "pass"])
        result = validator.run_test_suite()
        assert result.passed
        assert result.checks["tests"] is True
        assert result.metrics["test_exit_code"] == 0

    def test_non_zero_exit_fails(self, tmp_path):
        """A failing command reports its exit code and output tail."""
        validator = _validator(tmp_path, test_command=[
            sys.executable, "-c", "import sys; print('1 failed'); sys.exit(1)"])
        result = validator.run_test_suite()
        assert not result.passed
        assert "exit 1" in result.errors[0]
        assert "1 failed" in result.errors[0]

    def test_accepted_exit_codes(self, tmp_path):
        """Codes listed in ok_exit_codes count as success."""
        validator = _validator(tmp_path, ok_exit_codes=[0, 5], test_command=[
            sys.executable, "-c", "import sys; sys.exit(5)"])
        assert validator.run_test_suite().passed

    def test_placeholder_command(self, tmp_path):
        """The {python} placeholder runs with the current interpreter."""
        validator = _validator(tmp_path, test_command=[PYTHON_PLACEHOLDER, "-c", "pass"])
        assert validator.run_test_suite().passed

    def test_timeout(self, tmp_path):
        """A command exceeding the timeout fails with a clear message."""
        validator = _validator(tmp_path, test_command=["pytest"], test_timeout_seconds=1)
        with patch("tools.log_migration.migration_validator.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(cmd="pytest", timeout=1)):
            result = validator.run_test_suite()
        assert not result.passed
        assert "timed out" in result.errors[0]

    def test_missing_runner(self, tmp_path):
        """A runner that is not installed fails rather than raising."""
        validator = _validator(tmp_path, test_command=["no-such-test-runner-xyz"])
        result = validator.run_test_suite()
        assert not result.passed
        assert "not found" in result.errors[0]

    def test_empty_command(self, tmp_path):
        """An empty test command is an error."""
        result = _validator(tmp_path, test_command=[]).run_test_suite()
        assert not result.passed


class TestPerformance:
    """Tests for assess_performance."""

    def test_threshold_exceeded_warns(self, tmp_path):
        """Overhead above the threshold is a warning, not an error."""
        result = _validator(tmp_path).assess_performance(iterations=50, threshold_pct=-1000)
        assert result.passed
        assert result.warnings
        assert result.checks["performance"] is False
        assert "performance_impact_pct" in result.metrics

    def test_generous_threshold_passes(self, tmp_path):
        """A generous threshold reports the metric without warnings."""
        result = _validator(tmp_path).assess_performance(iterations=50, threshold_pct=1e9)
        assert result.warnings == []
        assert result.checks["performance"] is True

    def test_logger_state_restored(self, tmp_path):
        """Handlers swapped in for the benchmark are restored afterwards."""
        perf_logger = ComponentLog.get_logger("perf-check")
        before = (list(perf_logger.handlers), perf_logger.level, perf_logger.propagate)
        _validator(tmp_path).assess_performance(iterations=10)
        assert (list(perf_logger.handlers), perf_logger.level, perf_logger.propagate) == before
        assert not any(isinstance(h, logging.NullHandler) for h in perf_logger.handlers)


class TestValidate:
    """Tests for the combined entry points."""

    def test_validate_static_merges_checks(self, sample_project):
        """validate_static reports every static check."""
        validator = MigrationValidator(sample_project, settings={"performance_iterations": 10})
        result = validator.validate_static()
        assert set(result.checks) == {"syntax", "imports", "residual", "tag_consistency",
                                      "performance"}
        assert result.metrics["files_validated"] == 12

    def test_validate_runs_tests_when_enabled(self, tmp_path):
        """validate() includes the test suite unless told otherwise."""
        validator = _validator(tmp_path, run_tests=True, test_command=[sys.executable, "-c", "pass"])
        assert "tests" in validator.validate().checks
        assert "tests" not in validator.validate(include_tests=False).checks

    def test_touched_files_from_entries(self, tmp_path):
        """Without explicit files, backup entries define the touched set."""
        write_project(tmp_path, {"a.py": "x = 1\n", "b.py": "def f(:\n"})
        entry = BackupEntry(str(tmp_path / "a.py"), str(tmp_path / "bak.py"), ComponentTag.CORE)
        result = _validator(tmp_path).validate_static(entries=[entry])
        assert result.metrics["files_validated"] == 1
        assert result.checks["syntax"] is True
