#!/usr/bin/env python3
# CUI // SP-CTI
"""Post-migration validation.

Independent checks, each producing its own ValidationResult and merged into
one:

    syntax           every touched file re-parses (ast)
    imports          ComponentLog users import it, and the import resolves
    residual         direct output calls left anywhere in the project
    tag_consistency  the literal tag in each ComponentLog call matches the
                     file's classification
    performance      ComponentLog overhead against plain logging
    tests            the project's own test command exits 0

``validate_static()`` runs everything except the test suite, which is exposed
separately as ``run_test_suite()`` so the orchestrator can treat it as its own
stage.
"""

import ast
import logging
import os
import re
import subprocess
import sys
import time
from pathlib import Path
from typing import Iterable, List, Optional

from tools.log_migration.call_site_transformer import CallSiteTransformer
from tools.log_migration.component_classifier import ComponentClassifier
from tools.log_migration.component_log import ComponentLog
from tools.log_migration.component_migrator import DEFAULT_EXCLUDE_DIRS, iter_python_files
from tools.log_migration.migration_models import BackupEntry, ComponentTag, ValidationResult
from tools.log_migration.post_conditions import (
    PostConditionRule,
    imported_symbol_modules,
    logger_calls,
    parse_or_none,
)

logger = logging.getLogger("log_migration.validator")

PYTHON_PLACEHOLDER = "{python}"
OUTPUT_TAIL_LINES = 20

DEFAULT_SETTINGS = {
    "run_tests": True,
    "test_command": [PYTHON_PLACEHOLDER, "-m", "pytest", "-q"],
    "test_timeout_seconds": 300,
    "ok_exit_codes": [0],
    "performance_iterations": 1000,
    "performance_threshold_pct": 50.0,
}


def resolve_test_command(command) -> List[str]:
    """Expand the ``{python}`` placeholder to the running interpreter."""
    if isinstance(command, str):
        command = command.split()
    return [sys.executable if part == PYTHON_PLACEHOLDER else str(part) for part in command]


def _read(path) -> str:
    with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
        return f.read()


def _tag_set(components):
    if components is None:
        return None
    return {ComponentTag.from_name(c) for c in components}


class MigrationValidator:
    """Validates a project tree after (or independently of) a migration run.

    Args:
        project_root: Project being validated.
        settings: The ``validation`` config table.
        classifier: Used for tag consistency and residual strictness.
        transformer: Supplies the logger symbol, module path and call scanner.
        component_configs: Used to find components whose rules forbid stdout.
    """

    def __init__(self, project_root, settings: Optional[dict] = None,
                 classifier: Optional[ComponentClassifier] = None,
                 transformer: Optional[CallSiteTransformer] = None,
                 component_configs: Iterable = (),
                 exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS):
        self.project_root = Path(os.path.abspath(project_root))
        self.settings = dict(DEFAULT_SETTINGS)
        self.settings.update(settings or {})
        self.classifier = classifier or ComponentClassifier(self.project_root)
        self.transformer = transformer or CallSiteTransformer(project_root=self.project_root)
        self.symbol = self.transformer.symbol
        self.exclude_dirs = tuple(exclude_dirs)
        self.strict_components = {
            c.component for c in component_configs
            if PostConditionRule.NO_DIRECT_STDOUT in c.rules
        }
        self._call_re = re.compile(r"(?<![\w.])" + re.escape(self.symbol) + r"\s*\.\s*\w+\s*\(")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def validate(self, touched_files: Optional[Iterable] = None,
                 entries: Iterable[BackupEntry] = (), include_tests: bool = True,
                 components: Optional[Iterable] = None) -> ValidationResult:
        result = self.validate_static(touched_files, entries, components)
        if include_tests and self.settings.get("run_tests", True):
            result.merge(self.run_test_suite())
        return result

    def validate_static(self, touched_files: Optional[Iterable] = None,
                        entries: Iterable[BackupEntry] = (),
                        components: Optional[Iterable] = None) -> ValidationResult:
        """Everything but the test suite.

        *components* limits the file set and the residual count to files the
        classifier assigns to those tags.
        """
        entries = list(entries)
        tags = _tag_set(components)
        files = self._touched(touched_files, entries, tags)
        logger.info("Validating %d file(s) in %s", len(files), self.project_root)

        result = ValidationResult(metrics={"files_validated": len(files)})
        result.merge(self.check_syntax(files, entries))
        result.merge(self.check_imports(files))
        result.merge(self.check_residual(tags))
        result.merge(self.check_tag_consistency(files))
        if int(self.settings.get("performance_iterations") or 0) > 0:
            result.merge(self.assess_performance())
        return result

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    def check_syntax(self, files: List[Path], entries: Iterable[BackupEntry] = ()) -> ValidationResult:
        backups = {e.original_path: e.backup_path for e in entries}
        result = ValidationResult()
        for path in files:
            try:
                ast.parse(_read(path))
            except (SyntaxError, ValueError) as exc:
                location = f"line {getattr(exc, 'lineno', '?')}"
                backup = backups.get(str(path))
                if backup and os.path.exists(backup) and parse_or_none(_read(backup)) is None:
                    result.warnings.append(
                        f"{self._rel(path)} ({location}) was already malformed before migration"
                    )
                else:
                    result.errors.append(f"{self._rel(path)} does not parse ({location}): {exc}")
        result.checks["syntax"] = not result.errors
        result.passed = not result.errors
        return result

    def check_imports(self, files: List[Path]) -> ValidationResult:
        result = ValidationResult()
        for path in files:
            content = _read(path)
            if not self.transformer.uses_logger(content):
                continue
            tree = parse_or_none(content)
            if tree is None:
                continue
            imports = imported_symbol_modules(tree, self.symbol)
            if not imports:
                result.errors.append(f"{self._rel(path)} uses {self.symbol} but does not import it")
                continue
            for node in imports:
                if self._resolve_import(path, node) is None:
                    module = "." * node.level + (node.module or "")
                    result.errors.append(
                        f"{self._rel(path)}: import of {self.symbol} from {module} does not "
                        "resolve to a file"
                    )
        result.checks["imports"] = not result.errors
        result.passed = not result.errors
        return result

    def check_residual(self, components: Optional[Iterable] = None) -> ValidationResult:
        """Count direct output calls left anywhere in the project."""
        result = ValidationResult()
        residual = 0
        migrated = 0
        lenient_files = 0
        for path in self._project_files(_tag_set(components)):
            content = _read(path)
            migrated += len(self._call_re.findall(content))
            count = self.transformer.scan(content).total
            if not count:
                continue
            residual += count
            tag = self.classifier.classify(path)
            if tag in self.strict_components:
                result.errors.append(
                    f"{self._rel(path)}: {count} direct output call(s) remain in {tag.value}, "
                    "which forbids direct stdout"
                )
            else:
                lenient_files += 1
        if lenient_files:
            result.warnings.append(
                f"{residual} residual direct output call(s) remain across the project "
                f"({lenient_files} file(s) outside strict components)"
            )
        total = residual + migrated
        result.metrics.update({
            "residual_calls": residual,
            "migrated_calls": migrated,
            "migration_coverage": round(migrated / total * 100, 2) if total else 100.0,
        })
        result.checks["residual"] = not result.errors
        result.passed = not result.errors
        return result

    def check_tag_consistency(self, files: List[Path]) -> ValidationResult:
        result = ValidationResult()
        for path in files:
            tree = parse_or_none(_read(path))
            if tree is None:
                continue
            expected = self.classifier.classify(path).value
            for call, method in logger_calls(tree, self.symbol):
                if not call.args:
                    continue
                first = call.args[0]
                if not (isinstance(first, ast.Constant) and isinstance(first.value, str)):
                    continue
                if first.value != expected:
                    result.errors.append(
                        f"{self._rel(path)}:{call.lineno} {self.symbol}.{method} tagged "
                        f"{first.value!r}, file is classified {expected!r}"
                    )
        result.checks["tag_consistency"] = not result.errors
        result.passed = not result.errors
        return result

    def run_test_suite(self) -> ValidationResult:
        """Run the project's test command; only an accepted exit code passes."""
        result = ValidationResult()
        command = resolve_test_command(self.settings.get("test_command") or [])
        timeout = int(self.settings.get("test_timeout_seconds", 300))
        ok_codes = set(self.settings.get("ok_exit_codes") or [0])
        if not command:
            result.errors.append("No test command configured")
            result.checks["tests"] = False
            result.passed = False
            return result

        logger.info("Running test suite: %s (timeout %ds)", " ".join(command), timeout)
        started = time.time()
        try:
            proc = subprocess.run(
                command, cwd=str(self.project_root), capture_output=True, text=True,
                timeout=timeout, stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            result.errors.append(f"Test runner not found: {command[0]}")
        except subprocess.TimeoutExpired:
            result.errors.append(f"Test suite timed out after {timeout}s")
        else:
            if proc.returncode not in ok_codes:
                output = (proc.stdout or "") + (proc.stderr or "")
                tail = "\n".join(output.strip().splitlines()[-OUTPUT_TAIL_LINES:])
                result.errors.append(f"Test suite failed (exit {proc.returncode})\n{tail}".rstrip())
            result.metrics["test_exit_code"] = proc.returncode
        result.metrics["test_duration_ms"] = round((time.time() - started) * 1000, 2)
        result.checks["tests"] = not result.errors
        result.passed = not result.errors
        return result

    def assess_performance(self, iterations: Optional[int] = None,
                           threshold_pct: Optional[float] = None) -> ValidationResult:
        """Time ComponentLog against a plain logger writing to a NullHandler."""
        iterations = int(iterations or self.settings.get("performance_iterations") or 1000)
        threshold = float(threshold_pct if threshold_pct is not None
                          else self.settings.get("performance_threshold_pct", 50.0))
        result = ValidationResult()

        baseline = logging.getLogger("log_migration.perf.baseline")
        tagged = ComponentLog.get_logger("perf-check")
        saved = []
        for target in (baseline, tagged):
            saved.append((target, target.level, target.propagate, list(target.handlers)))
            target.handlers = [logging.NullHandler()]
            target.setLevel(logging.INFO)
            target.propagate = False
        try:
            start = time.perf_counter()
            for i in range(iterations):
                baseline.info("performance sample %d", i)
            base_time = time.perf_counter() - start

            start = time.perf_counter()
            for i in range(iterations):
                ComponentLog.info("perf-check", "performance sample %d", i)
            tagged_time = time.perf_counter() - start
        finally:
            for target, level, propagate, handlers in saved:
                target.handlers = handlers
                target.setLevel(level)
                target.propagate = propagate

        overhead = ((tagged_time - base_time) / base_time * 100) if base_time > 0 else 0.0
        result.metrics["performance_impact_pct"] = round(overhead, 2)
        if overhead > threshold:
            result.warnings.append(
                f"{self.symbol} overhead {overhead:.1f}% exceeds {threshold:.1f}% "
                f"over {iterations} calls"
            )
        result.checks["performance"] = overhead <= threshold
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _resolve_import(self, path: Path, node: ast.ImportFrom) -> Optional[Path]:
        parts = (node.module or "").split(".") if node.module else []
        if node.level:
            base = Path(path).parent
            for _ in range(node.level - 1):
                base = base.parent
        else:
            base = self.project_root
        target = base.joinpath(*parts) if parts else base
        for candidate in (target.with_suffix(".py") if parts else None, target / "__init__.py"):
            if candidate is not None and candidate.is_file():
                return candidate
        return None

    def _touched(self, touched_files, entries, tags=None) -> List[Path]:
        if touched_files is not None:
            return [Path(os.path.abspath(p)) for p in touched_files]
        if entries:
            return [Path(e.original_path) for e in entries]
        return self._project_files(tags)

    def _project_files(self, tags=None) -> List[Path]:
        files = iter_python_files(self.project_root, self.exclude_dirs,
                                  [str(self.transformer.module_path)])
        if tags is None:
            return files
        return [p for p in files if self.classifier.classify(p) in tags]

    def _rel(self, path) -> str:
        try:
            return Path(path).relative_to(self.project_root).as_posix()
        except ValueError:
            return str(path)
