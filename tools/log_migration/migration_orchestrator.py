#!/usr/bin/env python3
# CUI // SP-CTI
"""Migration orchestrator: the run-level state machine.

    INIT -> ANALYSIS -> MIGRATION -> VALIDATION -> TESTING -> COMPLETE
      any stage may move to FAILED

Everything a run produces lives under ``<project>/.log-migration/runs/<run_id>/``:

    backups/<Component>/<relpath>   pre-migration snapshots
    critical/                       project config files copied at INIT
    backup-manifest.json            BackupEntry list, rewritten after each backup
    reports/analysis.json           ANALYSIS output
    reports/migration-results.json  per-component results and file records
    reports/migration-summary.json  MigrationSummary
    reports/validation.json         ValidationResult
    reports/analytics.json          logger usage analytics
    rollback.sh                     standalone restore script
    migration.log                   run log
    final-report.json | failure-report.json

The orchestrator is the only writer of PipelineState. Listeners registered
with ``subscribe()`` get a detached snapshot after every file and every stage
transition; a failing listener is logged and ignored.
"""

import ast
import importlib.util
import json
import logging
import os
import shutil
import sys
import threading
import time
import uuid
from datetime import datetime, timezone
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from tools.log_migration import component_log
from tools.log_migration.backup_store import BackupStore
from tools.log_migration.call_site_transformer import TEXTUAL, CallSiteTransformer
from tools.log_migration.component_classifier import DEFAULT_TAG, ComponentClassifier
from tools.log_migration.component_migrator import ComponentMigrator, iter_python_files
from tools.log_migration.errors import (
    ConfigurationError,
    MigrationError,
    PipelineAborted,
    PrerequisiteError,
    ValidationFailure,
)
from tools.log_migration.migration_config import (
    build_component_configs,
    classifier_rules,
    load_config,
)
from tools.log_migration.migration_models import (
    ComponentMigrationConfig,
    ComponentMigrationResult,
    ComponentTag,
    MigrationRecord,
    MigrationReport,
    MigrationSummary,
    PipelineStage,
    PipelineState,
    ValidationResult,
)
from tools.log_migration.migration_validator import MigrationValidator, resolve_test_command
from tools.log_migration.post_conditions import logger_calls, parse_or_none

logger = logging.getLogger("log_migration.orchestrator")

RUNS_DIR = "runs"
FINAL_REPORT = "final-report.json"
FAILURE_REPORT = "failure-report.json"
ANALYTICS_REPORT = "analytics.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_run_id() -> str:
    return f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}-{uuid.uuid4().hex[:6]}"


def _write_json(path: Path, data) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    return str(path)


# ---------------------------------------------------------------------------
# Component ordering
# ---------------------------------------------------------------------------
def order_components(configs: Iterable[ComponentMigrationConfig]) -> List[ComponentMigrationConfig]:
    """Dependency order, ties broken by priority rank then declaration order.

    Raises:
        ConfigurationError: duplicate component, unknown dependency or a cycle.
    """
    configs = list(configs)
    by_tag = {}
    for cfg in configs:
        if cfg.component in by_tag:
            raise ConfigurationError(f"Component {cfg.component.value} is configured twice",
                                     config_key="components")
        by_tag[cfg.component] = cfg
    position = {cfg.component: i for i, cfg in enumerate(configs)}

    graph = {}
    for cfg in configs:
        for dep in cfg.dependencies:
            if dep not in by_tag:
                raise ConfigurationError(
                    f"{cfg.component.value} depends on {dep.value}, which is not configured",
                    config_key=f"components.{cfg.component.value}.dependencies",
                )
        graph[cfg.component] = set(cfg.dependencies)

    sorter = TopologicalSorter(graph)
    try:
        sorter.prepare()
    except CycleError as exc:
        cycle = " -> ".join(tag.value for tag in exc.args[1])
        raise ConfigurationError(f"Component dependency cycle: {cycle}",
                                 config_key="components")

    ready: list = []
    ordered = []
    while sorter.is_active():
        ready.extend(sorter.get_ready())
        ready.sort(key=lambda tag: (by_tag[tag].priority.rank, position[tag]))
        tag = ready.pop(0)
        ordered.append(by_tag[tag])
        sorter.done(tag)
    return ordered


def select_components(configs: List[ComponentMigrationConfig], names: Iterable
                      ) -> List[ComponentMigrationConfig]:
    """Keep the named components plus everything they depend on."""
    by_tag = {cfg.component: cfg for cfg in configs}
    wanted = set()
    pending = [ComponentTag.from_name(n) for n in names]
    while pending:
        tag = pending.pop()
        if tag in wanted:
            continue
        if tag not in by_tag:
            raise ConfigurationError(f"Component {tag.value} is not configured",
                                     config_key="components")
        wanted.add(tag)
        pending.extend(by_tag[tag].dependencies)
    return [cfg for cfg in configs if cfg.component in wanted]


# ---------------------------------------------------------------------------
# Usage analytics
# ---------------------------------------------------------------------------
def build_analytics(run_id: str, summary: MigrationSummary, total_calls: int,
                    call_sites: dict, runtime_usage: dict) -> dict:
    """Usage analytics for refactor planning.

    Args:
        run_id: Run the analytics belong to.
        summary: Migration summary of the run.
        total_calls: Direct output calls counted during ANALYSIS.
        call_sites: Logger call sites in the tree, keyed ``method@component``.
        runtime_usage: ``ComponentLog.usage_stats()`` of this process.
    """
    by_method: dict = {}
    by_component: dict = {}
    for key, count in call_sites.items():
        method, _, tag = key.partition("@")
        by_method[method] = by_method.get(method, 0) + count
        by_component[tag] = by_component.get(tag, 0) + count

    migrated = summary.total_replacements
    completion = round(migrated / total_calls * 100, 2) if total_calls else 100.0

    recommendations = []
    if by_method.get("error", 0) > by_method.get("debug", 0):
        recommendations.append(
            "More error than debug call sites; use debug for development-time detail"
        )
    if by_component:
        busiest = max(sorted(by_component), key=lambda t: by_component[t])
        total_sites = sum(by_component.values())
        recommendations.append(
            f"{busiest} holds {by_component[busiest]} of {total_sites} logger call site(s); "
            "start refactoring there"
        )
    else:
        recommendations.append("No logger call sites found")
    if total_calls and completion < 100.0:
        recommendations.append(
            f"{total_calls - migrated} direct output call(s) are still unmigrated"
        )

    return {
        "run_id": run_id,
        "timestamp": _now_iso(),
        "total_migrated": migrated,
        "completion_percentage": completion,
        "migrated_by_component": dict(summary.component_breakdown),
        "call_sites": dict(sorted(call_sites.items())),
        "call_sites_by_method": by_method,
        "call_sites_by_component": by_component,
        "runtime_usage": dict(sorted(runtime_usage.items())),
        "recommendations": recommendations,
    }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class MigrationOrchestrator:
    """Drives one migration run over a project.

    Args:
        project_root: Project to migrate.
        config: Loaded configuration; ``load_config(config_path)`` when None.
        run_id: Run identifier; generated when None.
        components: Restrict the run to these components (plus dependencies).
        dry_run: Stop after ANALYSIS without touching any source file.
        config_path: YAML file used when *config* is None.
    """

    def __init__(self, project_root, config: Optional[dict] = None, run_id: Optional[str] = None,
                 components: Optional[Iterable] = None, dry_run: bool = False,
                 config_path=None):
        self.project_root = Path(os.path.abspath(project_root))
        self.config = config if config is not None else load_config(config_path)
        self.run_id = run_id or new_run_id()
        self.work_dir = self.project_root / self.config.get("work_dir", ".log-migration")
        self.run_dir = self.work_dir / RUNS_DIR / self.run_id
        self.reports_dir = self.run_dir / "reports"
        self.only_components = list(components) if components else None
        self.dry_run = dry_run

        self.state = PipelineState()
        self.cancel_event = threading.Event()
        self._listeners: List[Callable[[dict], None]] = []

        self.component_configs: List[ComponentMigrationConfig] = []
        self.results: List[ComponentMigrationResult] = []
        self.analysis: dict = {}
        self.validation = ValidationResult()
        self.classifier: Optional[ComponentClassifier] = None
        self.transformer: Optional[CallSiteTransformer] = None
        self.store: Optional[BackupStore] = None
        self.migrator: Optional[ComponentMigrator] = None
        self.validator: Optional[MigrationValidator] = None

    # ------------------------------------------------------------------
    # Progress and cancellation
    # ------------------------------------------------------------------
    def subscribe(self, listener: Callable[[dict], None]) -> Callable[[], None]:
        """Register a progress listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def abort(self) -> None:
        """Request cancellation; in-flight files finish, no new file starts."""
        logger.warning("Abort requested for run %s", self.run_id)
        self.cancel_event.set()

    def _emit(self) -> None:
        snapshot = self.state.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                logger.warning("Progress listener %r failed: %s", listener, exc)

    def _set_stage(self, stage: PipelineStage) -> None:
        logger.info("Stage %s -> %s", self.state.stage.value, stage.value)
        self.state.stage = stage
        self._emit()

    def _check_cancel(self) -> None:
        if self.cancel_event.is_set():
            raise PipelineAborted()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def execute(self) -> MigrationReport:
        """Run every stage. Always returns a report; failures end in FAILED."""
        started = time.time()
        self.state.start_time = started
        self.run_dir.mkdir(parents=True, exist_ok=True)
        handler, saved_level = self._attach_run_log()
        logger.info("Run %s started for %s (dry_run=%s)", self.run_id, self.project_root,
                    self.dry_run)
        try:
            self._stage_init()
            self._stage_analysis()
            if self.dry_run:
                return self._complete(started)
            self._stage_migration()
            self._stage_validation()
            self._stage_testing()
            return self._complete(started)
        except KeyboardInterrupt:
            self.cancel_event.set()
            return self._fail(PipelineAborted(), started)
        except MigrationError as exc:
            return self._fail(exc, started)
        except Exception as exc:
            logger.exception("Unexpected error in stage %s", self.state.stage.value)
            return self._fail(exc, started)
        finally:
            self._detach_run_log(handler, saved_level)

    # -- INIT --------------------------------------------------------------
    def _stage_init(self) -> None:
        self._set_stage(PipelineStage.INIT)
        # Store first, so every INIT failure still leaves a (possibly empty) rollback script
        self.store = BackupStore(self.project_root, self.run_dir)
        configs = order_components(build_component_configs(self.config))
        if self.only_components:
            configs = select_components(configs, self.only_components)
        self.component_configs = configs

        self.classifier = ComponentClassifier(self.project_root,
                                              classifier_rules(self.config) or None)
        self.transformer = CallSiteTransformer.from_config(self.config, self.project_root)
        critical = self.store.backup_critical_files(self.config.get("critical_files") or [])
        logger.info("Backed up %d critical file(s)", len(critical))

        self._check_prerequisites()
        if not self.dry_run:
            self._ensure_logger_module()

        exclude_dirs = self.config.get("exclude_dirs") or ()
        self.migrator = ComponentMigrator(
            self.project_root, self.transformer, self.store, self.classifier,
            max_workers=self.config.get("max_workers", 4),
            cancel_event=self.cancel_event,
            exclude_dirs=exclude_dirs,
        )
        self.validator = MigrationValidator(
            self.project_root, self.config.get("validation"), self.classifier,
            self.transformer, self.component_configs, exclude_dirs=exclude_dirs,
        )
        logger.info("Component order: %s",
                    ", ".join(c.component.value for c in self.component_configs))

    def _check_prerequisites(self) -> None:
        if importlib.util.find_spec("libcst") is None:
            raise PrerequisiteError("libcst is required for structural rewriting", tool="libcst")

        settings = self.config.get("validation") or {}
        if settings.get("run_tests", True) and not self.dry_run:
            command = resolve_test_command(settings.get("test_command") or [])
            if not command:
                raise PrerequisiteError("No test command configured", tool="test runner")
            if shutil.which(command[0]) is None and not os.path.isfile(command[0]):
                raise PrerequisiteError(f"Test runner not found: {command[0]}", tool=command[0])
            if (len(command) > 2 and command[0] == sys.executable and command[1] == "-m"
                    and importlib.util.find_spec(command[2]) is None):
                raise PrerequisiteError(f"Test runner module not installed: {command[2]}",
                                        tool=command[2])

        module_path = self.transformer.module_path
        scaffold = (self.config.get("logger") or {}).get("scaffold", True)
        if not module_path.is_file() and not scaffold:
            raise PrerequisiteError(
                f"Logger module {module_path} is missing and scaffolding is disabled",
                tool="logger module",
            )

    def _ensure_logger_module(self) -> None:
        module_path = self.transformer.module_path
        if module_path.is_file():
            return
        module_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(component_log.__file__, str(module_path))
        self.store.record_created(module_path)
        logger.info("Scaffolded logger module at %s", module_path)

    # -- ANALYSIS ----------------------------------------------------------
    def _stage_analysis(self) -> None:
        self._set_stage(PipelineStage.ANALYSIS)
        selected = {cfg.component for cfg in self.component_configs}
        files = iter_python_files(self.project_root, self.config.get("exclude_dirs") or (),
                                  [str(self.transformer.module_path)])

        breakdown = {
            cfg.component.value: {"files": 0, "files_with_calls": 0, "calls": 0,
                                  "expected_calls": cfg.expected_calls}
            for cfg in self.component_configs
        }
        by_pattern: dict = {}
        fallback_files = []
        total_files = total_calls = files_with_calls = 0
        for path in files:
            self._check_cancel()
            tag = self.classifier.classify(path)
            if tag not in selected:
                continue
            try:
                with open(path, "r", encoding="utf-8", newline="") as f:
                    content = f.read()
            except (OSError, UnicodeDecodeError) as exc:
                self.state.warnings.append(f"Cannot read {self._rel(path)}: {exc}")
                continue
            scan = self.transformer.scan(content)
            total_files += 1
            bucket = breakdown[tag.value]
            bucket["files"] += 1
            if scan.total:
                files_with_calls += 1
                bucket["files_with_calls"] += 1
                bucket["calls"] += scan.total
                total_calls += scan.total
                for pattern, count in scan.by_pattern.items():
                    by_pattern[pattern] = by_pattern.get(pattern, 0) + count
            if scan.strategy == TEXTUAL:
                fallback_files.append(self._rel(path))

        defaulted = self.classifier.defaulted_paths() if DEFAULT_TAG in selected else []
        ms_per_call = float((self.config.get("estimate") or {}).get("ms_per_call", 1.0))
        estimated_ms = total_calls * ms_per_call

        self.state.total_files = total_files
        self.state.total_calls = total_calls
        self.state.estimated_completion = self.state.start_time + estimated_ms / 1000
        if fallback_files:
            self.state.warnings.append(
                f"{len(fallback_files)} file(s) cannot be parsed and will use the textual fallback"
            )

        self.analysis = {
            "run_id": self.run_id,
            "timestamp": _now_iso(),
            "project_root": str(self.project_root),
            "total_files": total_files,
            "files_with_calls": files_with_calls,
            "total_calls": total_calls,
            "component_breakdown": breakdown,
            "method_breakdown": by_pattern,
            "component_order": [cfg.component.value for cfg in self.component_configs],
            "defaulted_files": defaulted,
            "unparseable_files": fallback_files,
            "estimated_duration_ms": round(estimated_ms, 2),
        }
        _write_json(self.reports_dir / "analysis.json", self.analysis)
        logger.info("Analysis: %d file(s), %d with output calls, %d call(s)",
                    total_files, files_with_calls, total_calls)
        self._emit()

    # -- MIGRATION ---------------------------------------------------------
    def _stage_migration(self) -> None:
        self._set_stage(PipelineStage.MIGRATION)
        completed = set()
        for cfg in self.component_configs:
            self._check_cancel()
            self.state.current_component = cfg.component
            self._emit()

            result = self.migrator.migrate_component(cfg, completed, on_file=self._on_file)
            self.results.append(result)
            self.state.warnings.extend(result.warnings)
            self._write_migration_reports()
            self._check_cancel()

            if not result.success:
                self.state.errors.extend(result.errors)
                raise MigrationError(f"Component {cfg.component.value} failed to migrate",
                                     component=cfg.component.value)
            completed.add(cfg.component)
        self.state.current_component = None
        self._emit()

    def _on_file(self, record: MigrationRecord) -> None:
        self.state.processed_files += 1
        if record.success:
            self.state.migrated_calls += record.total_replacements
        ms_per_call = float((self.config.get("estimate") or {}).get("ms_per_call", 1.0))
        remaining = max(0, self.state.total_calls - self.state.migrated_calls)
        self.state.estimated_completion = time.time() + remaining * ms_per_call / 1000
        self._emit()

    # -- VALIDATION / TESTING ----------------------------------------------
    def _stage_validation(self) -> None:
        self._set_stage(PipelineStage.VALIDATION)
        touched = [r.file for r in self._records() if r.success and r.total_replacements]
        self.validation = self.validator.validate_static(touched, self.store.entries)
        self.state.warnings.extend(self.validation.warnings)
        _write_json(self.reports_dir / "validation.json", self.validation.to_dict())
        if not self.validation.passed:
            self.state.errors.extend(self.validation.errors)
            raise ValidationFailure("Post-migration validation failed",
                                    errors=self.validation.errors)

    def _stage_testing(self) -> None:
        self._set_stage(PipelineStage.TESTING)
        if not (self.config.get("validation") or {}).get("run_tests", True):
            self.state.warnings.append("Test suite skipped by configuration")
            return
        tests = self.validator.run_test_suite()
        self.validation.merge(tests)
        _write_json(self.reports_dir / "validation.json", self.validation.to_dict())
        if not tests.passed:
            self.state.errors.extend(tests.errors)
            raise ValidationFailure("Test suite failed after migration", errors=tests.errors)

    # -- terminal stages ---------------------------------------------------
    def _complete(self, started: float) -> MigrationReport:
        rollback_script = self._write_rollback_script()
        self._write_analytics()
        self._set_stage(PipelineStage.COMPLETE)
        report = self._build_report(True, started, rollback_script)
        _write_json(self.run_dir / FINAL_REPORT, report.to_dict())
        logger.info("Run %s complete: %d call(s) migrated", self.run_id,
                    report.summary.get("total_calls_migrated", 0))
        return report

    def _fail(self, exc: BaseException, started: float) -> MigrationReport:
        message = f"{self.state.stage.value} failed: {exc}"
        if message not in self.state.errors:
            self.state.errors.append(message)
        logger.error("Run %s failed in %s: %s", self.run_id, self.state.stage.value, exc)

        rollback_script = None
        try:
            if self.results:
                self._write_migration_reports()
            rollback_script = self._write_rollback_script()
            self._write_analytics()
        except OSError as write_exc:
            self.state.errors.append(f"Could not write rollback data: {write_exc}")
        self._set_stage(PipelineStage.FAILED)
        report = self._build_report(False, started, rollback_script)
        _write_json(self.run_dir / FAILURE_REPORT, report.to_dict())
        return report

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def _records(self) -> List[MigrationRecord]:
        return [record for result in self.results for record in result.records]

    def _summary(self) -> MigrationSummary:
        records = self._records()
        total_ms = sum(r.metrics.processing_time_ms for r in records)
        entries = self.store.entries if self.store else []
        return MigrationSummary.from_records(records, entries, total_ms)

    def _write_migration_reports(self) -> None:
        _write_json(self.reports_dir / "migration-results.json", {
            "run_id": self.run_id,
            "components": [r.to_dict() for r in self.results],
            "records": [rec.to_dict() for rec in self._records()],
        })
        _write_json(self.reports_dir / "migration-summary.json", self._summary().to_dict())
        self._write_rollback_script()

    def _write_rollback_script(self) -> Optional[str]:
        if self.store is None:
            return None
        return self.store.write_rollback_script()

    def _call_sites(self) -> dict:
        """Logger calls in the current tree, keyed ``method@component``."""
        sites: dict = {}
        if self.transformer is None:
            return sites
        files = iter_python_files(self.project_root, self.config.get("exclude_dirs") or (),
                                  [str(self.transformer.module_path)])
        for path in files:
            try:
                with open(path, "r", encoding="utf-8") as f:
                    content = f.read()
            except (OSError, UnicodeDecodeError):
                continue
            if not self.transformer.uses_logger(content):
                continue
            tree = parse_or_none(content)
            if tree is None:
                continue
            for call, method in logger_calls(tree, self.transformer.symbol):
                first = call.args[0] if call.args else None
                if isinstance(first, ast.Constant) and isinstance(first.value, str):
                    tag = first.value
                elif self.classifier is not None:
                    tag = self.classifier.classify(path).value
                else:
                    tag = DEFAULT_TAG.value
                key = f"{method}@{tag}"
                sites[key] = sites.get(key, 0) + 1
        return sites

    def _write_analytics(self) -> str:
        known = {tag.value for tag in ComponentTag}
        # Drop counters from the validator's own benchmark tag
        runtime = {key: count for key, count in component_log.ComponentLog.usage_stats().items()
                   if key.partition("@")[2] in known}
        analytics = build_analytics(self.run_id, self._summary(), self.state.total_calls,
                                    self._call_sites(), runtime)
        return _write_json(self.reports_dir / ANALYTICS_REPORT, analytics)

    def _build_report(self, success: bool, started: float,
                      rollback_script: Optional[str]) -> MigrationReport:
        summary = self._summary()
        migrated = summary.total_replacements
        if self.validation.metrics.get("migration_coverage") is not None:
            coverage = self.validation.metrics["migration_coverage"]
        elif self.state.total_calls:
            coverage = round(migrated / self.state.total_calls * 100, 2)
        else:
            coverage = 100.0 if not self.dry_run else 0.0

        checks = self.validation.checks
        component_rollbacks = {}
        if self.store is not None:
            for result in self.results:
                command = self.store.rollback_command(result.component)
                if command:
                    component_rollbacks[result.component.value] = command

        return MigrationReport(
            execution_id=self.run_id,
            timestamp=_now_iso(),
            duration_ms=round((time.time() - started) * 1000, 2),
            success=success,
            stage=self.state.stage,
            summary={
                "total_files": sum(1 for r in self._records()
                                   if r.success and r.total_replacements),
                "total_calls_migrated": migrated,
                "component_breakdown": dict(summary.component_breakdown),
                "migration_coverage": coverage,
            },
            validation={
                "syntax_passed": checks.get("syntax", False),
                "imports_passed": checks.get("imports", False),
                "functionality_passed": checks.get("tests", False),
                "performance_passed": checks.get("performance", False),
            },
            rollback_info={
                "backup_location": str(self.store.backup_root) if self.store else "",
                "rollback_script": rollback_script or "",
                "component_rollbacks": component_rollbacks,
            },
            recommendations=self._recommendations(success, rollback_script),
            errors=list(self.state.errors),
            warnings=list(self.state.warnings),
        )

    def _recommendations(self, success: bool, rollback_script: Optional[str]) -> List[str]:
        recs = []
        if not success:
            if self.store is not None and self.store.entries:
                recs.append(f"Roll back all changes with: bash {rollback_script}")
                for result in self.results:
                    if self.store.entries_for(result.component):
                        recs.append(
                            f"Roll back {result.component.value} only with: log-migration rollback "
                            f"--project-root {self.project_root} --run-dir {self.run_dir} "
                            f"--component {result.component.value}"
                        )
            else:
                recs.append("No source files were modified; fix the error and re-run")
            return recs

        if self.dry_run:
            recs.append("Dry run: no source files were modified")
        residual = self.validation.metrics.get("residual_calls", 0)
        if residual:
            recs.append(f"Review {residual} residual direct output call(s)")
        defaulted = self.analysis.get("defaulted_files") or []
        if defaulted:
            recs.append(
                f"{len(defaulted)} file(s) matched no classifier rule and were tagged "
                f"{DEFAULT_TAG.value}; add rules if that is wrong"
            )
        if "tests" not in self.validation.checks and not self.dry_run:
            recs.append("Run the project's test suite; it was skipped in this run")
        return recs

    # ------------------------------------------------------------------
    # Run log
    # ------------------------------------------------------------------
    def _attach_run_log(self):
        package_logger = logging.getLogger("log_migration")
        handler = logging.FileHandler(str(self.run_dir / "migration.log"), encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(handler)
        saved_level = package_logger.level
        if package_logger.getEffectiveLevel() > logging.INFO:
            package_logger.setLevel(logging.INFO)
        return handler, saved_level

    @staticmethod
    def _detach_run_log(handler, saved_level) -> None:
        package_logger = logging.getLogger("log_migration")
        package_logger.removeHandler(handler)
        package_logger.setLevel(saved_level)
        handler.close()

    def _rel(self, path) -> str:
        try:
            return Path(path).relative_to(self.project_root).as_posix()
        except ValueError:
            return str(path)
