#!/usr/bin/env python3
# CUI // SP-CTI
"""Component migration driver.

Applies the call-site transformer to every file of one component, then runs
the component's post-condition rules. Per component the driver walks:

    PENDING -> BACKING_UP -> TRANSFORMING -> POST_CONDITIONS -> SUCCEEDED | FAILED

Files are processed on a bounded ThreadPoolExecutor. Workers only return
FileOutcome values; the driver thread aggregates them and invokes the
``on_file`` callback, so the caller's state has a single writer. A failing
file is recorded as an error and does not stop its siblings.
"""

import logging
import os
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from tools.log_migration.backup_store import BackupStore
from tools.log_migration.call_site_transformer import CallSiteTransformer
from tools.log_migration.component_classifier import DEFAULT_TAG, ComponentClassifier
from tools.log_migration.errors import TransformFailure
from tools.log_migration.migration_models import (
    ComponentMigrationConfig,
    ComponentMigrationResult,
    ComponentState,
    FileMetrics,
    MigrationRecord,
)
from tools.log_migration.post_conditions import RuleContext, run_rules

logger = logging.getLogger("log_migration.migrator")

DEFAULT_EXCLUDE_DIRS = (
    ".git", ".hg", ".svn", "__pycache__", "node_modules", "build", "dist",
    ".venv", "venv", "env", ".tox", ".nox", ".eggs", ".mypy_cache",
    ".pytest_cache", "site-packages", ".log-migration",
)


def iter_python_files(project_root, exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
                      exclude_files: Iterable[str] = ()) -> List[Path]:
    """Every ``*.py`` under *project_root*, pruning excluded directories. Sorted."""
    excluded = frozenset(exclude_dirs)
    skip = {os.path.abspath(p) for p in exclude_files}
    found = []
    for dirpath, dirnames, filenames in os.walk(os.path.abspath(project_root)):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for name in sorted(filenames):
            if not name.endswith(".py"):
                continue
            path = os.path.join(dirpath, name)
            if path not in skip:
                found.append(Path(path))
    return found


def compile_glob(pattern: str) -> "re.Pattern":
    """Translate a project-relative glob into a case-insensitive regex.

    ``**/`` matches zero or more directories, ``*`` and ``?`` stay within one
    path segment, and ``[...]`` classes pass through (``[!x]`` negates).
    """
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    out = []
    i, n = 0, len(pattern)
    while i < n:
        if pattern.startswith("**/", i):
            out.append("(?:[^/]*/)*")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        elif pattern[i] == "[" and "]" in pattern[i + 2:]:
            end = pattern.index("]", i + 2)
            body = pattern[i + 1:end]
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
            i = end + 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out) + r"\Z", re.IGNORECASE)


@dataclass
class FileOutcome:
    """Worker return value: the record plus any non-fatal transform warnings."""

    record: MigrationRecord
    warnings: List[str] = field(default_factory=list)


class ComponentMigrator:
    """Runs one component at a time; safe to reuse across components in a run."""

    def __init__(self, project_root, transformer: CallSiteTransformer, store: BackupStore,
                 classifier: ComponentClassifier, max_workers: int = 4,
                 cancel_event: Optional[threading.Event] = None,
                 exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS):
        self.project_root = Path(os.path.abspath(project_root))
        self.transformer = transformer
        self.store = store
        self.classifier = classifier
        self.max_workers = max(1, int(max_workers))
        self.cancel_event = cancel_event or threading.Event()
        self.exclude_dirs = frozenset(exclude_dirs)
        self.exclude_files = {str(transformer.module_path)}

    # ------------------------------------------------------------------
    # File discovery
    # ------------------------------------------------------------------
    def candidate_files(self) -> List[Path]:
        """Every migratable ``*.py`` in the project, sorted."""
        return iter_python_files(self.project_root, self.exclude_dirs, self.exclude_files)

    def find_component_files(self, paths: Iterable[str]) -> List[Path]:
        """Candidate files matched by any of the globs, compared case-insensitively."""
        matchers = [compile_glob(p) for p in paths]
        return [path for path in self.candidate_files()
                if any(m.match(self._rel(path)) for m in matchers)]

    # ------------------------------------------------------------------
    # Component migration
    # ------------------------------------------------------------------
    def migrate_component(self, config: ComponentMigrationConfig, completed: Iterable = (),
                          on_file: Optional[Callable[[MigrationRecord], None]] = None
                          ) -> ComponentMigrationResult:
        """Migrate every file belonging to ``config.component``.

        Args:
            config: Component configuration.
            completed: Tags of components that already SUCCEEDED in this run.
            on_file: Called on this thread after each file finishes.
        """
        tag = config.component
        result = ComponentMigrationResult(component=tag)
        started = time.time()

        completed = set(completed)
        unmet = [dep.value for dep in config.dependencies if dep not in completed]
        if unmet:
            result.errors.append(
                f"{tag.value}: dependencies not migrated: {', '.join(unmet)}"
            )
            self._transition(result, ComponentState.FAILED)
            return result

        self._transition(result, ComponentState.BACKING_UP)
        own_files, foreign, unreached = self._partition(config.paths, tag)
        if foreign and tag is not DEFAULT_TAG:
            result.warnings.append(
                f"{tag.value}: skipped {foreign} matched file(s) classified under other components"
            )
        if unreached:
            listed = ", ".join(self._rel(p) for p in unreached[:5])
            more = f" (+{len(unreached) - 5} more)" if len(unreached) > 5 else ""
            result.errors.append(
                f"{tag.value}: {len(unreached)} file(s) classified as {tag.value} match none "
                f"of its configured paths: {listed}{more}"
            )
            self._transition(result, ComponentState.FAILED)
            return result

        self._transition(result, ComponentState.TRANSFORMING)
        outcomes = self._run_files(own_files, config, on_file)
        records = sorted((o.record for o in outcomes), key=lambda r: r.file)
        for outcome in outcomes:
            result.warnings.extend(outcome.warnings)
        for record in records:
            result.errors.extend(record.errors)

        not_started = len(own_files) - len(outcomes)
        if not_started:
            result.errors.append(
                f"{tag.value}: cancelled with {not_started} of {len(own_files)} file(s) not started"
            )

        self._transition(result, ComponentState.POST_CONDITIONS)
        context = RuleContext(
            component=tag,
            transformer=self.transformer,
            project_root=self.project_root,
            backup_for=self._backup_path_for,
        )
        report = run_rules(config.rules, [str(p) for p in own_files], context)
        result.errors.extend(report.errors)
        result.warnings.extend(report.warnings)
        result.validation_passed = report.passed

        result.records = records
        result.files_migrated = sum(1 for r in records if r.success and r.total_replacements)
        result.calls_migrated = sum(r.total_replacements for r in records if r.success)
        result.performance_impact_ms = (time.time() - started) * 1000
        result.success = not result.errors
        self._transition(result, ComponentState.SUCCEEDED if result.success
                         else ComponentState.FAILED)
        logger.info(
            "%s: %d file(s), %d call(s) migrated, %d error(s), %d warning(s)",
            tag.value, result.files_migrated, result.calls_migrated,
            len(result.errors), len(result.warnings),
        )
        return result

    def _partition(self, paths: Iterable[str], tag):
        """Split candidates into (owned and matched, foreign match count, owned but unmatched).

        Ownership comes from the classifier alone; the component's globs only
        narrow it, so a file the classifier assigns here is never dropped silently.
        """
        matchers = [compile_glob(p) for p in paths]
        own, unreached = [], []
        foreign = 0
        for path in self.candidate_files():
            matched = any(m.match(self._rel(path)) for m in matchers)
            owner = self.classifier.classify(path)
            if owner is tag:
                (own if matched else unreached).append(path)
            elif matched:
                foreign += 1
                logger.debug("%s: %s belongs to %s, skipping", tag.value, path, owner.value)
        return own, foreign, unreached

    def _run_files(self, files: List[Path], config: ComponentMigrationConfig,
                   on_file) -> List[FileOutcome]:
        outcomes = []
        if not files:
            return outcomes
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(files))) as executor:
            futures = {executor.submit(self.migrate_file, path, config): path for path in files}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    outcome = future.result()
                except Exception as exc:
                    logger.error("Migration of %s failed: %s", path, exc)
                    outcome = FileOutcome(self._failed_record(
                        path, config, f"{self._rel(path)}: {type(exc).__name__}: {exc}"))
                if outcome is None:
                    continue
                outcomes.append(outcome)
                if on_file is not None:
                    on_file(outcome.record)
        return outcomes

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------
    def migrate_file(self, path: Path, config: ComponentMigrationConfig) -> Optional[FileOutcome]:
        """Scan, back up, transform and write one file. None if cancelled first."""
        if self.cancel_event.is_set():
            return None
        started = time.time()
        rel = self._rel(path)
        raw = Path(path).read_bytes()
        content = raw.decode("utf-8")

        scan = self.transformer.scan(content)
        if scan.total == 0:
            return FileOutcome(MigrationRecord(
                file=str(path), component=config.component, total_replacements=0,
                patterns_used=(), success=True,
                metrics=FileMetrics(len(raw), len(raw), self._elapsed_ms(started)),
            ))

        receipt = self.store.backup(path, raw, config.component)
        result = self.transformer.transform(content, config.component, path,
                                            config.method_overrides)
        try:
            if result.errors:
                raise TransformFailure("; ".join(result.errors),
                                       component=config.component.value, file_path=rel)
            if result.replacements == 0 or result.content == content:
                raise TransformFailure(
                    f"{rel}: {scan.total} output call(s) found but none were rewritten",
                    component=config.component.value, file_path=rel,
                )
        except TransformFailure as exc:
            logger.warning("%s", exc)
            return FileOutcome(
                MigrationRecord(
                    file=str(path), component=config.component, total_replacements=0,
                    patterns_used=tuple(result.patterns), success=False,
                    backup_path=receipt.backup_path, errors=(str(exc),),
                    metrics=FileMetrics(len(raw), len(raw), self._elapsed_ms(started)),
                ),
                warnings=list(result.warnings),
            )

        new_bytes = result.content.encode("utf-8")
        self.store.write(receipt, new_bytes, path)
        logger.debug("%s: %d replacement(s) via %s", rel, result.replacements, result.strategy)
        return FileOutcome(
            MigrationRecord(
                file=str(path), component=config.component,
                total_replacements=result.replacements,
                patterns_used=tuple(result.patterns), success=True,
                backup_path=receipt.backup_path,
                metrics=FileMetrics(len(raw), len(new_bytes), self._elapsed_ms(started)),
            ),
            warnings=list(result.warnings),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _failed_record(self, path, config, message: str) -> MigrationRecord:
        entry = self.store.entry_for(path)
        return MigrationRecord(
            file=str(path), component=config.component, total_replacements=0,
            patterns_used=(), success=False,
            backup_path=entry.backup_path if entry else None, errors=(message,),
        )

    def _backup_path_for(self, path: str) -> Optional[str]:
        entry = self.store.entry_for(path)
        return entry.backup_path if entry else None

    def _transition(self, result: ComponentMigrationResult, state: ComponentState) -> None:
        logger.debug("%s: %s -> %s", result.component.value, result.state.value, state.value)
        result.state = state

    def _rel(self, path) -> str:
        try:
            return Path(path).relative_to(self.project_root).as_posix()
        except ValueError:
            return str(path)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.time() - started) * 1000, 3)
