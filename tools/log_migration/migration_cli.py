#!/usr/bin/env python3
# CUI // SP-CTI
"""Command line entry point for the log call migration engine.

Exit codes: 0 success, 1 failure, 130 aborted by the user.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from tools.log_migration.backup_store import BackupStore
from tools.log_migration.call_site_transformer import CallSiteTransformer
from tools.log_migration.component_classifier import ComponentClassifier
from tools.log_migration.errors import BackupError, MigrationError
from tools.log_migration.migration_config import (
    build_component_configs,
    classifier_rules,
    load_config,
)
from tools.log_migration.migration_orchestrator import (
    ANALYTICS_REPORT,
    FAILURE_REPORT,
    FINAL_REPORT,
    RUNS_DIR,
    MigrationOrchestrator,
)
from tools.log_migration.migration_validator import MigrationValidator

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ABORTED = 130


def _progress_printer():
    """Listener printing one line per stage change to stderr."""
    last = {"stage": None}

    def listener(snapshot):
        if snapshot["stage"] != last["stage"]:
            last["stage"] = snapshot["stage"]
            print(f"[{snapshot['stage']}] files {snapshot['processed_files']}/"
                  f"{snapshot['total_files']}, calls {snapshot['migrated_calls']}/"
                  f"{snapshot['total_calls']}", file=sys.stderr)
    return listener


def format_report(report: dict) -> str:
    """Plain-text rendering of a final or failure report."""
    summary = report.get("summary", {})
    lines = [
        f"Run:      {report['execution_id']}",
        f"Status:   {'SUCCESS' if report['success'] else 'FAILED'} ({report['stage']})",
        f"Duration: {report['duration_ms'] / 1000:.1f}s",
        f"Files:    {summary.get('total_files', 0)}",
        f"Calls:    {summary.get('total_calls_migrated', 0)} migrated, "
        f"coverage {summary.get('migration_coverage', 0)}%",
    ]
    for tag, count in summary.get("component_breakdown", {}).items():
        lines.append(f"  {tag:<14} {count}")
    validation = report.get("validation") or {}
    if validation:
        lines.append("Checks:   " + ", ".join(
            f"{key.replace('_passed', '')} {'ok' if passed else 'FAIL'}"
            for key, passed in validation.items()))
    for label, key in (("Errors", "errors"), ("Warnings", "warnings"),
                       ("Recommendations", "recommendations")):
        items = report.get(key) or []
        if items:
            lines.append(f"\n{label}:")
            lines.extend(f"  - {item}" for item in items)
    rollback = report.get("rollback_info", {}).get("rollback_script")
    if rollback:
        lines.append(f"\nRollback script: {rollback}")
    return "\n".join(lines)


def _print_report(report: dict):
    print(format_report(report))


def _runs_dir(project_root: Path, config: dict) -> Path:
    return project_root / config.get("work_dir", ".log-migration") / RUNS_DIR


def _resolve_run_dir(project_root: Path, config: dict, run_dir: Optional[str]) -> Path:
    """Run directory from a path or run id; the latest reported run when None."""
    if run_dir is None:
        return _latest_run_dir(project_root, config)
    candidate = Path(run_dir)
    if candidate.is_dir():
        return candidate.resolve()
    return _runs_dir(project_root, config) / run_dir


def _latest_run_dir(project_root: Path, config: dict) -> Path:
    runs_dir = _runs_dir(project_root, config)
    reports = []
    if runs_dir.is_dir():
        for run_dir in runs_dir.iterdir():
            for name in (FINAL_REPORT, FAILURE_REPORT):
                if (run_dir / name).is_file():
                    reports.append(run_dir / name)
    if not reports:
        raise MigrationError(f"No finished migration runs under {runs_dir}")
    return max(reports, key=lambda p: p.stat().st_mtime).parent


def _load_run_report(run_dir: Path) -> dict:
    for name in (FINAL_REPORT, FAILURE_REPORT):
        path = run_dir / name
        if path.is_file():
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
    raise MigrationError(f"No final or failure report in {run_dir}")


def _emit(text: str, output: Optional[str]) -> None:
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        print(f"Report written to {output}")
    else:
        print(text)


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------
def cmd_migrate(args, config) -> int:
    orchestrator = MigrationOrchestrator(
        args.project_root, config=config, components=args.component or None,
        dry_run=args.dry_run,
    )
    if not args.json:
        orchestrator.subscribe(_progress_printer())
    report = orchestrator.execute().to_dict()
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        _print_report(report)
    if orchestrator.cancel_event.is_set():
        return EXIT_ABORTED
    return EXIT_OK if report["success"] else EXIT_FAILED


def cmd_analyze(args, config) -> int:
    orchestrator = MigrationOrchestrator(args.project_root, config=config, dry_run=True)
    report = orchestrator.execute()
    analysis = orchestrator.analysis
    if args.json:
        print(json.dumps(analysis or report.to_dict(), indent=2))
    elif analysis:
        print(f"Files:       {analysis['total_files']} ({analysis['files_with_calls']} with output calls)")
        print(f"Calls:       {analysis['total_calls']}")
        print(f"Estimate:    {analysis['estimated_duration_ms'] / 1000:.1f}s")
        print(f"Order:       {' -> '.join(analysis['component_order'])}")
        for tag, info in analysis["component_breakdown"].items():
            print(f"  {tag:<14} files {info['files']:>5}  calls {info['calls']:>6}")
        if analysis["defaulted_files"]:
            print(f"\n{len(analysis['defaulted_files'])} file(s) defaulted to Core")
        if analysis["unparseable_files"]:
            print("\nUnparseable (textual fallback):")
            for path in analysis["unparseable_files"]:
                print(f"  - {path}")
    else:
        _print_report(report.to_dict())
    return EXIT_OK if report.success else EXIT_FAILED


def cmd_validate(args, config) -> int:
    project_root = Path(args.project_root).resolve()
    transformer = CallSiteTransformer.from_config(config, project_root)
    validator = MigrationValidator(
        project_root, config.get("validation"),
        ComponentClassifier(project_root, classifier_rules(config) or None),
        transformer, build_component_configs(config),
        exclude_dirs=config.get("exclude_dirs") or (),
    )
    components = args.component or None
    result = validator.validate(include_tests=not args.skip_tests, components=components)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Validation: {'PASSED' if result.passed else 'FAILED'}")
        for check, passed in result.checks.items():
            print(f"  {check:<16} {'ok' if passed else 'FAIL'}")
        for key, value in result.metrics.items():
            print(f"  {key}: {value}")
        for error in result.errors:
            print(f"  ERROR: {error}")
        for warning in result.warnings:
            print(f"  WARN:  {warning}")
    return EXIT_OK if result.passed else EXIT_FAILED


def cmd_rollback(args, config) -> int:
    project_root = Path(args.project_root).resolve()
    run_dir = _resolve_run_dir(project_root, config, args.run_dir)
    store = BackupStore.load(project_root, run_dir)
    if args.all:
        restored = store.restore_all()
    elif args.file:
        restored = [store.restore_file(_backup_entry(store, args.project_root, args.file))]
    else:
        restored = store.restore_component(args.component)
    result = {"run_dir": str(run_dir), "restored": restored, "count": len(restored)}
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Restored {len(restored)} file(s) from {run_dir}")
        for path in restored:
            print(f"  {os.path.relpath(path, str(project_root))}")
    return EXIT_OK


def _backup_entry(store: BackupStore, project_root: str, file_path: str):
    candidate = Path(file_path)
    if not candidate.is_absolute():
        candidate = Path(os.path.abspath(project_root)) / candidate
    entry = store.entry_for(candidate) or store.entry_for(candidate.resolve())
    if entry is None:
        raise BackupError(f"No backup of {file_path} in {store.run_dir}", file_path=str(candidate))
    return entry


def cmd_report(args, config) -> int:
    project_root = Path(args.project_root).resolve()
    run_dir = _resolve_run_dir(project_root, config, args.run_dir)
    report = _load_run_report(run_dir)
    fmt = "json" if args.json else args.format
    if fmt == "json":
        text = json.dumps(report, indent=2)
    else:
        text = format_report(report)
    _emit(text, args.output)
    return EXIT_OK


def cmd_analytics(args, config) -> int:
    project_root = Path(args.project_root).resolve()
    run_dir = _resolve_run_dir(project_root, config, args.run_dir)
    path = run_dir / "reports" / ANALYTICS_REPORT
    if not path.is_file():
        raise MigrationError(f"No analytics report in {run_dir}")
    with open(path, "r", encoding="utf-8") as f:
        analytics = json.load(f)
    if args.json:
        print(json.dumps(analytics, indent=2))
        return EXIT_OK

    print(f"Run:          {analytics['run_id']}")
    print(f"Migrated:     {analytics['total_migrated']} call(s)")
    print(f"Completion:   {analytics['completion_percentage']}%")
    print("Call sites:")
    for key, count in analytics["call_sites"].items():
        print(f"  {key:<24} {count}")
    if analytics["runtime_usage"]:
        print("Runtime usage:")
        for key, count in analytics["runtime_usage"].items():
            print(f"  {key:<24} {count}")
    if analytics["recommendations"]:
        print("\nRecommendations:")
        for rec in analytics["recommendations"]:
            print(f"  - {rec}")
    return EXIT_OK


def cmd_status(args, config) -> int:
    project_root = Path(args.project_root).resolve()
    runs_dir = _runs_dir(project_root, config)
    runs = []
    if runs_dir.is_dir():
        for run_dir in sorted(p for p in runs_dir.iterdir() if p.is_dir()):
            entry = {"run_id": run_dir.name, "status": "incomplete", "stage": None,
                     "calls_migrated": 0}
            for name, status in ((FINAL_REPORT, "complete"), (FAILURE_REPORT, "failed")):
                report_path = run_dir / name
                if report_path.is_file():
                    with open(report_path, "r", encoding="utf-8") as f:
                        report = json.load(f)
                    entry.update(status=status, stage=report.get("stage"),
                                 timestamp=report.get("timestamp"),
                                 calls_migrated=report.get("summary", {}).get(
                                     "total_calls_migrated", 0))
                    break
            runs.append(entry)
    if args.json:
        print(json.dumps({"runs": runs}, indent=2))
    elif not runs:
        print(f"No migration runs under {runs_dir}")
    else:
        for run in runs:
            print(f"{run['run_id']:<30} {run['status']:<11} {str(run['stage']):<10} "
                  f"{run['calls_migrated']} call(s)")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="log-migration",
        description="Rewrite print/logging calls into component-tagged ComponentLog calls",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze only
  log-migration analyze --project-root ./myproject

  # Full run, Storage and its dependencies only
  log-migration migrate --project-root ./myproject --component Storage

  # Undo one component of a past run
  log-migration rollback --project-root ./myproject --run-dir <run_id> --component Storage

  # Restore a single file, then export the latest run's report
  log-migration rollback --project-root ./myproject --run-dir <run_id> --file src/cli/main.py
  log-migration report --project-root ./myproject --format text --output report.txt
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--project-root", default=".", help="Project to operate on")
    common.add_argument("--config", help="YAML config (default: args/log_migration_config.yaml)")
    common.add_argument("--json", action="store_true", help="JSON output")
    common.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("migrate", parents=[common], help="Run the full migration pipeline")
    p.add_argument("--dry-run", action="store_true", help="Stop after analysis")
    p.add_argument("--component", action="append",
                   help="Only migrate this component (repeatable); dependencies are included")
    p.set_defaults(func=cmd_migrate)

    p = sub.add_parser("analyze", parents=[common], help="Count output calls per component")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("validate", parents=[common], help="Validate a migrated project")
    p.add_argument("--skip-tests", action="store_true", help="Do not run the test suite")
    p.add_argument("--component", action="append",
                   help="Only validate files classified into this component (repeatable)")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("rollback", parents=[common], help="Restore files from a run's backups")
    p.add_argument("--run-dir", required=True, help="Run directory or run id")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--component", help="Restore one component")
    group.add_argument("--file", help="Restore one file (path relative to the project root)")
    group.add_argument("--all", action="store_true", help="Restore every file")
    p.set_defaults(func=cmd_rollback)

    p = sub.add_parser("status", parents=[common], help="List previous runs")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("report", parents=[common], help="Show the report of a run")
    p.add_argument("--run-dir", help="Run directory or run id (default: latest run)")
    p.add_argument("--format", choices=["json", "text"], default="text", help="Output format")
    p.add_argument("--output", "-o", help="Write the report to this file")
    p.set_defaults(func=cmd_report)

    p = sub.add_parser("analytics", parents=[common],
                       help="Show logger usage analytics and refactor recommendations")
    p.add_argument("--run-dir", help="Run directory or run id (default: latest run)")
    p.set_defaults(func=cmd_analytics)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(args.config)
        return args.func(args, config)
    except KeyboardInterrupt:
        print("Aborted", file=sys.stderr)
        return EXIT_ABORTED
    except MigrationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
