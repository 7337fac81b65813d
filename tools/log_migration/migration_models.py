#!/usr/bin/env python3
# CUI // SP-CTI
"""Data model for the log call migration engine.

Component tags, priorities, pipeline/component states, and the record types
written into run reports (MigrationRecord, BackupEntry, ComponentMigrationResult,
MigrationSummary, ValidationResult, MigrationReport). Every report type exposes
``to_dict()`` returning JSON-ready values with enums rendered by value.
"""

import copy
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from tools.log_migration.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class ComponentTag(Enum):
    """Closed, ordered set of architectural component tags."""

    CORE = "Core"
    INTERFACE = "Interface"
    CLI = "CLI"
    COORDINATION = "Coordination"
    STORAGE = "Storage"
    TERMINAL = "Terminal"
    MIGRATION = "Migration"
    HOOKS = "Hooks"
    ENTERPRISE = "Enterprise"

    @classmethod
    def from_name(cls, name) -> "ComponentTag":
        """Resolve a tag from its value or member name, case-insensitively."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        for tag in cls:
            if key in (tag.value.lower(), tag.name.lower()):
                return tag
        raise ConfigurationError(f"Unknown component tag: {name!r}", config_key="component")

    @property
    def slug(self) -> str:
        return self.value.lower()


class Priority(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_name(cls, name) -> "Priority":
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().upper())
        except ValueError:
            raise ConfigurationError(f"Unknown priority: {name!r}", config_key="priority")


_PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class PipelineStage(Enum):
    INIT = "INIT"
    ANALYSIS = "ANALYSIS"
    MIGRATION = "MIGRATION"
    VALIDATION = "VALIDATION"
    TESTING = "TESTING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.COMPLETE, PipelineStage.FAILED)


class ComponentState(Enum):
    PENDING = "PENDING"
    BACKING_UP = "BACKING_UP"
    TRANSFORMING = "TRANSFORMING"
    POST_CONDITIONS = "POST_CONDITIONS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


def _plain(value):
    """Convert enums (recursively) into their values for JSON output."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {_plain(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Per-file and backup records
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class FileMetrics:
    original_size: int = 0
    new_size: int = 0
    processing_time_ms: float = 0.0


@dataclass(frozen=True)
class MigrationRecord:
    """Outcome of migrating one source file in one run. Immutable."""

    file: str
    component: ComponentTag
    total_replacements: int
    patterns_used: tuple
    success: bool
    backup_path: Optional[str] = None
    errors: tuple = ()
    metrics: FileMetrics = field(default_factory=FileMetrics)

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass(frozen=True)
class BackupEntry:
    """Mapping from an original file to its pre-transform snapshot."""

    original_path: str
    backup_path: str
    component: ComponentTag

    def to_dict(self) -> dict:
        return _plain(asdict(self))

    @classmethod
    def from_dict(cls, data: dict) -> "BackupEntry":
        return cls(
            original_path=data["original_path"],
            backup_path=data["backup_path"],
            component=ComponentTag.from_name(data["component"]),
        )


# ---------------------------------------------------------------------------
# Component configuration and results
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ComponentMigrationConfig:
    """Static per-component configuration, loaded once at INIT."""

    component: ComponentTag
    priority: Priority
    paths: tuple
    dependencies: tuple = ()
    rules: tuple = ()
    expected_calls: int = 0
    method_overrides: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class ComponentMigrationResult:
    component: ComponentTag
    success: bool = False
    files_migrated: int = 0
    calls_migrated: int = 0
    validation_passed: bool = False
    performance_impact_ms: float = 0.0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    # Not part of the serialized result
    records: List[MigrationRecord] = field(default_factory=list, repr=False)
    state: ComponentState = ComponentState.PENDING

    def to_dict(self) -> dict:
        return {
            "component": self.component.value,
            "success": self.success,
            "files_migrated": self.files_migrated,
            "calls_migrated": self.calls_migrated,
            "validation_passed": self.validation_passed,
            "performance_impact_ms": round(self.performance_impact_ms, 2),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


# ---------------------------------------------------------------------------
# Pipeline state (single writer: the orchestrator)
# ---------------------------------------------------------------------------
@dataclass
class PipelineState:
    stage: PipelineStage = PipelineStage.INIT
    total_files: int = 0
    processed_files: int = 0
    total_calls: int = 0
    migrated_calls: int = 0
    current_component: Optional[ComponentTag] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    estimated_completion: Optional[float] = None

    def snapshot(self) -> dict:
        """Detached copy for progress listeners."""
        return copy.deepcopy(_plain(asdict(self)))


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------
@dataclass
class MigrationSummary:
    total_files: int = 0
    total_replacements: int = 0
    successful_migrations: int = 0
    failed_migrations: int = 0
    component_breakdown: Dict[str, int] = field(default_factory=dict)
    method_breakdown: Dict[str, int] = field(default_factory=dict)
    performance: Dict[str, float] = field(default_factory=dict)
    rollback_data: List[BackupEntry] = field(default_factory=list)

    @classmethod
    def from_records(cls, records, entries, total_time_ms: float) -> "MigrationSummary":
        records = list(records)
        summary = cls(
            total_files=len(records),
            total_replacements=sum(r.total_replacements for r in records),
            successful_migrations=sum(1 for r in records if r.success),
            failed_migrations=sum(1 for r in records if not r.success),
            performance={
                "total_processing_time_ms": round(total_time_ms, 2),
                "average_file_time_ms": round(total_time_ms / len(records), 2) if records else 0.0,
            },
            rollback_data=list(entries),
        )
        for record in records:
            if not record.success:
                continue
            tag = record.component.value
            summary.component_breakdown[tag] = (
                summary.component_breakdown.get(tag, 0) + record.total_replacements
            )
            for pattern in record.patterns_used:
                summary.method_breakdown[pattern] = summary.method_breakdown.get(pattern, 0) + 1
        return summary

    def to_dict(self) -> dict:
        return {
            "total_files": self.total_files,
            "total_replacements": self.total_replacements,
            "successful_migrations": self.successful_migrations,
            "failed_migrations": self.failed_migrations,
            "component_breakdown": dict(self.component_breakdown),
            "method_breakdown": dict(self.method_breakdown),
            "performance": dict(self.performance),
            "rollback_data": [e.to_dict() for e in self.rollback_data],
        }


@dataclass
class ValidationResult:
    passed: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    checks: Dict[str, bool] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.checks.update(other.checks)
        self.metrics.update(other.metrics)
        self.passed = not self.errors
        return self

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class MigrationReport:
    execution_id: str
    timestamp: str
    duration_ms: float
    success: bool
    stage: PipelineStage
    summary: Dict[str, Any] = field(default_factory=dict)
    validation: Dict[str, bool] = field(default_factory=dict)
    rollback_info: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return _plain(asdict(self))
