#!/usr/bin/env python3
# CUI // SP-CTI
"""Log Migration: Structured Exception Hierarchy.

Errors raised by the migration engine are split by how far they travel:

    ParseError, TransformFailure, PostConditionViolation
        recoverable; collected into file or component results.
    ValidationFailure, PrerequisiteError, PipelineAborted
        stage-level; move the pipeline to FAILED.
    ConfigurationError, BackupError
        permanent; the operation cannot continue.

Usage:
    from tools.log_migration.errors import TransformFailure

    raise TransformFailure("no call site rewritten", component="Storage")
"""


class MigrationError(Exception):
    """Base exception for all migration engine errors.

    Attributes:
        component: Component tag name the error belongs to (may be empty).
        recoverable: Whether the pipeline can continue past the error.
    """

    def __init__(self, message: str, component: str = "", recoverable: bool = False):
        super().__init__(message)
        self.component = component
        self.recoverable = recoverable


class ParseError(MigrationError):
    """Structural parse of a source file failed.

    Never fatal: the transformer routes it to the textual strategy.
    """

    def __init__(self, message: str, line: int = 0, column: int = 0):
        super().__init__(message, recoverable=True)
        self.line = line
        self.column = column


class TransformFailure(MigrationError):
    """A file expected to change was not rewritten, or the rewrite is unusable."""

    def __init__(self, message: str, component: str = "", file_path: str = ""):
        super().__init__(message, component=component, recoverable=True)
        self.file_path = file_path


class PostConditionViolation(MigrationError):
    """A component-specific rule failed after migration.

    Attributes:
        rule: Name of the rule that produced the violation.
        severity: "error" (hard) or "warning" (soft).
    """

    def __init__(self, message: str, rule: str = "", severity: str = "error",
                 component: str = ""):
        super().__init__(message, component=component, recoverable=True)
        self.rule = rule
        self.severity = severity


class ValidationFailure(MigrationError):
    """Post-migration validation (re-parse, imports, tests) failed."""

    def __init__(self, message: str, errors=None):
        super().__init__(message, recoverable=False)
        self.errors = list(errors or [])


class PrerequisiteError(MigrationError):
    """Required tooling is missing at INIT; no files have been touched."""

    def __init__(self, message: str, tool: str = ""):
        super().__init__(message, recoverable=False)
        self.tool = tool


class ConfigurationError(MigrationError):
    """Configuration error: missing or invalid configuration."""

    def __init__(self, message: str, config_key: str = ""):
        super().__init__(message, recoverable=False)
        self.config_key = config_key


class BackupError(MigrationError):
    """A write was attempted without a valid backup receipt, or a backup failed."""

    def __init__(self, message: str, file_path: str = ""):
        super().__init__(message, recoverable=False)
        self.file_path = file_path


class PipelineAborted(MigrationError):
    """The run was cancelled by the user."""

    def __init__(self, message: str = "Migration aborted by user"):
        super().__init__(message, recoverable=False)
