#!/usr/bin/env python3
# CUI // SP-CTI
"""Log Call Migration Engine.

Rewrites direct output calls (``print``, root ``logging.*``) across a Python
project into component-tagged ``ComponentLog`` calls, with per-file backups,
component-level rollback and post-migration validation.

Pipeline: INIT -> ANALYSIS -> MIGRATION -> VALIDATION -> TESTING -> COMPLETE | FAILED
"""

from tools.log_migration.component_classifier import classify  # noqa: F401
from tools.log_migration.errors import (  # noqa: F401
    BackupError,
    ConfigurationError,
    MigrationError,
    ParseError,
    PipelineAborted,
    PostConditionViolation,
    PrerequisiteError,
    TransformFailure,
    ValidationFailure,
)
from tools.log_migration.migration_models import ComponentTag, PipelineStage  # noqa: F401

__version__ = "1.0.0"
