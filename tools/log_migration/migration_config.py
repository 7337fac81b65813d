#!/usr/bin/env python3
# CUI // SP-CTI
"""Configuration loader for the log call migration engine.

Reads args/log_migration_config.yaml and merges it over the built-in defaults
below. Component entries are turned into ComponentMigrationConfig objects once,
at orchestrator INIT, and are read-only afterwards.
"""

import copy
import logging
from pathlib import Path
from typing import List, Optional

import yaml

from tools.log_migration.component_migrator import DEFAULT_EXCLUDE_DIRS
from tools.log_migration.errors import ConfigurationError
from tools.log_migration.migration_models import (
    ComponentMigrationConfig,
    ComponentTag,
    Priority,
)
from tools.log_migration.migration_validator import DEFAULT_SETTINGS as DEFAULT_VALIDATION_SETTINGS
from tools.log_migration.post_conditions import PostConditionRule

BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = BASE_DIR / "args" / "log_migration_config.yaml"

logger = logging.getLogger("log_migration.config")

DEFAULT_CONFIG = {
    # Direct output call pattern -> ComponentLog method it becomes
    "output_calls": {
        "print": "log",
        "logging.debug": "debug",
        "logging.info": "info",
        "logging.warning": "warning",
        "logging.warn": "warning",
        "logging.error": "error",
    },
    "logger": {
        "symbol": "ComponentLog",
        "module": "src/utils/component_log.py",
        "import_style": "relative",
        "scaffold": True,
    },
    # Ordered (tag, path segment) rules; first match wins, default is Core
    "classifier": {
        "rules": [
            ["CLI", "/cli/"],
            ["CLI", "/commands/"],
            ["Interface", "/mcp/"],
            ["Interface", "/server/"],
            ["Interface", "/api/"],
            ["Interface", "/protocol/"],
            ["Coordination", "/swarm/"],
            ["Coordination", "/coordination/"],
            ["Terminal", "/terminal/"],
            ["Terminal", "/ui/"],
            ["Storage", "/memory/"],
            ["Storage", "/storage/"],
            ["Storage", "/persistence/"],
            ["Migration", "/migration/"],
            ["Migration", "/migrations/"],
            ["Hooks", "/hooks/"],
            ["Enterprise", "/enterprise/"],
            ["Core", "/core/"],
        ],
    },
    "components": {
        "Core": {
            "priority": "CRITICAL",
            "paths": ["**/*.py"],
            "dependencies": [],
            "rules": ["syntax", "imports"],
            "expected_calls": 600,
        },
        "Interface": {
            "priority": "CRITICAL",
            "paths": ["**/mcp/**/*.py", "**/server/**/*.py", "**/api/**/*.py",
                      "**/protocol/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports", "no-direct-stdout"],
            "expected_calls": 800,
        },
        "CLI": {
            "priority": "HIGH",
            "paths": ["**/cli/**/*.py", "**/commands/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports", "user-output"],
            "expected_calls": 1500,
        },
        "Coordination": {
            "priority": "HIGH",
            "paths": ["**/swarm/**/*.py", "**/coordination/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports", "correlation-tracking"],
            "expected_calls": 1200,
        },
        "Storage": {
            "priority": "MEDIUM",
            "paths": ["**/memory/**/*.py", "**/storage/**/*.py", "**/persistence/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports", "conditional-debug"],
            "expected_calls": 300,
        },
        "Terminal": {
            "priority": "MEDIUM",
            "paths": ["**/terminal/**/*.py", "**/ui/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports"],
            "expected_calls": 400,
        },
        "Migration": {
            "priority": "MEDIUM",
            "paths": ["**/migration/**/*.py", "**/migrations/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports", "no-raw-output"],
            "expected_calls": 200,
        },
        "Hooks": {
            "priority": "LOW",
            "paths": ["**/hooks/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports"],
            "expected_calls": 150,
        },
        "Enterprise": {
            "priority": "LOW",
            "paths": ["**/enterprise/**/*.py"],
            "dependencies": ["Core"],
            "rules": ["syntax", "imports", "no-secrets-in-logs"],
            "expected_calls": 100,
        },
    },
    "exclude_dirs": list(DEFAULT_EXCLUDE_DIRS),
    "critical_files": [
        "pyproject.toml", "setup.cfg", "setup.py", "requirements.txt",
        "pytest.ini", "tox.ini",
    ],
    "work_dir": ".log-migration",
    "max_workers": 4,
    "estimate": {"ms_per_call": 1.0},
    "validation": copy.deepcopy(DEFAULT_VALIDATION_SETTINGS),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge *override* into a copy of *base*; nested dicts merge, others replace."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load migration configuration from YAML with fallback defaults.

    A missing file yields the defaults. A file that is not a mapping, or that
    does not parse, raises ConfigurationError.
    """
    path = Path(config_path) if config_path else CONFIG_PATH
    if not path.exists():
        logger.info("No config at %s; using built-in defaults", path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}", config_key=str(path))

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Config root must be a mapping: {path}", config_key=str(path))

    config = _deep_merge(DEFAULT_CONFIG, loaded)
    # Explicit component tables replace the defaults wholesale
    if "components" in loaded:
        config["components"] = copy.deepcopy(loaded["components"])
    logger.debug("Loaded config from %s", path)
    return config


def build_component_configs(config: dict) -> List[ComponentMigrationConfig]:
    """Turn the ``components`` table into validated ComponentMigrationConfig objects.

    Declaration order is preserved; it is the final tie-breaker when ordering.
    """
    configs = []
    for name, entry in (config.get("components") or {}).items():
        tag = ComponentTag.from_name(name)
        entry = entry or {}
        paths = tuple(entry.get("paths") or ())
        if not paths:
            raise ConfigurationError(f"Component {tag.value} declares no paths",
                                     config_key=f"components.{name}.paths")
        configs.append(ComponentMigrationConfig(
            component=tag,
            priority=Priority.from_name(entry.get("priority", "MEDIUM")),
            paths=paths,
            dependencies=tuple(ComponentTag.from_name(d) for d in entry.get("dependencies") or ()),
            rules=tuple(PostConditionRule.from_name(r) for r in entry.get("rules") or ()),
            expected_calls=int(entry.get("expected_calls", 0)),
            method_overrides=dict(entry.get("method_overrides") or {}),
        ))
    return configs


def classifier_rules(config: dict) -> list:
    """Return the ordered classifier rules as (ComponentTag, segment) tuples."""
    rules = []
    for item in (config.get("classifier") or {}).get("rules") or ():
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise ConfigurationError(f"Classifier rule must be [tag, segment]: {item!r}",
                                     config_key="classifier.rules")
        tag, segment = item
        rules.append((ComponentTag.from_name(tag), str(segment).lower()))
    return rules
