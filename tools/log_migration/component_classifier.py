#!/usr/bin/env python3
# CUI // SP-CTI
"""Component classifier: maps a source path to a ComponentTag.

The mapping is an ordered list of (tag, path segment) rules tested against the
normalized, project-relative path; the first rule whose segment occurs in the
path wins. Paths matching no rule default to Core. The default is explicit:
``explain()`` reports it and ComponentClassifier logs every defaulted path.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Dict, List, Optional, Sequence, Tuple

from tools.log_migration.migration_models import ComponentTag

logger = logging.getLogger("log_migration.classifier")

DEFAULT_TAG = ComponentTag.CORE

DEFAULT_RULES: Tuple[Tuple[ComponentTag, str], ...] = (
    (ComponentTag.CLI, "/cli/"),
    (ComponentTag.CLI, "/commands/"),
    (ComponentTag.INTERFACE, "/mcp/"),
    (ComponentTag.INTERFACE, "/server/"),
    (ComponentTag.INTERFACE, "/api/"),
    (ComponentTag.INTERFACE, "/protocol/"),
    (ComponentTag.COORDINATION, "/swarm/"),
    (ComponentTag.COORDINATION, "/coordination/"),
    (ComponentTag.TERMINAL, "/terminal/"),
    (ComponentTag.TERMINAL, "/ui/"),
    (ComponentTag.STORAGE, "/memory/"),
    (ComponentTag.STORAGE, "/storage/"),
    (ComponentTag.STORAGE, "/persistence/"),
    (ComponentTag.MIGRATION, "/migration/"),
    (ComponentTag.MIGRATION, "/migrations/"),
    (ComponentTag.HOOKS, "/hooks/"),
    (ComponentTag.ENTERPRISE, "/enterprise/"),
    (ComponentTag.CORE, "/core/"),
)


@dataclass(frozen=True)
class Classification:
    tag: ComponentTag
    rule: Optional[str]
    defaulted: bool


def normalize_path(path, project_root=None) -> str:
    """Return ``/a/b/file.py/``-style lower-case POSIX form used for matching."""
    raw = os.fspath(path)
    if project_root is not None:
        try:
            raw = os.path.relpath(raw, os.fspath(project_root))
        except ValueError:
            # Different drive on Windows; match on the absolute path
            pass
    posix = PurePath(raw).as_posix().replace("\\", "/").lower()
    return "/" + posix.strip("/") + "/"


def explain(path, project_root=None,
            rules: Sequence[Tuple[ComponentTag, str]] = DEFAULT_RULES) -> Classification:
    """Classify *path* and report which rule decided it."""
    normalized = normalize_path(path, project_root)
    for tag, segment in rules:
        if segment in normalized:
            return Classification(tag=tag, rule=segment, defaulted=False)
    return Classification(tag=DEFAULT_TAG, rule=None, defaulted=True)


def classify(path, project_root=None,
             rules: Sequence[Tuple[ComponentTag, str]] = DEFAULT_RULES) -> ComponentTag:
    """Deterministic, total mapping from a path to a ComponentTag."""
    return explain(path, project_root, rules).tag


class ComponentClassifier:
    """Per-run classifier: memoizes results so a file is classified exactly once."""

    def __init__(self, project_root=None, rules: Optional[Sequence] = None):
        self.project_root = Path(project_root) if project_root is not None else None
        self.rules = tuple(rules) if rules else DEFAULT_RULES
        self._cache: Dict[str, Classification] = {}
        self._lock = threading.Lock()

    def explain(self, path) -> Classification:
        key = os.path.abspath(os.fspath(path))
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            result = explain(key, self.project_root, self.rules)
            self._cache[key] = result
        if result.defaulted:
            logger.info("No component rule matched %s; defaulting to %s",
                        self._display(key), DEFAULT_TAG.value)
        return result

    def classify(self, path) -> ComponentTag:
        return self.explain(path).tag

    def defaulted_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._display(p) for p, c in self._cache.items() if c.defaulted)

    def _display(self, path: str) -> str:
        if self.project_root is None:
            return path
        try:
            return Path(os.path.relpath(path, os.path.abspath(self.project_root))).as_posix()
        except ValueError:
            return path
