#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared pytest fixtures for the log migration test suite.

Builds small throwaway Python projects under tmp_path with output calls
spread across several components, plus a config tuned for fast runs (test
suite off, few performance iterations).
"""

import copy
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from tools.log_migration.migration_config import DEFAULT_CONFIG  # noqa: E402


# ---------------------------------------------------------------------------
# Sample project sources
# ---------------------------------------------------------------------------
SAMPLE_FILES = {
    "src/__init__.py": "",
    "src/utils/__init__.py": "",
    "src/app.py": (
        '"""Application entry."""\n'
        "\n"
        "\n"
        "def run():\n"
        '    print("app starting")\n'
    ),
    "src/core/__init__.py": "",
    "src/core/engine.py": (
        "import logging\n"
        "\n"
        "\n"
        "def start(name):\n"
        '    logging.info("engine %s starting", name)\n'
        '    print("ready")\n'
    ),
    "src/storage/__init__.py": "",
    "src/storage/store.py": (
        '"""Storage backend."""\n'
        "import logging\n"
        "\n"
        "\n"
        "def save(key, value):\n"
        '    print("saving", key)\n'
        '    logging.info("stored %s", key)\n'
        '    logging.error("failed for %s", value)\n'
    ),
    "src/storage/constants.py": "MAX_KEYS = 100\n",
    "src/cli/__init__.py": "",
    "src/cli/main.py": (
        "def main():\n"
        '    print("usage: tool [options]")\n'
    ),
    "src/api/__init__.py": "",
    "src/api/server.py": (
        "import logging\n"
        "\n"
        "\n"
        "def handle(request):\n"
        '    logging.warning("slow request %s", request)\n'
        "    return request\n"
    ),
}


def write_project(root: Path, files: dict) -> Path:
    """Write ``{relative path: content}`` under *root* and return *root*."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def snapshot(root: Path) -> dict:
    """Map of relative path -> bytes for every .py file outside the work dir."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*.py"))
        if ".log-migration" not in p.parts
    }


@pytest.fixture
def sample_project(tmp_path):
    """A small multi-component project with direct output calls."""
    return write_project(tmp_path / "project", SAMPLE_FILES)


@pytest.fixture
def fast_config():
    """Default config with the test suite off and a short performance check."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["validation"]["run_tests"] = False
    config["validation"]["performance_iterations"] = 20
    config["validation"]["performance_threshold_pct"] = 1000000.0
    config["max_workers"] = 2
    return config
