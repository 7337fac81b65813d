#!/usr/bin/env python3
# CUI // SP-CTI
"""Named post-condition rules run against a component's files after migration.

Each rule has a fixed severity. ERROR findings fail the component; WARNING
findings are reported but do not. Dispatch goes through ``_CHECKS``, which
has one entry per PostConditionRule member.
"""

import ast
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from tools.log_migration.errors import ConfigurationError, PostConditionViolation
from tools.log_migration.migration_models import ComponentTag

logger = logging.getLogger("log_migration.post_conditions")

SECRET_NAME_RE = re.compile(
    r"(^|_)(password|passwd|pwd|secret|secrets|token|api_?key|apikey|credential|credentials)(_|$)"
)
# Names that describe a secret rather than hold it: token_count, get_token, password_len
DERIVED_NAME_RE = re.compile(
    r"^(get|set|has|is|num|n|max|min|check|validate|refresh|load|fetch)_"
    r"|_(count|counts|len|length|size|num|total|limit|type|kind|name|url|uri|path|ttl|"
    r"timeout|expiry|expires|expires_at|age)$"
)


class RuleSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"


class PostConditionRule(Enum):
    SYNTAX = "syntax"
    IMPORTS = "imports"
    NO_DIRECT_STDOUT = "no-direct-stdout"
    NO_RAW_OUTPUT = "no-raw-output"
    CORRELATION_TRACKING = "correlation-tracking"
    CONDITIONAL_DEBUG = "conditional-debug"
    USER_OUTPUT = "user-output"
    NO_SECRETS_IN_LOGS = "no-secrets-in-logs"

    @classmethod
    def from_name(cls, name) -> "PostConditionRule":
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace("_", "-")
        for rule in cls:
            if rule.value == key:
                return rule
        raise ConfigurationError(f"Unknown post-condition rule: {name!r}", config_key="rules")

    @property
    def severity(self) -> RuleSeverity:
        return _SEVERITY[self]


_SEVERITY = {
    PostConditionRule.SYNTAX: RuleSeverity.ERROR,
    PostConditionRule.IMPORTS: RuleSeverity.ERROR,
    PostConditionRule.NO_DIRECT_STDOUT: RuleSeverity.ERROR,
    PostConditionRule.NO_RAW_OUTPUT: RuleSeverity.ERROR,
    PostConditionRule.CORRELATION_TRACKING: RuleSeverity.WARNING,
    PostConditionRule.CONDITIONAL_DEBUG: RuleSeverity.WARNING,
    PostConditionRule.USER_OUTPUT: RuleSeverity.WARNING,
    PostConditionRule.NO_SECRETS_IN_LOGS: RuleSeverity.ERROR,
}


# ---------------------------------------------------------------------------
# AST helpers (shared with the validator)
# ---------------------------------------------------------------------------
def parse_or_none(content: str) -> Optional[ast.Module]:
    try:
        return ast.parse(content)
    except (SyntaxError, ValueError):
        return None


def logger_calls(tree: ast.AST, symbol: str) -> Iterator[Tuple[ast.Call, str]]:
    """Yield ``(call, method)`` for every ``<symbol>.<method>(...)`` call."""
    for node in ast.walk(tree):
        if (isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute)
                and isinstance(node.func.value, ast.Name) and node.func.value.id == symbol):
            yield node, node.func.attr


def imported_symbol_modules(tree: ast.AST, symbol: str) -> List[ast.ImportFrom]:
    """ImportFrom nodes that bind *symbol* under its own name."""
    found = []
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom):
            for alias in node.names:
                if alias.name == symbol and alias.asname in (None, symbol):
                    found.append(node)
    return found


def _is_stdout_write(func: ast.AST) -> bool:
    return (isinstance(func, ast.Attribute) and func.attr == "write"
            and isinstance(func.value, ast.Attribute) and func.value.attr == "stdout"
            and isinstance(func.value.value, ast.Name) and func.value.value.id == "sys")


def _secret_names(node: ast.AST) -> List[str]:
    names = []
    for sub in ast.walk(node):
        if isinstance(sub, ast.Name):
            candidate = sub.id
        elif isinstance(sub, ast.Attribute):
            candidate = sub.attr
        elif isinstance(sub, ast.keyword) and sub.arg:
            candidate = sub.arg
        else:
            continue
        lowered = candidate.lower()
        if SECRET_NAME_RE.search(lowered) and not DERIVED_NAME_RE.search(lowered):
            names.append(candidate)
    return names


# ---------------------------------------------------------------------------
# Inputs and outputs
# ---------------------------------------------------------------------------
@dataclass
class RuleContext:
    """What rules need beyond the file text."""

    component: ComponentTag
    transformer: object
    project_root: Optional[Path] = None
    backup_for: Optional[Callable[[str], Optional[str]]] = None

    @property
    def symbol(self) -> str:
        return self.transformer.symbol

    def display(self, path: str) -> str:
        if self.project_root is None:
            return path
        try:
            return Path(os.path.relpath(path, str(self.project_root))).as_posix()
        except ValueError:
            return path


@dataclass
class FileView:
    path: str
    content: str
    tree: Optional[ast.Module]

    @classmethod
    def read(cls, path) -> "FileView":
        with open(path, "r", encoding="utf-8", newline="") as f:
            content = f.read()
        return cls(path=str(path), content=content, tree=parse_or_none(content))


@dataclass
class Finding:
    rule: PostConditionRule
    message: str
    severity: RuleSeverity


@dataclass
class RuleReport:
    findings: List[Finding] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [f"[{f.rule.value}] {f.message}" for f in self.findings
                if f.severity is RuleSeverity.ERROR]

    @property
    def warnings(self) -> List[str]:
        return [f"[{f.rule.value}] {f.message}" for f in self.findings
                if f.severity is RuleSeverity.WARNING]

    @property
    def passed(self) -> bool:
        return not self.errors

    def violations(self, component: ComponentTag) -> List[PostConditionViolation]:
        return [
            PostConditionViolation(f.message, rule=f.rule.value, severity=f.severity.value,
                                   component=component.value)
            for f in self.findings
        ]


# ---------------------------------------------------------------------------
# Rule implementations: (view, ctx) -> iterable of (message, severity or None)
# ---------------------------------------------------------------------------
def _check_syntax(view: FileView, ctx: RuleContext):
    if view.tree is not None:
        return
    backup = ctx.backup_for(view.path) if ctx.backup_for else None
    if backup and os.path.exists(backup):
        with open(backup, "r", encoding="utf-8", errors="replace", newline="") as f:
            if parse_or_none(f.read()) is None:
                yield (f"{ctx.display(view.path)} does not parse, but was already malformed "
                       "before migration", RuleSeverity.WARNING)
                return
    yield f"{ctx.display(view.path)} does not parse after migration", None


def _check_imports(view: FileView, ctx: RuleContext):
    if not ctx.transformer.uses_logger(view.content):
        return
    if view.tree is not None:
        imported = bool(imported_symbol_modules(view.tree, ctx.symbol))
    else:
        imported = ctx.transformer.text_imports_symbol(view.content)
    if not imported:
        yield f"{ctx.display(view.path)} uses {ctx.symbol} without importing it", None


def _check_no_direct_stdout(view: FileView, ctx: RuleContext):
    if view.tree is None:
        lines = [n for n, text in enumerate(view.content.splitlines(), 1)
                 if re.search(r"(?<![\w.])(print\s*\(|sys\.stdout\.write\s*\()", text)]
    else:
        lines = sorted(
            node.lineno for node in ast.walk(view.tree)
            if isinstance(node, ast.Call) and (
                (isinstance(node.func, ast.Name) and node.func.id == "print")
                or _is_stdout_write(node.func))
        )
    if lines:
        yield (f"{ctx.display(view.path)} still writes to stdout directly "
               f"(line {', '.join(str(n) for n in lines)})", None)


def _check_no_raw_output(view: FileView, ctx: RuleContext):
    scan = ctx.transformer.scan(view.content)
    if scan.total:
        detail = ", ".join(f"{p} x{n}" for p, n in scan.by_pattern.items())
        yield f"{ctx.display(view.path)} has {scan.total} unmigrated output call(s): {detail}", None


def _check_correlation_tracking(view: FileView, ctx: RuleContext):
    if ctx.transformer.uses_logger(view.content) and "correlation_id" not in view.content:
        yield f"{ctx.display(view.path)} logs without a correlation_id", None


def _check_conditional_debug(view: FileView, ctx: RuleContext):
    if view.tree is None:
        return
    count = sum(1 for _call, method in logger_calls(view.tree, ctx.symbol) if method == "debug")
    if count:
        yield (f"{ctx.display(view.path)} has {count} unconditional {ctx.symbol}.debug call(s); "
               f"consider {ctx.symbol}.debug_if", None)


def _check_user_output(view: FileView, ctx: RuleContext):
    if view.tree is None:
        return
    count = sum(1 for _call, method in logger_calls(view.tree, ctx.symbol) if method == "log")
    if count:
        yield (f"{ctx.display(view.path)}: {count} print call(s) now go through "
               f"{ctx.symbol}.log; review user-facing output", None)


def _check_no_secrets_in_logs(view: FileView, ctx: RuleContext):
    if view.tree is None:
        return
    for call, method in logger_calls(view.tree, ctx.symbol):
        names = []
        for arg in call.args[1:]:
            names.extend(_secret_names(arg))
        for kw in call.keywords:
            names.extend(_secret_names(kw))
        if names:
            yield (f"{ctx.display(view.path)}:{call.lineno} {ctx.symbol}.{method} may log "
                   f"secret value(s): {', '.join(sorted(set(names)))}", None)


_CHECKS = {
    PostConditionRule.SYNTAX: _check_syntax,
    PostConditionRule.IMPORTS: _check_imports,
    PostConditionRule.NO_DIRECT_STDOUT: _check_no_direct_stdout,
    PostConditionRule.NO_RAW_OUTPUT: _check_no_raw_output,
    PostConditionRule.CORRELATION_TRACKING: _check_correlation_tracking,
    PostConditionRule.CONDITIONAL_DEBUG: _check_conditional_debug,
    PostConditionRule.USER_OUTPUT: _check_user_output,
    PostConditionRule.NO_SECRETS_IN_LOGS: _check_no_secrets_in_logs,
}


def run_rules(rules: Iterable[PostConditionRule], files: Iterable, context: RuleContext) -> RuleReport:
    """Run each rule over each file; unreadable files are reported as errors."""
    rules = [PostConditionRule.from_name(r) for r in rules]
    report = RuleReport()
    if not rules:
        return report

    for path in files:
        try:
            view = FileView.read(path)
        except (OSError, UnicodeDecodeError) as exc:
            report.findings.append(Finding(PostConditionRule.SYNTAX,
                                           f"{context.display(str(path))} unreadable: {exc}",
                                           RuleSeverity.ERROR))
            continue
        for rule in rules:
            for message, severity in _CHECKS[rule](view, context):
                report.findings.append(Finding(rule, message, severity or rule.severity))

    for finding in report.findings:
        level = logging.WARNING if finding.severity is RuleSeverity.ERROR else logging.INFO
        logger.log(level, "%s [%s] %s", context.component.value, finding.rule.value,
                   finding.message)
    return report
