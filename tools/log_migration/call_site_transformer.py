#!/usr/bin/env python3
# CUI // SP-CTI
"""Call-site transformer: rewrites direct output calls into ComponentLog calls.

Two strategies, chosen by the outcome of an explicit parse step:

  structural  libcst parse succeeded. Every matching call node is rewritten to
              ``ComponentLog.<method>("<Tag>", <original args>)`` and an import
              of ComponentLog is added when missing. Formatting and comments
              are preserved.
  textual     libcst parse failed. Ordered regular-expression substitutions per
              output pattern plus a textual import line. Always reported as a
              warning; strings and comments that look like calls are rewritten
              too.

transform() never writes anything and never raises for text input.
"""

import ast
import logging
import os
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import libcst as cst
from libcst import matchers as m

from tools.log_migration.errors import ConfigurationError, ParseError
from tools.log_migration.migration_models import ComponentTag

logger = logging.getLogger("log_migration.transformer")

LOGGER_SYMBOL = "ComponentLog"
LOGGER_MODULE = "src/utils/component_log.py"

DEFAULT_OUTPUT_CALLS = OrderedDict([
    ("print", "log"),
    ("logging.debug", "debug"),
    ("logging.info", "info"),
    ("logging.warning", "warning"),
    ("logging.warn", "warning"),
    ("logging.error", "error"),
])

STRUCTURAL = "structural"
TEXTUAL = "textual"
UNCHANGED = "none"

_FUTURE_IMPORT_RE = re.compile(r"^from\s+__future__\s+import\b")
_HEADER_LINE_RE = re.compile(r"^(#!|#.*coding[:=])")


# ---------------------------------------------------------------------------
# Output call patterns
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class OutputPattern:
    """One tracked call shape: bare ``name(...)`` or ``target.name(...)``."""

    pattern: str
    target: Optional[str]
    name: str
    method: str

    @classmethod
    def parse(cls, pattern: str, method: str) -> "OutputPattern":
        target, _, name = pattern.rpartition(".")
        if not name.isidentifier() or (target and not target.isidentifier()):
            raise ConfigurationError(f"Unsupported output call pattern: {pattern!r}",
                                     config_key="output_calls")
        return cls(pattern=pattern, target=target or None, name=name, method=method)

    def matches(self, func: cst.BaseExpression) -> bool:
        if self.target is None:
            return m.matches(func, m.Name(self.name))
        return m.matches(func, m.Attribute(value=m.Name(self.target), attr=m.Name(self.name)))

    @property
    def regex(self):
        if self.target is None:
            return re.compile(r"(?<![\w.])(?<!def )" + re.escape(self.name) + r"\s*\(")
        return re.compile(
            r"(?<![\w.])" + re.escape(self.target) + r"\s*\.\s*" + re.escape(self.name) + r"\s*\("
        )


def build_patterns(output_calls=None) -> List[OutputPattern]:
    calls = output_calls if output_calls else DEFAULT_OUTPUT_CALLS
    return [OutputPattern.parse(p, meth) for p, meth in calls.items()]


# ---------------------------------------------------------------------------
# Parse step as a value
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ParseResult:
    """Either a parsed libcst Module or the ParseError that prevented it."""

    tree: Optional[cst.Module] = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def resolve(self, on_tree: Callable, on_error: Callable):
        """Apply *on_tree* to a parsed tree, or *on_error* to the parse error."""
        if self.error is None:
            return on_tree(self.tree)
        return on_error(self.error)


def parse_source(content: str) -> ParseResult:
    try:
        return ParseResult(tree=cst.parse_module(content))
    except cst.ParserSyntaxError as exc:
        message = str(exc).splitlines()[0] if str(exc) else "syntax error"
        return ParseResult(error=ParseError(
            message,
            line=getattr(exc, "raw_line", 0),
            column=getattr(exc, "raw_column", 0),
        ))
    except (RecursionError, ValueError) as exc:
        return ParseResult(error=ParseError(f"{type(exc).__name__}: {exc}"))


def reparse_error(content: str) -> Optional[str]:
    """Return a description of why CPython cannot parse *content*, or None."""
    try:
        ast.parse(content)
    except SyntaxError as exc:
        return f"line {exc.lineno}: {exc.msg}"
    except ValueError as exc:
        return str(exc)
    return None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass
class TransformResult:
    content: str
    replacements: int = 0
    patterns: List[str] = field(default_factory=list)
    strategy: str = UNCHANGED
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class CallScan:
    total: int = 0
    by_pattern: Dict[str, int] = field(default_factory=dict)
    strategy: str = STRUCTURAL


# ---------------------------------------------------------------------------
# libcst visitors
# ---------------------------------------------------------------------------
class _OutputCallCounter(cst.CSTVisitor):

    def __init__(self, patterns):
        super().__init__()
        self._patterns = patterns
        self.counts: Dict[str, int] = OrderedDict()

    def visit_Call(self, node: cst.Call) -> None:
        for pattern in self._patterns:
            if pattern.matches(node.func):
                self.counts[pattern.pattern] = self.counts.get(pattern.pattern, 0) + 1
                break


class _OutputCallRewriter(cst.CSTTransformer):
    """Replace each tracked call with a tagged ComponentLog call."""

    def __init__(self, patterns, symbol: str, tag_literal: str, method_overrides: dict):
        super().__init__()
        self._patterns = patterns
        self._symbol = symbol
        self._tag_literal = tag_literal
        self._overrides = method_overrides or {}
        self.replacements = 0
        self.patterns_used: List[str] = []

    def leave_Call(self, original_node: cst.Call, updated_node: cst.Call) -> cst.BaseExpression:
        for pattern in self._patterns:
            if not pattern.matches(updated_node.func):
                continue
            method = self._overrides.get(pattern.method, pattern.method)
            self.replacements += 1
            if pattern.pattern not in self.patterns_used:
                self.patterns_used.append(pattern.pattern)
            return updated_node.with_changes(
                func=cst.Attribute(value=cst.Name(self._symbol), attr=cst.Name(method)),
                args=[cst.Arg(value=cst.SimpleString(self._tag_literal)), *updated_node.args],
            )
        return updated_node


def _import_index(body) -> int:
    """Index after the module docstring and any ``from __future__`` imports."""
    idx = 0
    docstring = m.SimpleStatementLine(
        body=[m.Expr(value=m.SimpleString() | m.ConcatenatedString())]
    )
    if body and m.matches(body[0], docstring):
        idx = 1
    future = m.SimpleStatementLine(body=[m.ImportFrom(module=m.Name("__future__"))])
    while idx < len(body) and m.matches(body[idx], future):
        idx += 1
    return idx


# ---------------------------------------------------------------------------
# Transformer
# ---------------------------------------------------------------------------
class CallSiteTransformer:
    """Rewrites direct output calls in one source text at a time.

    Args:
        output_calls: Mapping of call pattern (``print``, ``logging.info``) to
            the ComponentLog method it becomes.
        logger_symbol: Name of the component logger class.
        logger_module: Project-relative path of the module defining it.
        project_root: Root used to resolve import paths.
        import_style: ``relative`` (default) or ``absolute``.
    """

    def __init__(self, output_calls=None, logger_symbol: str = LOGGER_SYMBOL,
                 logger_module: str = LOGGER_MODULE, project_root=None,
                 import_style: str = "relative"):
        if import_style not in ("relative", "absolute"):
            raise ConfigurationError(f"Unknown import style: {import_style!r}",
                                     config_key="logger.import_style")
        self.patterns = build_patterns(output_calls)
        self.symbol = logger_symbol
        self.project_root = Path(os.path.abspath(project_root or os.getcwd()))
        self.module_path = Path(os.path.abspath(self.project_root / logger_module))
        self.import_style = import_style
        try:
            self.module_path.relative_to(self.project_root)
        except ValueError:
            raise ConfigurationError(
                f"Logger module {logger_module} is outside the project root",
                config_key="logger.module",
            )
        self._symbol_use_re = re.compile(r"(?<![\w.])" + re.escape(self.symbol) + r"\s*\.")

    @classmethod
    def from_config(cls, config: dict, project_root) -> "CallSiteTransformer":
        logger_cfg = config.get("logger", {})
        return cls(
            output_calls=config.get("output_calls"),
            logger_symbol=logger_cfg.get("symbol", LOGGER_SYMBOL),
            logger_module=logger_cfg.get("module", LOGGER_MODULE),
            project_root=project_root,
            import_style=logger_cfg.get("import_style", "relative"),
        )

    # -- public API ------------------------------------------------------
    def transform(self, content: str, component, file_path,
                  method_overrides: Optional[dict] = None) -> TransformResult:
        tag = ComponentTag.from_name(component)
        overrides = method_overrides or {}
        return parse_source(content).resolve(
            lambda tree: self._structural(content, tree, tag, file_path, overrides),
            lambda error: self._textual(content, tag, file_path, overrides, error),
        )

    def scan(self, content: str) -> CallScan:
        """Count direct output calls without rewriting anything."""
        return parse_source(content).resolve(self._scan_tree,
                                              lambda _error: self._scan_text(content))

    def uses_logger(self, content: str) -> bool:
        return bool(self._symbol_use_re.search(content))

    def import_statement(self, file_path) -> str:
        """Import line for the logger symbol as seen from *file_path*."""
        file_dir = Path(os.path.abspath(file_path)).parent
        module = self.module_path.with_suffix("")
        if module.name == "__init__":
            module = module.parent

        if self.import_style == "relative":
            common = Path(os.path.commonpath([str(file_dir), str(module.parent)]))
            if common != self.project_root and self._under_root(common):
                up = len(file_dir.relative_to(common).parts)
                rest = ".".join(module.relative_to(common).parts)
                return f"from {'.' * (up + 1)}{rest} import {self.symbol}"

        dotted = ".".join(module.relative_to(self.project_root).parts)
        return f"from {dotted} import {self.symbol}"

    # -- strategies ------------------------------------------------------
    def _structural(self, content, tree: cst.Module, tag: ComponentTag, file_path,
                    overrides) -> TransformResult:
        rewriter = _OutputCallRewriter(self.patterns, self.symbol, f'"{tag.value}"', overrides)
        new_tree = tree.visit(rewriter)
        if rewriter.replacements == 0:
            return TransformResult(content=content, strategy=STRUCTURAL)

        if not self._tree_imports_symbol(new_tree):
            new_tree = self._add_import(new_tree, file_path)

        result = TransformResult(
            content=new_tree.code,
            replacements=rewriter.replacements,
            patterns=list(rewriter.patterns_used),
            strategy=STRUCTURAL,
        )
        self._check_round_trip(content, result, file_path)
        return result

    def _textual(self, content, tag: ComponentTag, file_path, overrides,
                 error: ParseError) -> TransformResult:
        logger.warning("Structural parse failed for %s (%s); using textual fallback",
                       file_path, error)
        new_content = content
        replacements = 0
        used = []
        for pattern in self.patterns:
            method = overrides.get(pattern.method, pattern.method)
            replacement = f'{self.symbol}.{method}("{tag.value}", '
            new_content, count = pattern.regex.subn(lambda _m: replacement, new_content)
            if count:
                replacements += count
                used.append(pattern.pattern)

        result = TransformResult(
            content=new_content,
            replacements=replacements,
            patterns=used,
            strategy=TEXTUAL,
            warnings=[f"{file_path}: structural parse failed ({error}); textual fallback applied"],
        )
        if replacements == 0:
            return result

        if not self.text_imports_symbol(new_content):
            result.content = self._insert_import_line(new_content, self.import_statement(file_path))
        self._check_round_trip(content, result, file_path)
        return result

    def _check_round_trip(self, original: str, result: TransformResult, file_path) -> None:
        after = reparse_error(result.content)
        if after is None:
            return
        if reparse_error(original) is not None:
            result.warnings.append(
                f"{file_path}: source was malformed before migration and still does not "
                f"parse ({after})"
            )
        else:
            result.errors.append(f"{file_path}: rewritten source does not parse ({after})")

    # -- scanning --------------------------------------------------------
    def _scan_tree(self, tree: cst.Module) -> CallScan:
        counter = _OutputCallCounter(self.patterns)
        tree.visit(counter)
        return CallScan(total=sum(counter.counts.values()), by_pattern=dict(counter.counts),
                        strategy=STRUCTURAL)

    def _scan_text(self, content: str) -> CallScan:
        counts = {}
        for pattern in self.patterns:
            found = len(pattern.regex.findall(content))
            if found:
                counts[pattern.pattern] = found
        return CallScan(total=sum(counts.values()), by_pattern=counts, strategy=TEXTUAL)

    # -- imports ---------------------------------------------------------
    def _tree_imports_symbol(self, tree: cst.Module) -> bool:
        for alias in m.findall(tree, m.ImportAlias(name=m.Name(self.symbol))):
            if alias.evaluated_alias in (None, self.symbol):
                return True
        return False

    def text_imports_symbol(self, content: str) -> bool:
        pattern = r"^\s*from\s+[\w.]+\s+import\s+[^\n]*\b" + re.escape(self.symbol) + r"\b"
        return re.search(pattern, content, re.MULTILINE) is not None

    def _add_import(self, tree: cst.Module, file_path) -> cst.Module:
        statement = cst.parse_statement(self.import_statement(file_path) + "\n")
        body = list(tree.body)
        idx = _import_index(body)
        if idx == 0 and body:
            # Comments sitting above the first statement stay at the top
            statement = statement.with_changes(leading_lines=body[0].leading_lines)
            body[0] = body[0].with_changes(leading_lines=[])
        body.insert(idx, statement)
        return tree.with_changes(body=body)

    @staticmethod
    def _insert_import_line(content: str, import_line: str) -> str:
        lines = content.splitlines(keepends=True)
        idx = 0
        while idx < len(lines) and idx < 2 and _HEADER_LINE_RE.match(lines[idx]):
            idx += 1
        for pos, line in enumerate(lines):
            if _FUTURE_IMPORT_RE.match(line):
                idx = pos + 1
        newline = "\r\n" if content.endswith("\r\n") else "\n"
        if idx > 0 and not lines[idx - 1].endswith(("\n", "\r")):
            lines[idx - 1] += newline
        lines.insert(idx, import_line + newline)
        return "".join(lines)

    def _under_root(self, path: Path) -> bool:
        try:
            path.relative_to(self.project_root)
        except ValueError:
            return False
        return True
