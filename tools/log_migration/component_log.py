#!/usr/bin/env python3
# CUI // SP-CTI
"""ComponentLog: component-tagged logging facade.

Migrated code calls ``ComponentLog.<method>("<Component>", ...)`` in place of
``print`` and root-logger ``logging.*`` calls. Each component logs through its
own stdlib logger named ``component.<tag>``, so verbosity can be tuned per
component with ordinary logging configuration.

This module only depends on the standard library: the migration engine copies
it into target projects as their logger module.

Usage:
    from src.utils.component_log import ComponentLog

    ComponentLog.info("Storage", "Loaded %d rows", count)
    ComponentLog.log("CLI", "done", sep="")
    ComponentLog.debug_if("Storage", verbose, "cache state: %s", state)
"""

import logging
import sys
import threading

LOGGER_PREFIX = "component"


class ComponentLog:
    """Class-level facade; never instantiated."""

    _lock = threading.Lock()
    _counts = {}

    @classmethod
    def get_logger(cls, component) -> logging.Logger:
        return logging.getLogger(f"{LOGGER_PREFIX}.{str(component).lower()}")

    # -- print replacement -------------------------------------------------
    @classmethod
    def log(cls, component, *values, sep=" ", end="\n", file=None, flush=False):
        """print()-compatible entry point.

        Output aimed at stdout is logged at INFO and at stderr at WARNING.
        Any other ``file`` target is not console output and is written to as
        print() would.
        """
        if file is not None and file not in (sys.stdout, sys.stderr):
            print(*values, sep=sep, end=end, file=file, flush=flush)
            return
        level = logging.WARNING if file is sys.stderr else logging.INFO
        message = (" " if sep is None else sep).join(str(v) for v in values)
        cls._emit(level, "log", component, "%s", (message,), {})

    # -- logging replacements ----------------------------------------------
    @classmethod
    def debug(cls, component, msg, *args, **kwargs):
        cls._emit(logging.DEBUG, "debug", component, msg, args, kwargs)

    @classmethod
    def info(cls, component, msg, *args, **kwargs):
        cls._emit(logging.INFO, "info", component, msg, args, kwargs)

    @classmethod
    def warning(cls, component, msg, *args, **kwargs):
        cls._emit(logging.WARNING, "warning", component, msg, args, kwargs)

    @classmethod
    def error(cls, component, msg, *args, **kwargs):
        cls._emit(logging.ERROR, "error", component, msg, args, kwargs)

    @classmethod
    def critical(cls, component, msg, *args, **kwargs):
        cls._emit(logging.CRITICAL, "critical", component, msg, args, kwargs)

    @classmethod
    def exception(cls, component, msg, *args, **kwargs):
        kwargs.setdefault("exc_info", True)
        cls._emit(logging.ERROR, "exception", component, msg, args, kwargs)

    @classmethod
    def debug_if(cls, component, condition, msg, *args, **kwargs):
        """DEBUG only when *condition* (or ``condition()``) is truthy."""
        if callable(condition):
            condition = condition()
        if condition:
            cls._emit(logging.DEBUG, "debug_if", component, msg, args, kwargs)

    # -- stats ---------------------------------------------------------------
    @classmethod
    def usage_stats(cls) -> dict:
        """Call counts keyed ``method@component``."""
        with cls._lock:
            return dict(cls._counts)

    @classmethod
    def reset_stats(cls):
        with cls._lock:
            cls._counts.clear()

    @classmethod
    def _emit(cls, level, method, component, msg, args, kwargs):
        key = f"{method}@{component}"
        with cls._lock:
            cls._counts[key] = cls._counts.get(key, 0) + 1
        target = cls.get_logger(component)
        if target.isEnabledFor(level):
            # Attribute the record to the caller of ComponentLog.<method>
            kwargs.setdefault("stacklevel", 3)
            target.log(level, msg, *args, **kwargs)
