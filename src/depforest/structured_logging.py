"""
Structured logging configuration for depforest.

Provides consistent, machine-readable logging of resolution runs, graph
pruning and external tool invocations.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

_RESERVED_RECORD_KEYS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
        }
        message = record.getMessage()
        if message:
            log_entry["message"] = message

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """Structured logger for resolution events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"depforest.{name}")
        self._setup_logger()
        self.project_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            # stdout is reserved for JSON results.
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def set_project_context(
        self,
        definition_file: Optional[str] = None,
        package_manager: Optional[str] = None,
    ) -> None:
        self.project_context = {}
        if definition_file:
            self.project_context["definition_file"] = definition_file
        if package_manager:
            self.project_context["package_manager"] = package_manager

    def clear_project_context(self) -> None:
        self.project_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.project_context, **kwargs}
        getattr(self.logger, level)("", extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        self._log("warning", event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        self._log("error", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log("debug", event_type, **kwargs)


# Global logger instances
_analyzer_logger = StructuredLogger("analyzer")
_graph_logger = StructuredLogger("graph")
_tool_logger = StructuredLogger("tool")

_ALL_LOGGERS = (_analyzer_logger, _graph_logger, _tool_logger)


def get_analyzer_logger() -> StructuredLogger:
    """Get the logger for per-project resolution runs."""
    return _analyzer_logger


def get_graph_logger() -> StructuredLogger:
    """Get the logger for module graph construction and pruning."""
    return _graph_logger


def get_tool_logger() -> StructuredLogger:
    """Get the logger for external command invocations."""
    return _tool_logger


def log_resolution_start(definition_file: str, package_manager: str) -> None:
    """Log the start of resolving one definition file."""
    set_project_context(definition_file, package_manager)
    _analyzer_logger.info("resolution_started")


def log_resolution_complete(
    duration_ms: int,
    package_count: int,
    scope_names: Sequence[str],
    issue_count: int = 0,
) -> None:
    """Log the end of resolving one definition file."""
    event = "resolution_failed" if issue_count else "resolution_completed"
    log = _analyzer_logger.warning if issue_count else _analyzer_logger.info
    log(
        event,
        resolution_duration_ms=duration_ms,
        total_packages=package_count,
        scopes=list(scope_names),
        issues=issue_count,
    )
    clear_project_context()


def log_graph_pruned(original_size: int, remaining_size: int, reason: str) -> None:
    """Log that nodes were removed from the module graph."""
    _graph_logger.debug(
        "graph_pruned",
        removed_nodes=original_size - remaining_size,
        remaining_nodes=remaining_size,
        reason=reason,
    )


def log_command_run(
    command: Sequence[str],
    exit_code: int,
    duration_ms: int,
    working_dir: Optional[str] = None,
) -> None:
    """Log one external command invocation."""
    log_data = {
        "command": " ".join(command),
        "exit_code": exit_code,
        "duration_ms": duration_ms,
    }
    if working_dir:
        log_data["working_dir"] = working_dir

    if exit_code != 0:
        _tool_logger.warning("command_failed", **log_data)
    else:
        _tool_logger.debug("command_completed", **log_data)


def set_project_context(
    definition_file: Optional[str] = None, package_manager: Optional[str] = None
) -> None:
    """Set the project context for all loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_project_context(definition_file, package_manager)


def clear_project_context() -> None:
    """Clear the project context of all loggers."""
    for logger in _ALL_LOGGERS:
        logger.clear_project_context()


def configure_logging(log_level: str = "WARNING") -> None:
    """Configure the level of all depforest loggers."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
