"""
Query errors, and error logging utilities for the tagsearch CLI.

Query errors are structural (lex/parse) or semantic (valid syntax, invalid
meaning). All carry a source offset so callers can point at the problem.
The evaluator never sees a tree that failed here.

log_exception logs full stack traces for debugging while the CLI shows
clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class QueryError(ValueError):
    """Base class for errors in a typed query. Recoverable by re-prompting."""

    def __init__(self, message: str, position: int = 0):
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self) -> str:
        return f"{self.message} at position {self.position}"


class LexError(QueryError):
    """Unterminated literal or unrecognized character."""


class ParseError(QueryError):
    """Structurally invalid query: unbalanced parens, missing operand, etc."""


class SemanticError(QueryError):
    """
    Structurally valid query with an invalid clause.

    Unknown field, operator not allowed for the field, malformed size or
    date literal, unknown type category.
    """

    def __init__(self, reason: str, clause: str, position: int = 0):
        super().__init__(f"{reason} in clause '{clause}'", position)
        self.reason = reason
        self.clause = clause


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """Resolve error log path, respecting TAGSEARCH_STORE_PATH."""
    if store_path is not None:
        return Path(store_path) / "tagsearch-errors.log"
    store = os.environ.get("TAGSEARCH_STORE_PATH")
    if store:
        return Path(store) / "tagsearch-errors.log"
    return Path.home() / ".tagsearch" / "tagsearch-errors.log"


def log_exception(exc: Exception, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory; defaults to the environment/home store

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}] {type(exc).__name__}")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
