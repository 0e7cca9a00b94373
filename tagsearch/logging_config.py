"""
Logging configuration for tagsearch.

Quiet by default; --verbose or TAGSEARCH_VERBOSE=1 turns on debug output.
"""

import logging
import sys
import threading
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "tagsearch-ops.log"


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    # Re-enable warnings
    warnings.filterwarnings("default")

    # Configure root logger for debug output
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("tagsearch").setLevel(logging.DEBUG)


# Open handlers by resolved log path, with the number of owners of each
_ops_handlers: dict[Path, list] = {}
_ops_lock = threading.Lock()


def configure_ops_log(store_path, level: int = logging.INFO):
    """Attach the operations log for a store to the "tagsearch" logger.

    Records go to {store_path}/tagsearch-ops.log, rotated at 1 MB with 3
    backups, whatever --verbose says. Each line names the thread, so
    searches run by a SearchSession (threads "tagsearch_N") can be told
    apart from foreground ones.

    Several TagSearch instances on one store share a single handler, so
    lines are not duplicated; the handler is closed when the last owner
    calls remove_ops_log(). Returns the handler.
    """
    log_path = (Path(store_path) / OPS_LOG_FILENAME).resolve()
    package_logger = logging.getLogger("tagsearch")

    with _ops_lock:
        entry = _ops_handlers.get(log_path)
        if entry is not None:
            entry[1] += 1
            handler = entry[0]
        else:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(str(log_path), maxBytes=1_000_000, backupCount=3)
            handler.setFormatter(logging.Formatter(
                "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ))
            _ops_handlers[log_path] = [handler, 1]
            package_logger.addHandler(handler)
        # The most verbose request wins
        if handler.level == logging.NOTSET or level < handler.level:
            handler.setLevel(level)

    if package_logger.level == logging.NOTSET or package_logger.level > handler.level:
        package_logger.setLevel(handler.level)
    return handler


def remove_ops_log(handler) -> None:
    """Release a handler from configure_ops_log(); closed with its last owner."""
    if handler is None:
        return
    with _ops_lock:
        for log_path, entry in list(_ops_handlers.items()):
            if entry[0] is handler:
                entry[1] -= 1
                if entry[1] > 0:
                    return
                del _ops_handlers[log_path]
                break
    logging.getLogger("tagsearch").removeHandler(handler)
    handler.close()
