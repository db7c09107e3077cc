# veritas/tools/logger.py
import os
import sys
from datetime import datetime

LEVELS = {"DEBUG": 0, "INFO": 1, "WARNING": 2, "ERROR": 3}


def should_log(level: str) -> bool:
    """Check if we should log at the given level based on VERITAS_LOG_LEVEL env var."""
    current_level = os.environ.get("VERITAS_LOG_LEVEL", "INFO").upper()
    return LEVELS.get(level, 1) >= LEVELS.get(current_level, 1)


def log(level: str, msg: str) -> None:
    """
    Level-gated diagnostic line on stderr:
      [2025-01-01 12:00:00] WARNING: message
    """
    if not should_log(level):
        return
    ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{ts}] {level}: {msg}", file=sys.stderr)


def set_level_from_flags(verbose: bool = False, quiet: bool = False) -> None:
    if verbose:
        os.environ["VERITAS_LOG_LEVEL"] = "DEBUG"
    elif quiet:
        os.environ["VERITAS_LOG_LEVEL"] = "WARNING"
    else:
        os.environ.setdefault("VERITAS_LOG_LEVEL", "INFO")
