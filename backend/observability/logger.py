"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_enabled: bool = True


def configure(*, enable_json_logs: bool) -> None:
    """
    Process-wide logging switch.

    Called once by the app factory from AppConfig.enable_json_logs.
    """
    global _enabled  # pylint: disable=global-statement
    _enabled = enable_json_logs


def describe_exception(exc: BaseException) -> dict[str, str]:
    """Loggable summary of an exception (class name + message)."""
    return {
        "exception": type(exc).__name__,
        "message": str(exc),
    }


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, coordinator_id, state, etc.

    This function:
    - Serializes to JSON
    - Writes exactly one line (nothing when logging is disabled)
    - Flushes immediately
    - Never raises
    """
    if not _enabled:
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback, logging must never crash the coordinator
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
