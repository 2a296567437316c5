"""
Best-effort default tag seeding.

Runs after a successful login. Creates the default tag set when the account
has no tags yet. Never raises: every failure is logged and absorbed here.
"""

from __future__ import annotations

import inspect
import time
from enum import Enum

from login.collaborators import TagTemplatesSource, TagsSource, TagWriter
from observability.logger import describe_exception, log_event


class SeedOutcome(str, Enum):
    SEEDED = "SEEDED"
    SKIPPED_EXISTING = "SKIPPED_EXISTING"
    SKIPPED_READ_ERROR = "SKIPPED_READ_ERROR"
    FAILED = "FAILED"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _log(coordinator_id: str | None, run_id: int, outcome: SeedOutcome, **details: object) -> None:
    log_event({
        "ts_ms": _now_ms(),
        "event_type": "SEED_DEFAULT_TAGS",
        "coordinator_id": coordinator_id,
        "run_id": run_id,
        "outcome": outcome.value,
        "details": details,
    })


async def seed_default_tags(
    *,
    existing_tags: TagsSource,
    default_tags: TagTemplatesSource,
    tag_writer: TagWriter,
    coordinator_id: str | None = None,
    run_id: int = 0,
) -> SeedOutcome:
    """
    Seed default tags if the signed-in account has none.

    Steps:
    1. Read existing tags once; stop on error or when any exist.
    2. Read the template set once and pass it to tag_writer.write().
       An awaitable returned by the writer is awaited.
    """
    try:
        existing = await existing_tags.read()
    except Exception as exc:  # pylint: disable=broad-exception-caught
        _log(coordinator_id, run_id, SeedOutcome.SKIPPED_READ_ERROR, **describe_exception(exc))
        return SeedOutcome.SKIPPED_READ_ERROR

    if existing:
        _log(coordinator_id, run_id, SeedOutcome.SKIPPED_EXISTING, existing=len(existing))
        return SeedOutcome.SKIPPED_EXISTING

    try:
        templates = list(await default_tags.read())
        result = tag_writer.write(templates)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:  # pylint: disable=broad-exception-caught
        _log(coordinator_id, run_id, SeedOutcome.FAILED, **describe_exception(exc))
        return SeedOutcome.FAILED

    _log(coordinator_id, run_id, SeedOutcome.SEEDED, created=len(templates))
    return SeedOutcome.SEEDED
