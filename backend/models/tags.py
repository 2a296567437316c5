"""
Tag value objects.

Rules:
- Pure data, no behavior.
- Tag is a persisted category tag owned by an account.
- TagTemplate is a tag that has not been created yet (no id).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Tag:
    """Category tag belonging to an account."""
    tag_id: str
    title: str
    color: int
    order: int


@dataclass(frozen=True)
class TagTemplate:
    """Tag to be created; the backend assigns the id."""
    title: str
    color: int
    order: int
