"""
Collaborator contracts consumed by SessionCoordinator.

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero login logic
- Zero state mutation
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from models.identity import ExternalToken
from models.tags import Tag, TagTemplate


# ---------------------------------------------------------------------
# Auth providers
# ---------------------------------------------------------------------

@runtime_checkable
class AnonymousAuthProvider(Protocol):
    """Signs in with a new anonymous account. Raises on failure."""

    async def __call__(self) -> None: ...


@runtime_checkable
class FederatedAuthProvider(Protocol):
    """
    Signs in / links with an external identity.

    Contract:
    - Raises AlreadyLinkedError when the identity belongs to a different
      account and force_overwrite is False.
    - With force_overwrite=True switches to the linked account, discarding
      the current account's local data.
    """

    async def __call__(self, token: ExternalToken, force_overwrite: bool) -> None: ...


# ---------------------------------------------------------------------
# Data sources / writers
# ---------------------------------------------------------------------

@runtime_checkable
class TagsSource(Protocol):
    """Current account's tags. Read once per seeding attempt."""

    async def read(self) -> Sequence[Tag]: ...


@runtime_checkable
class TagTemplatesSource(Protocol):
    """Fixed template set of tags for new accounts."""

    async def read(self) -> Sequence[TagTemplate]: ...


@runtime_checkable
class TagWriter(Protocol):
    """
    Fire-and-forget tag creation.

    May return None or an awaitable, and may raise; the coordinator
    absorbs every failure.
    """

    def write(self, templates: list[TagTemplate]) -> Any: ...
