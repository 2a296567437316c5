"""
Side-effect requests emitted by the login reducer.

Rules:
- Effects are declarative requests for side effects.
- Effects are emitted by the reducer and executed by SessionCoordinator.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Effect subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from models.identity import ExternalToken


class EffectType(str, Enum):
    """Stable discriminants for logging and dispatch."""

    START_ANONYMOUS_AUTH = "START_ANONYMOUS_AUTH"
    START_FEDERATED_AUTH = "START_FEDERATED_AUTH"
    SEED_DEFAULT_TAGS = "SEED_DEFAULT_TAGS"
    LOG_EVENT = "LOG_EVENT"


class Effect:
    """Base effect type."""

    effect_type: EffectType


# =============================================================================
# Authentication
# =============================================================================

@dataclass(frozen=True)
class StartAnonymousAuth(Effect):
    """Invoke the anonymous provider for run_id."""
    run_id: int
    effect_type: EffectType = field(default=EffectType.START_ANONYMOUS_AUTH, init=False)


@dataclass(frozen=True)
class StartFederatedAuth(Effect):
    """Invoke the federated provider with (token, force_overwrite) for run_id."""
    run_id: int
    token: ExternalToken
    force_overwrite: bool
    effect_type: EffectType = field(default=EffectType.START_FEDERATED_AUTH, init=False)


# =============================================================================
# Seeding
# =============================================================================

@dataclass(frozen=True)
class SeedDefaultTags(Effect):
    """
    Best-effort default tag creation after run_id authenticated.

    Executed as a detached task; its outcome never feeds back into state.
    """
    run_id: int
    effect_type: EffectType = field(default=EffectType.SEED_DEFAULT_TAGS, init=False)


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Effect):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    effect_type: EffectType = field(default=EffectType.LOG_EVENT, init=False)
