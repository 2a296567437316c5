"""
Authoritative coordinator state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from login.states import IDLE, SessionState
from models.identity import ExternalToken


@dataclass(frozen=True)
class CoordinatorState:
    """Immutable snapshot of all coordinator-owned state."""

    # ------------------------------------------------------------------
    # Public state (broadcast to observers)
    # ------------------------------------------------------------------
    session_state: SessionState = field(default=IDLE)

    # ------------------------------------------------------------------
    # Run/version tracking
    # ------------------------------------------------------------------
    # Generation of the most recently started attempt. 0 = none started.
    # Bumped on every transition that starts or abandons an attempt;
    # outcomes carrying any other run_id are stale.
    auth_run_id: int = 0

    # ------------------------------------------------------------------
    # Relink bookkeeping (private, never broadcast)
    # ------------------------------------------------------------------
    # Token of the latest FederatedLogin. Cleared once it can no longer be
    # used by ForceRelinkIfAlreadyLinked.
    last_federated_token: ExternalToken | None = None
