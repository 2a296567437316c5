"""
Login session container.

- Owns the per-connection SessionCoordinator and signed-in user
- Owns connection status (mutable, gateway-controlled)
- Owned and mutated by LoginGateway
- NOT a state machine
- Contains no login logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from adapters.memory import LocalAuthSession
from login.coordinator import SessionCoordinator
from session.connection_status import ConnectionStatus


@dataclass
class LoginSession:
    """Mutable runtime container for one connection's login session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Connection / gateway-controlled state
    # ------------------------------------------------------------------

    connection_status: ConnectionStatus = ConnectionStatus.DOWN

    # ------------------------------------------------------------------
    # Login (attached by LoginGateway during bootstrap)
    # ------------------------------------------------------------------

    auth: LocalAuthSession | None = None
    coordinator: SessionCoordinator | None = None

    def attach_auth(self, auth: LocalAuthSession) -> None:
        """Attach the signed-in user backing the auth providers."""
        self.auth = auth

    def attach_coordinator(self, coordinator: SessionCoordinator) -> None:
        """
        Attach the login coordinator.

        Must be called after attach_auth().
        """
        self.coordinator = coordinator

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "connection_status": self.connection_status.value,
            "coordinator_id": self.coordinator.coordinator_id if self.coordinator else None,
            "account_id": self.auth.account_id if self.auth else None,
        }
