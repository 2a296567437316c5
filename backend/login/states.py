"""
Public session state values.

Rules:
- States are immutable value objects, the only values emitted to observers.
- `kind` is an explicit discriminant; never infer it from Python type identity.
- Failed carries the provider's exception verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from login.enums.state import StateKind
from login.errors import AlreadyLinkedError


# =============================================================================
# Base State
# =============================================================================

@dataclass(frozen=True)
class SessionState:
    """Base session state."""

    kind: StateKind

    @property
    def is_authenticating(self) -> bool:
        return self.kind in (
            StateKind.AUTHENTICATING_ANONYMOUSLY,
            StateKind.AUTHENTICATING_WITH_FEDERATED_IDENTITY,
        )


# =============================================================================
# Concrete States
# =============================================================================

@dataclass(frozen=True)
class Idle(SessionState):
    """No login in progress. Initial state of every coordinator."""
    kind: StateKind = field(default=StateKind.IDLE, init=False)


@dataclass(frozen=True)
class WaitingForExternalToken(SessionState):
    """Client must obtain an identity token and submit FederatedLogin."""
    kind: StateKind = field(default=StateKind.WAITING_FOR_EXTERNAL_TOKEN, init=False)


@dataclass(frozen=True)
class AuthenticatingAnonymously(SessionState):
    kind: StateKind = field(default=StateKind.AUTHENTICATING_ANONYMOUSLY, init=False)


@dataclass(frozen=True)
class AuthenticatingWithFederatedIdentity(SessionState):
    kind: StateKind = field(
        default=StateKind.AUTHENTICATING_WITH_FEDERATED_IDENTITY, init=False
    )


@dataclass(frozen=True)
class Authenticated(SessionState):
    """Login cycle succeeded."""
    kind: StateKind = field(default=StateKind.AUTHENTICATED, init=False)


@dataclass(frozen=True)
class Failed(SessionState):
    """
    Login attempt failed.

    Two Failed values are equal only when they carry the same cause object
    (exceptions compare by identity).
    """
    cause: BaseException
    kind: StateKind = field(default=StateKind.FAILED, init=False)

    @property
    def already_linked(self) -> bool:
        return isinstance(self.cause, AlreadyLinkedError)


IDLE = Idle()
