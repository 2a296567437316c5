"""
Caller-issued login intents.

Rules:
- Commands are requests submitted by the UI / gateway.
- Commands carry data only (no behavior).
- All coordinator decisions are based on these commands plus
  provider outcome events (see login.events).
Invariant:
    - All concrete SessionCommand subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from models.identity import ExternalToken


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types accepted by SessionCoordinator.submit().

    Stable discriminants used for logging and message decoding.
    """

    START_ANONYMOUS = "START_ANONYMOUS"
    REQUEST_EXTERNAL_TOKEN = "REQUEST_EXTERNAL_TOKEN"
    FEDERATED_LOGIN = "FEDERATED_LOGIN"
    FORCE_RELINK_IF_ALREADY_LINKED = "FORCE_RELINK_IF_ALREADY_LINKED"


# =============================================================================
# Base Command
# =============================================================================

class SessionCommand:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Concrete Commands
# =============================================================================

@dataclass(frozen=True)
class StartAnonymous(SessionCommand):
    """Sign in with a fresh anonymous account."""
    command_type: CommandType = field(default=CommandType.START_ANONYMOUS, init=False)


@dataclass(frozen=True)
class RequestExternalToken(SessionCommand):
    """Ask the UI to start obtaining an identity token out-of-band."""
    command_type: CommandType = field(default=CommandType.REQUEST_EXTERNAL_TOKEN, init=False)


@dataclass(frozen=True)
class FederatedLogin(SessionCommand):
    """Sign in (or link the current account) with an external identity."""
    token: ExternalToken
    command_type: CommandType = field(default=CommandType.FEDERATED_LOGIN, init=False)


@dataclass(frozen=True)
class ForceRelinkIfAlreadyLinked(SessionCommand):
    """
    Retry the last FederatedLogin with force_overwrite=True.

    Only acts right after that login failed with AlreadyLinkedError;
    the previously signed-in account's local data is discarded.
    """
    command_type: CommandType = field(
        default=CommandType.FORCE_RELINK_IF_ALREADY_LINKED, init=False
    )
