"""
Session state discriminants.

Rules:
- This enum defines ONLY the kinds of public session state.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class StateKind(str, Enum):
    """
    Login progress as seen by observers.

    These kinds represent login intent and outcome, NOT connection status
    and NOT provider lifecycles.
    """

    IDLE = "IDLE"
    WAITING_FOR_EXTERNAL_TOKEN = "WAITING_FOR_EXTERNAL_TOKEN"
    AUTHENTICATING_ANONYMOUSLY = "AUTHENTICATING_ANONYMOUSLY"
    AUTHENTICATING_WITH_FEDERATED_IDENTITY = "AUTHENTICATING_WITH_FEDERATED_IDENTITY"
    AUTHENTICATED = "AUTHENTICATED"
    FAILED = "FAILED"
