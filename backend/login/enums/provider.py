"""
Authentication provider enumeration.

Rules:
- This enum identifies run-id versioned auth providers only.
- It must NOT encode behavior or lifecycle rules.
"""

from __future__ import annotations

from enum import Enum


class AuthProvider(str, Enum):
    """
    External authentication providers driven by the coordinator.

    Both providers share one run-id sequence: at most one auth attempt,
    of either kind, is current at a time.
    """

    ANONYMOUS = "ANONYMOUS"
    FEDERATED = "FEDERATED"
