"""
Provider outcome events.

Rules:
- Events describe facts that have occurred (an auth call resolved).
- Events carry data only (no behavior).
- Every event carries the run_id of the attempt that produced it;
  the reducer MUST ignore events whose run_id is not the current run.
"""

from __future__ import annotations

from dataclasses import dataclass

from login.enums.provider import AuthProvider


@dataclass(frozen=True)
class ProviderEvent:
    """Base class for auth provider outcomes."""

    provider: AuthProvider
    run_id: int


@dataclass(frozen=True)
class AuthSucceeded(ProviderEvent):
    """The provider call for run_id completed."""


@dataclass(frozen=True)
class AuthFailed(ProviderEvent):
    """The provider call for run_id raised `cause`."""
    cause: BaseException
