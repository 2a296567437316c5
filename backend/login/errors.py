"""
Authentication error taxonomy.

- AuthFailure: any failure reported by an auth provider.
- AlreadyLinkedError: the external identity belongs to a different account.

Providers may raise other exception types too; the coordinator surfaces
whatever was raised as the Failed state's cause. Seeding failures have no
type of their own: they never leave the coordinator.
"""

from __future__ import annotations


class AuthFailure(Exception):
    """Base class for authentication provider failures."""


class AlreadyLinkedError(AuthFailure):
    """
    Raised by the federated provider when the identity is already linked
    to a different account and force_overwrite was False.

    The only failure that enables ForceRelinkIfAlreadyLinked.
    """

    def __init__(self, message: str = "identity already linked", *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
