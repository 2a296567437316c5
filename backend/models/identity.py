"""
External identity token.

The token is an opaque credential obtained out-of-band by the client
(e.g. a federated sign-in flow). It is never logged in full.
"""

from __future__ import annotations

from dataclasses import dataclass

from constants import TOKEN_PREVIEW_CHARS


@dataclass(frozen=True)
class ExternalToken:
    """Opaque identity token. repr() shows only a short prefix."""
    value: str

    def preview(self) -> str:
        return self.value[:TOKEN_PREVIEW_CHARS] + "…"

    def __repr__(self) -> str:
        return f"ExternalToken({self.preview()!r})"
