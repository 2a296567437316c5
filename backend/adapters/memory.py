"""
In-memory account backend.

Stands in for the hosted auth + document store in development and tests.

Role in the system:
- LocalAccounts: process-wide registry (accounts, identity links, tags)
- LocalAuthSession: one signed-in user per connection; implements both
  auth provider contracts
- AccountTagsSource / AccountTagWriter: the signed-in account's tags
- StaticTagTemplatesSource: default tags for new accounts

Linking rules:
- Anonymous login always creates a fresh account.
- Federated login without a current account signs into the account linked
  to the identity, creating and linking one for a new identity.
- Federated login from a signed-in account links the identity to it, unless
  the identity already belongs to a different account. Then:
    - force_overwrite=False -> AlreadyLinkedError
    - force_overwrite=True  -> switch to the linked account; the previous
      account and its data are discarded if it was anonymous.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from itertools import count
from typing import Iterable, Sequence

from constants import DEFAULT_TAG_TEMPLATES
from login.errors import AlreadyLinkedError, AuthFailure
from models.identity import ExternalToken
from models.tags import Tag, TagTemplate


def default_tag_templates() -> tuple[TagTemplate, ...]:
    return tuple(
        TagTemplate(title=title, color=color, order=order)
        for order, (title, color) in enumerate(DEFAULT_TAG_TEMPLATES)
    )


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

@dataclass
class Account:
    account_id: str
    anonymous: bool
    tags: list[Tag] = field(default_factory=list)


class LocalAccounts:
    """
    Thread-safe process-local account registry.

    Shared by every connection of one server process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[str, Account] = {}
        self._links: dict[str, str] = {}  # identity token -> account_id
        self._account_seq = count(1)
        self._tag_seq = count(1)

    def create_account(self, *, anonymous: bool) -> str:
        with self._lock:
            account_id = f"acct_{next(self._account_seq)}"
            self._accounts[account_id] = Account(account_id=account_id, anonymous=anonymous)
            return account_id

    def linked_account(self, identity: str) -> str | None:
        with self._lock:
            return self._links.get(identity)

    def link(self, identity: str, account_id: str) -> None:
        with self._lock:
            self._require(account_id)
            self._links[identity] = account_id
            self._accounts[account_id].anonymous = False

    def delete_account(self, account_id: str) -> None:
        with self._lock:
            self._accounts.pop(account_id, None)
            for identity in [i for i, a in self._links.items() if a == account_id]:
                del self._links[identity]

    def has_account(self, account_id: str) -> bool:
        with self._lock:
            return account_id in self._accounts

    def is_anonymous(self, account_id: str) -> bool:
        with self._lock:
            return self._require(account_id).anonymous

    def tags(self, account_id: str) -> list[Tag]:
        with self._lock:
            return list(self._require(account_id).tags)

    def add_tags(self, account_id: str, templates: Iterable[TagTemplate]) -> list[Tag]:
        with self._lock:
            account = self._require(account_id)
            created = [
                Tag(
                    tag_id=f"tag_{next(self._tag_seq)}",
                    title=t.title,
                    color=t.color,
                    order=t.order,
                )
                for t in templates
            ]
            account.tags.extend(created)
            return created

    def _require(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise KeyError(f"Unknown account: {account_id}")
        return account


# ---------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------

class LocalAuthSession:
    """
    Signed-in user for one connection.

    The bound methods `login_anonymously` and `login_with_external_token`
    are the coordinator's anonymous and federated providers.
    """

    def __init__(self, accounts: LocalAccounts) -> None:
        self._accounts = accounts
        self.account_id: str | None = None

    async def login_anonymously(self) -> None:
        await asyncio.sleep(0)
        self.account_id = self._accounts.create_account(anonymous=True)

    async def login_with_external_token(self, token: ExternalToken, force_overwrite: bool) -> None:
        await asyncio.sleep(0)

        if not token.value:
            raise AuthFailure("empty identity token")

        linked = self._accounts.linked_account(token.value)
        current = self.account_id
        if current is not None and not self._accounts.has_account(current):
            current = None

        if current is None:
            if linked is None:
                linked = self._accounts.create_account(anonymous=False)
                self._accounts.link(token.value, linked)
            self.account_id = linked
            return

        if linked is None or linked == current:
            self._accounts.link(token.value, current)
            return

        if not force_overwrite:
            raise AlreadyLinkedError(
                f"identity {token.preview()} is linked to another account"
            )

        if self._accounts.is_anonymous(current):
            self._accounts.delete_account(current)
        self.account_id = linked

    def require_account(self) -> str:
        if self.account_id is None:
            raise AuthFailure("not signed in")
        return self.account_id


# ---------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------

class AccountTagsSource:
    """Tags of the account currently signed in on `session`."""

    def __init__(self, accounts: LocalAccounts, session: LocalAuthSession) -> None:
        self._accounts = accounts
        self._session = session

    async def read(self) -> Sequence[Tag]:
        await asyncio.sleep(0)
        return self._accounts.tags(self._session.require_account())


class AccountTagWriter:
    """Creates tags for the account currently signed in on `session`."""

    def __init__(self, accounts: LocalAccounts, session: LocalAuthSession) -> None:
        self._accounts = accounts
        self._session = session

    def write(self, templates: list[TagTemplate]) -> list[Tag]:
        return self._accounts.add_tags(self._session.require_account(), templates)


class StaticTagTemplatesSource:
    """Fixed template set."""

    def __init__(self, templates: Sequence[TagTemplate]) -> None:
        self._templates = tuple(templates)

    async def read(self) -> Sequence[TagTemplate]:
        return list(self._templates)
