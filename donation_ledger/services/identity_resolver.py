"""
Identity resolver — maps untrusted payer hints to an account.

Payment providers tell us very different things about the payer:
the card processors echo back the account id we put in checkout
metadata, while the tip jar only knows a display name, an email
and whatever the payer typed into the message box. Strategies are
tried in a fixed order and the first match wins:

1. Exact account id (only if the account exists)
2. First word of the message, as an in-game handle then a username
3. First word of the display name, same rules
4. Exact email
5. Exact in-game handle

A hint that matches nothing is not an error; resolution falls
through to the next strategy and finally to "guest".
"""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from donation_ledger.models.account import Account

logger = logging.getLogger(__name__)

# Minecraft username rules: 3-16 chars, letters, digits, underscore
HANDLE_PATTERN = re.compile(r"[A-Za-z0-9_]{3,16}")


@dataclass(frozen=True)
class IdentityHints:
    account_id: int | None = None
    message: str | None = None
    display_name: str | None = None
    email: str | None = None
    minecraft_username: str | None = None

    @classmethod
    def from_event(cls, event) -> "IdentityHints":
        return cls(
            account_id=event.account_id,
            message=event.message,
            display_name=event.display_name,
            email=event.email,
            minecraft_username=event.minecraft_username,
        )


@dataclass(frozen=True)
class Resolution:
    account: Account | None = None
    matched_by: str | None = None

    @property
    def account_id(self) -> int | None:
        return self.account.id if self.account is not None else None

    @property
    def is_guest(self) -> bool:
        return self.account is None


def extract_handle(text: str | None) -> str | None:
    """Return the first word of text if it looks like a username."""
    if not text:
        return None
    words = text.split()
    if not words:
        return None
    token = words[0]
    return token if HANDLE_PATTERN.fullmatch(token) else None


class IdentityResolver:

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, hints: IdentityHints) -> Resolution:
        strategies = (
            ("account_id", self._by_account_id, hints.account_id),
            ("message", self._by_free_text, hints.message),
            ("display_name", self._by_free_text, hints.display_name),
            ("email", self._by_email, hints.email),
            ("minecraft_username", self._by_handle, hints.minecraft_username),
        )
        for name, strategy, value in strategies:
            if value is None or value == "":
                continue
            account = strategy(value)
            if account is not None:
                logger.info("Resolved payer to account %d by %s", account.id, name)
                return Resolution(account=account, matched_by=name)

        logger.info("No account matched payer hints; recording as guest")
        return Resolution()

    def _by_account_id(self, account_id: int) -> Account | None:
        return self.db.get(Account, account_id)

    def _by_free_text(self, text: str) -> Account | None:
        token = extract_handle(text)
        if token is None:
            return None
        return self._by_handle(token) or self._first(Account.username == token)

    def _by_email(self, email: str) -> Account | None:
        email = email.strip()
        if not email:
            return None
        return self._first(Account.email == email)

    def _by_handle(self, handle: str) -> Account | None:
        return self._first(Account.minecraft_username == handle.strip())

    def _first(self, condition) -> Account | None:
        return self.db.execute(
            select(Account).where(condition).order_by(Account.id).limit(1)
        ).scalar_one_or_none()
