"""
Ledger service — the donation ledger.

This service enforces the ledger rules:
1. One entry per (provider, transaction id), enforced by a
   unique constraint, not just by a read-before-write
2. Entries are immutable apart from explicit status changes
3. Status changes follow the state machine in VALID_TRANSITIONS

The service takes a database session as a constructor
argument. The caller controls the transaction boundary.
"""

import json
import logging
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from donation_ledger.models.audit_log import AuditLog
from donation_ledger.models.enums import DonationStatus, PaymentProvider
from donation_ledger.models.ledger_entry import LedgerEntry
from donation_ledger.schemas.ledger import LedgerStatusUpdate

logger = logging.getLogger(__name__)


class DuplicateTransactionError(Exception):
    """Another writer already recorded this provider transaction."""

    def __init__(self, provider: PaymentProvider, transaction_id: str):
        super().__init__(
            f"Transaction {provider.value}:{transaction_id} already recorded"
        )
        self.provider = provider
        self.transaction_id = transaction_id


class LedgerService:

    def __init__(self, db: Session):
        self.db = db

    def find_by_transaction_id(
        self, provider: PaymentProvider, transaction_id: str
    ) -> LedgerEntry | None:
        """The idempotency check: has this payment been recorded?"""
        return self.db.execute(
            select(LedgerEntry).where(
                LedgerEntry.provider == provider,
                LedgerEntry.transaction_id == transaction_id,
            )
        ).scalar_one_or_none()

    def record(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Insert a new ledger entry and flush it.

        The flush makes the database check the unique constraint
        now, before the caller touches any account. If a
        concurrent delivery got there first, DuplicateTransactionError
        is raised and the caller must roll back its session.
        """
        self.db.add(entry)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise DuplicateTransactionError(
                entry.provider, entry.transaction_id
            ) from e
        return entry

    def get_entry(self, entry_id: int) -> LedgerEntry:
        entry = self.db.get(LedgerEntry, entry_id)
        if not entry:
            raise ValueError(f"Ledger entry {entry_id} not found")
        return entry

    def change_status(
        self, entry_id: int, request: LedgerStatusUpdate
    ) -> LedgerEntry:
        """
        Move an entry to a new status, e.g. a refund.

        Enforces the state machine and writes an audit record.
        Entitlement already granted is left alone; operators
        decide separately whether to revoke it.
        """
        entry = self.get_entry(entry_id)

        if not entry.can_transition_to(request.new_status):
            raise ValueError(
                f"Cannot transition from {entry.status.value} "
                f"to {request.new_status.value}"
            )

        old_status = entry.status
        entry.status = request.new_status
        self.db.add(AuditLog(
            event_type="donation_status_changed",
            account_id=entry.account_id,
            details=json.dumps({
                "ledger_entry_id": entry.id,
                "transaction_id": entry.transaction_id,
                "old_status": old_status.value,
                "new_status": request.new_status.value,
                "reason": request.reason,
            }),
        ))
        self.db.flush()
        logger.info(
            "Ledger entry %d: %s → %s (%s)",
            entry.id, old_status.value, request.new_status.value, request.reason,
        )
        return entry

    def get_entries_by_account(self, account_id: int) -> list[LedgerEntry]:
        """Return all entries for an account, newest first."""
        entries = self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        ).scalars().all()
        return list(entries)

    def get_account_total(self, account_id: int) -> Decimal:
        """
        Sum of completed donations for an account.

        Recomputed from the ledger, so it can be compared against
        the account's running total to spot drift.
        """
        total = self.db.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                LedgerEntry.account_id == account_id,
                LedgerEntry.status == DonationStatus.COMPLETED,
            )
        ).scalar()
        return Decimal(str(total))
