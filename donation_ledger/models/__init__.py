"""
Database models package.

All models must be imported here so that Base.metadata knows
every table before create_all() runs.
"""

from donation_ledger.models.base import Base
from donation_ledger.models.enums import (
    PaymentProvider,
    PaymentKind,
    DonationStatus,
    SubscriptionStatus,
)
from donation_ledger.models.audit_log import AuditLog
from donation_ledger.models.rank_tier import RankTier
from donation_ledger.models.account import Account
from donation_ledger.models.ledger_entry import LedgerEntry

__all__ = [
    "Base",
    "PaymentProvider",
    "PaymentKind",
    "DonationStatus",
    "SubscriptionStatus",
    "AuditLog",
    "RankTier",
    "Account",
    "LedgerEntry",
]
