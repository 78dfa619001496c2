"""
Pydantic schemas for ledger reads and status changes.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from donation_ledger.models.enums import (
    DonationStatus,
    PaymentKind,
    PaymentProvider,
)


class LedgerEntryResponse(BaseModel):
    id: int
    account_id: int | None
    provider: PaymentProvider
    transaction_id: str
    amount: Decimal
    currency: str
    status: DonationStatus
    payment_kind: PaymentKind
    rank_tier_id: str | None
    days: int | None
    note: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerStatusUpdate(BaseModel):
    """Request to move a ledger entry to a new status (e.g. refund)."""
    new_status: DonationStatus
    reason: str = Field(min_length=1, max_length=255)
