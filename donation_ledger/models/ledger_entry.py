"""
Ledger entry model.

Each entry records one accepted payment. Entries are
immutable — once written, only their status may change,
and only through an explicit external event such as a
refund. The (provider, transaction_id) pair is unique:
it is the idempotency key for webhook deliveries.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Integer, DateTime, Numeric, ForeignKey, Text,
    Enum as SAEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from donation_ledger.models.base import Base
from donation_ledger.models.enums import (
    DonationStatus,
    PaymentKind,
    PaymentProvider,
)


# Valid status transitions, the source of truth for the state machine
VALID_TRANSITIONS: dict[DonationStatus, set[DonationStatus]] = {
    DonationStatus.COMPLETED: {DonationStatus.REFUNDED},
    DonationStatus.REFUNDED: set(),  # Terminal state
    DonationStatus.FAILED: set(),    # Terminal state
}


class LedgerEntry(Base):
    """
    An immutable record of one payment.

    account_id is NULL for guest payers. rank_tier_id and days
    record what the payment bought, whether or not an account
    could be found to receive it.
    """

    __tablename__ = "donations"
    __table_args__ = (
        UniqueConstraint(
            "provider", "transaction_id",
            name="uq_donations_provider_transaction",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    provider: Mapped[PaymentProvider] = mapped_column(
        SAEnum(PaymentProvider, name="payment_provider_enum"),
        nullable=False,
    )
    transaction_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False
    )
    status: Mapped[DonationStatus] = mapped_column(
        SAEnum(
            DonationStatus,
            name="donation_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=DonationStatus.COMPLETED,
    )
    payment_kind: Mapped[PaymentKind] = mapped_column(
        SAEnum(PaymentKind, name="payment_kind_enum"),
        nullable=False,
        default=PaymentKind.ONE_TIME,
    )
    rank_tier_id: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )
    days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minecraft_username: Mapped[str | None] = mapped_column(
        String(16), nullable=True
    )
    subscription_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def can_transition_to(self, new_status: DonationStatus) -> bool:
        """Check if a status transition is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.provider.value}:{self.transaction_id} "
            f"{self.amount} {self.currency} ({self.status.value})>"
        )
