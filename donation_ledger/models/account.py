"""
Platform account model.

Accounts are owned by the wider community platform (sign-up,
profiles, sessions). The donation core only reads them to
resolve payers and writes the entitlement fields: current rank,
rank expiration, mirrored Discord role, lifetime total and
subscription status. Accounts are never deleted here.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Numeric, ForeignKey,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from donation_ledger.models.base import Base
from donation_ledger.models.enums import SubscriptionStatus


class Account(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    email: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    minecraft_username: Mapped[str | None] = mapped_column(
        String(16), nullable=True, index=True
    )
    discord_user_id: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )

    # Entitlement, written only by the donation services
    donation_rank_id: Mapped[str | None] = mapped_column(
        ForeignKey("donation_ranks.id"), nullable=True, index=True
    )
    rank_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None, index=True
    )
    discord_role_id: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )
    total_donated: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    subscription_status: Mapped[SubscriptionStatus | None] = mapped_column(
        SAEnum(
            SubscriptionStatus,
            name="subscription_status_enum",
            create_constraint=True,
        ),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def has_active_rank(self, now: datetime) -> bool:
        """True when a rank is assigned and has not yet expired."""
        return (
            self.donation_rank_id is not None
            and self.rank_expires_at is not None
            and self.rank_expires_at > now
        )

    @property
    def display_name(self) -> str:
        return self.minecraft_username or self.username

    def __repr__(self) -> str:
        return f"<Account {self.id} {self.username} rank={self.donation_rank_id}>"
