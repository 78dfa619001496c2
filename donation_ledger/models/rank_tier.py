"""
Rank tier model (the donation rank catalog).

Each tier has a minimum qualifying price and the number of
days that price buys. The ratio of the two is the tier's
price per day, used for amount matching and for converting
remaining time between tiers.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from donation_ledger.models.base import Base


class RankTier(Base):
    """
    A named membership level.

    The id is a stable lowercase slug ("supporter", "patron").
    Providers that let the payer pick a tier send this id back
    to us in their payment metadata.
    """

    __tablename__ = "donation_ranks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False
    )
    duration_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=30
    )
    discord_role_id: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<RankTier {self.id} {self.min_amount}/{self.duration_days}d>"
