"""
Audit log model.

Records entitlement and ledger changes that happen outside the
normal payment path: refunds, rank conversions, subscription
status changes and expiry sweeps. Operators use it to explain
why an account's rank differs from what its donations bought.
"""

from datetime import datetime

from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from donation_ledger.models.base import Base


class AuditLog(Base):
    """
    Immutable record of a system event.

    Like ledger entries, audit logs are append-only.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    account_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
