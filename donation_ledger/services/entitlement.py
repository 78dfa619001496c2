"""
Rank entitlement — how payments turn into rank time.

The calculations are pure functions of the account's current
state, the tier catalog and the clock:

- grant(): same rank still active → time stacks on the current
  expiry; anything else → the new rank starts now. The lifetime
  total always grows by the amount paid.
- derive_days(): days bought by an amount when the provider did
  not pre-select a tier.
- convert(): move the remaining value of the current rank to a
  different tier, priced per day.

EntitlementService persists the results for the operations that
happen outside the payment path: explicit tier changes,
subscription status changes and the expiry sweep.
"""

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from donation_ledger.config import get_settings
from donation_ledger.models.account import Account
from donation_ledger.models.audit_log import AuditLog
from donation_ledger.models.enums import SubscriptionStatus
from donation_ledger.services.notifications import NotificationSink
from donation_ledger.services.outbox import Outbox, OutboxDispatcher
from donation_ledger.services.rank_catalog import RankCatalog, RankTierInfo

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)

# Bounds for days derived from an amount
MIN_MATCHED_DAYS = 7
MAX_MATCHED_DAYS = 365


@dataclass(frozen=True)
class Grant:
    """New entitlement state for an account after a payment."""
    applied: bool
    rank_tier_id: str | None
    expires_at: datetime | None
    total_donated: Decimal
    previous_rank_id: str | None = None
    extended: bool = False

    @property
    def rank_changed(self) -> bool:
        return self.applied and self.rank_tier_id != self.previous_rank_id


@dataclass(frozen=True)
class Conversion:
    rank_tier_id: str
    remaining_days: int
    converted_days: int
    expires_at: datetime
    previous_rank_id: str | None = None


def remaining_days(expires_at: datetime | None, now: datetime) -> int:
    """Whole days left before expires_at, rounded up; 0 if past."""
    if expires_at is None or expires_at <= now:
        return 0
    return math.ceil((expires_at - now) / DAY)


def grant(
    account: Account,
    rank_tier_id: str | None,
    days: int,
    amount: Decimal = Decimal("0"),
    now: datetime | None = None,
) -> Grant:
    """
    Compute the account's entitlement after paying for days of a rank.

    Does not modify the account. A payment without a tier, or for
    zero days, only adds to the lifetime total.
    """
    now = now or datetime.utcnow()
    total = (account.total_donated or Decimal("0")) + amount
    current_rank = account.donation_rank_id

    if not rank_tier_id or days <= 0:
        return Grant(
            applied=False,
            rank_tier_id=current_rank,
            expires_at=account.rank_expires_at,
            total_donated=total,
            previous_rank_id=current_rank,
        )

    if current_rank == rank_tier_id and account.has_active_rank(now):
        return Grant(
            applied=True,
            rank_tier_id=rank_tier_id,
            expires_at=account.rank_expires_at + timedelta(days=days),
            total_donated=total,
            previous_rank_id=current_rank,
            extended=True,
        )

    return Grant(
        applied=True,
        rank_tier_id=rank_tier_id,
        expires_at=now + timedelta(days=days),
        total_donated=total,
        previous_rank_id=current_rank,
    )


def derive_days(amount: Decimal, tier: RankTierInfo) -> int:
    """
    Days of a tier bought by an amount, clamped to [7, 365].

    The tier's minimum price buys its base duration; any amount
    buys a proportional number of whole days.
    """
    if tier.min_amount > 0 and tier.duration_days > 0:
        days = int(amount * tier.duration_days // tier.min_amount)
    else:
        days = tier.duration_days
    return max(MIN_MATCHED_DAYS, min(MAX_MATCHED_DAYS, days))


def convert(
    account: Account,
    current_tier: RankTierInfo | None,
    new_tier: RankTierInfo,
    now: datetime | None = None,
) -> Conversion:
    """
    Move the remaining value of the account's rank onto new_tier.

    remaining days × old price per day ÷ new price per day, floored.
    When either price is unknown or the new tier is free, remaining
    days carry over one to one. Zero converted days is a valid
    result: the new rank is assigned and expires immediately.
    """
    now = now or datetime.utcnow()
    remaining = 0
    if account.donation_rank_id:
        remaining = remaining_days(account.rank_expires_at, now)

    converted = remaining
    if remaining and current_tier is not None:
        old_rate = current_tier.price_per_day
        new_rate = new_tier.price_per_day
        if old_rate is not None and new_rate:
            # Same ratio as old_rate / new_rate, without rounding the rates
            value = remaining * current_tier.min_amount * new_tier.duration_days
            converted = int(
                value // (current_tier.duration_days * new_tier.min_amount)
            )

    converted = max(converted, 0)
    return Conversion(
        rank_tier_id=new_tier.id,
        remaining_days=remaining,
        converted_days=converted,
        expires_at=now + timedelta(days=converted),
        previous_rank_id=account.donation_rank_id,
    )


class EntitlementService:
    """
    Entitlement changes that happen outside the payment path.

    Unlike the read-only services, these methods commit: their
    role-sync side effects must only run once the change is
    durable.
    """

    def __init__(
        self,
        db: Session,
        catalog: RankCatalog,
        notifier: NotificationSink | None = None,
        dispatcher: OutboxDispatcher | None = None,
    ):
        self.db = db
        self.catalog = catalog
        self.notifier = notifier
        self.dispatcher = dispatcher or OutboxDispatcher()

    def _get_account(self, account_id: int) -> Account:
        account = self.db.get(Account, account_id)
        if not account:
            raise ValueError(f"Account {account_id} not found")
        return account

    def _audit(self, event_type: str, account_id: int | None, **details) -> None:
        self.db.add(AuditLog(
            event_type=event_type,
            account_id=account_id,
            details=json.dumps(details, default=str),
        ))

    def _queue_role_sync(
        self,
        outbox: Outbox,
        account: Account,
        add_role_id: str | None,
        remove_role_id: str | None,
    ) -> None:
        if self.notifier is None or not account.discord_user_id:
            return
        if add_role_id == remove_role_id:
            return
        outbox.add(
            "role_sync",
            self.notifier.sync_roles,
            account.discord_user_id,
            add_role_id=add_role_id,
            remove_role_id=remove_role_id,
        )

    def rank_status(self, account_id: int, now: datetime | None = None) -> dict:
        """Current rank, expiry and whole days remaining for an account."""
        now = now or datetime.utcnow()
        account = self._get_account(account_id)
        active = account.has_active_rank(now)
        return {
            "account_id": account.id,
            "has_rank": active,
            "rank_tier_id": account.donation_rank_id if active else None,
            "expires_at": account.rank_expires_at if active else None,
            "days_remaining": remaining_days(account.rank_expires_at, now) if active else 0,
            "subscription_status": account.subscription_status,
        }

    def convert_rank(
        self, account_id: int, new_tier_id: str, now: datetime | None = None
    ) -> Conversion:
        """
        Switch an account to a different tier, converting remaining time.

        Raises ValueError if the account or the target tier does
        not exist.
        """
        now = now or datetime.utcnow()
        account = self._get_account(account_id)
        new_tier = self.catalog.find_by_id(new_tier_id)
        if new_tier is None:
            raise ValueError(f"Rank tier '{new_tier_id}' not found")

        current_tier = self.catalog.find_by_id(account.donation_rank_id)
        result = convert(account, current_tier, new_tier, now)
        old_role_id = account.discord_role_id

        account.donation_rank_id = result.rank_tier_id
        account.rank_expires_at = result.expires_at
        account.discord_role_id = new_tier.discord_role_id
        self._audit(
            "rank_converted",
            account.id,
            from_rank=result.previous_rank_id,
            to_rank=result.rank_tier_id,
            remaining_days=result.remaining_days,
            converted_days=result.converted_days,
        )

        outbox = Outbox()
        self._queue_role_sync(outbox, account, new_tier.discord_role_id, old_role_id)
        self.db.commit()
        self.dispatcher.dispatch(outbox)

        logger.info(
            "Converted account %d from %s to %s: %d remaining → %d days",
            account_id, result.previous_rank_id, result.rank_tier_id,
            result.remaining_days, result.converted_days,
        )
        return result

    def set_subscription_status(
        self,
        account_id: int,
        status: SubscriptionStatus,
        revoke_rank: bool = False,
    ) -> Account:
        """
        Record a provider subscription lifecycle change.

        revoke_rank removes the rank right away (immediate
        cancellation); otherwise the rank runs until it expires.
        """
        account = self._get_account(account_id)
        old_status = account.subscription_status
        account.subscription_status = status

        outbox = Outbox()
        if revoke_rank and account.donation_rank_id:
            self._queue_role_sync(outbox, account, None, account.discord_role_id)
            account.donation_rank_id = None
            account.rank_expires_at = None
            account.discord_role_id = None

        self._audit(
            "subscription_status_changed",
            account.id,
            old_status=old_status.value if old_status else None,
            new_status=status.value,
            rank_revoked=revoke_rank,
        )
        self.db.commit()
        self.dispatcher.dispatch(outbox)
        return account

    def expire_ranks(
        self, now: datetime | None = None, limit: int | None = None
    ) -> dict:
        """
        Remove ranks whose expiry has passed.

        Processes at most `limit` accounts per call; run it
        periodically (hourly is plenty).
        """
        now = now or datetime.utcnow()
        limit = limit or get_settings().RANK_EXPIRY_BATCH_SIZE

        expired = self.db.execute(
            select(Account)
            .where(
                Account.donation_rank_id.is_not(None),
                Account.rank_expires_at.is_not(None),
                Account.rank_expires_at < now,
            )
            .order_by(Account.rank_expires_at)
            .limit(limit)
        ).scalars().all()

        outbox = Outbox()
        removed: list[int] = []
        for account in expired:
            self._queue_role_sync(outbox, account, None, account.discord_role_id)
            self._audit(
                "rank_expired",
                account.id,
                rank=account.donation_rank_id,
                expired_at=account.rank_expires_at,
            )
            account.donation_rank_id = None
            account.rank_expires_at = None
            account.discord_role_id = None
            removed.append(account.id)

        self.db.commit()
        self.dispatcher.dispatch(outbox)

        if removed:
            logger.info("Removed %d expired ranks", len(removed))
        return {"removed": len(removed), "accounts": removed}
