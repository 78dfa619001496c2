"""
Reconciliation service — turns verified payment events into
ledger entries and rank time.

Every provider adapter calls process() with a normalized,
authenticated PaymentEvent. Each step may end the work early:

1. Idempotency: an entry for (provider, transaction id) exists
   → return it, nothing else happens
2. Identity: resolve the payer, or record as guest
3. Tier and days: pre-selected tier if valid; otherwise amount
   matching for tip-jar providers; otherwise no rank
4. Entitlement: computed only for resolved accounts
5. Ledger entry + account update, committed together
6. Side effects (role sync, announcement, operator alert),
   dispatched after the commit and never allowed to fail it

Two deliveries of the same transaction racing each other both
get past step 1; the unique constraint stops the second at
step 5, which then rolls back and answers from the ledger.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from donation_ledger.models.account import Account
from donation_ledger.models.enums import (
    DonationStatus,
    PaymentKind,
    SubscriptionStatus,
)
from donation_ledger.models.ledger_entry import LedgerEntry
from donation_ledger.schemas.payment import PaymentEventBase, ProcessResult
from donation_ledger.services.entitlement import Grant, derive_days, grant
from donation_ledger.services.identity_resolver import (
    IdentityHints,
    IdentityResolver,
    Resolution,
)
from donation_ledger.services.ledger_service import (
    DuplicateTransactionError,
    LedgerService,
)
from donation_ledger.services.notifications import (
    DonationAnnouncement,
    NotificationSink,
)
from donation_ledger.services.outbox import Outbox, OutboxDispatcher
from donation_ledger.services.rank_catalog import RankCatalog, RankTierInfo

logger = logging.getLogger(__name__)

SUBSCRIPTION_KINDS = {PaymentKind.SUBSCRIPTION, PaymentKind.SUBSCRIPTION_RENEWAL}


class MalformedPaymentEvent(ValueError):
    """The event cannot be processed as sent; retrying will not help."""


class LedgerWriteError(RuntimeError):
    """The ledger write failed; nothing was stored and a retry is safe."""


class ReconciliationService:

    def __init__(
        self,
        db: Session,
        catalog: RankCatalog,
        notifier: NotificationSink,
        dispatcher: OutboxDispatcher | None = None,
    ):
        self.db = db
        self.catalog = catalog
        self.notifier = notifier
        self.dispatcher = dispatcher or OutboxDispatcher()
        self.ledger = LedgerService(db)
        self.resolver = IdentityResolver(db)

    @staticmethod
    def _validate(event: PaymentEventBase) -> None:
        # Pydantic already enforces these; models built with
        # model_construct() skip validation, so check again.
        if not event.transaction_id or not event.transaction_id.strip():
            raise MalformedPaymentEvent("transaction_id must not be empty")
        if event.amount is None or event.amount <= 0:
            raise MalformedPaymentEvent(
                f"amount must be positive, got {event.amount}"
            )

    def process(self, event: PaymentEventBase) -> ProcessResult:
        self._validate(event)
        provider = event.provider_kind
        logger.info(
            "Processing %s %s payment: %s %s (tx: %s)",
            provider.value, event.payment_kind.value,
            event.amount, event.currency, event.transaction_id,
        )

        # --- Step 1: idempotency ---
        existing = self.ledger.find_by_transaction_id(provider, event.transaction_id)
        if existing:
            logger.info("Payment already processed: %s", event.transaction_id)
            return self._duplicate_result(existing)

        # --- Steps 2-4: identity, tier, entitlement ---
        resolution = self.resolver.resolve(IdentityHints.from_event(event))
        tier, days = self._resolve_tier(event)
        account = resolution.account

        outcome: Grant | None = None
        if account is not None:
            outcome = grant(
                account,
                tier.id if tier else None,
                days,
                amount=event.amount,
                now=datetime.utcnow(),
            )
        old_role_id = account.discord_role_id if account else None

        # --- Step 5: ledger entry + account update ---
        entry = LedgerEntry(
            account_id=resolution.account_id,
            provider=provider,
            transaction_id=event.transaction_id,
            amount=event.amount,
            currency=event.currency,
            status=DonationStatus.COMPLETED,
            payment_kind=event.payment_kind,
            rank_tier_id=tier.id if tier else None,
            days=days if days > 0 else None,
            minecraft_username=event.minecraft_username
            or (account.minecraft_username if account else None),
            subscription_id=event.subscription_id,
            note=self._note(event),
        )
        try:
            self.ledger.record(entry)
        except DuplicateTransactionError:
            return self._replay_after_conflict(event)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Ledger insert failed for %s", event.transaction_id)
            raise LedgerWriteError(str(e)) from e

        if account is not None and outcome is not None:
            self._apply(account, outcome, tier, event.payment_kind)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Ledger commit failed for %s", event.transaction_id)
            raise LedgerWriteError(str(e)) from e

        applied = outcome is not None and outcome.applied
        if applied:
            logger.info(
                "Rank %s applied to account %d (expires: %s, %s)",
                outcome.rank_tier_id, account.id, outcome.expires_at.isoformat(),
                "extended" if outcome.extended else "new",
            )
        elif account is not None:
            logger.info("Tip of %s recorded for account %d", event.amount, account.id)

        # --- Step 6: side effects, after the commit ---
        outbox = self._build_outbox(event, resolution, tier, days, outcome, old_role_id)
        self.dispatcher.dispatch(outbox)

        return ProcessResult(
            accepted=True,
            ledger_id=entry.id,
            account_id=resolution.account_id,
            is_guest=resolution.is_guest,
            rank_applied=outcome.rank_tier_id if applied else None,
            days_granted=days if applied else None,
            rank_expires_at=outcome.expires_at if applied else None,
        )

    def _resolve_tier(
        self, event: PaymentEventBase
    ) -> tuple[RankTierInfo | None, int]:
        """Pick the tier and day count this payment buys, if any."""
        if event.rank_tier_id:
            tier = self.catalog.find_by_id(event.rank_tier_id)
            if tier is not None:
                days = event.days if event.days is not None else tier.duration_days
                return tier, days
            logger.warning(
                "Unknown rank tier '%s' on %s payment %s",
                event.rank_tier_id, event.provider, event.transaction_id,
            )

        if event.amount_matched:
            tier = self.catalog.find_best_for_amount(event.amount)
            if tier is not None:
                days = derive_days(event.amount, tier)
                logger.info(
                    "Amount-matched rank: %s for %d days", tier.name, days
                )
                return tier, days
            logger.info("Amount %s qualifies for no rank tier", event.amount)

        return None, 0

    def _apply(
        self,
        account: Account,
        outcome: Grant,
        tier: RankTierInfo | None,
        payment_kind: PaymentKind,
    ) -> None:
        account.total_donated = outcome.total_donated
        if not outcome.applied:
            return
        account.donation_rank_id = outcome.rank_tier_id
        account.rank_expires_at = outcome.expires_at
        account.discord_role_id = tier.discord_role_id if tier else None
        if payment_kind in SUBSCRIPTION_KINDS:
            account.subscription_status = SubscriptionStatus.ACTIVE

    def _replay_after_conflict(self, event: PaymentEventBase) -> ProcessResult:
        """Lost the insert race: undo everything and report the winner."""
        self.db.rollback()
        existing = self.ledger.find_by_transaction_id(
            event.provider_kind, event.transaction_id
        )
        if existing is None:
            raise LedgerWriteError(
                f"Unique constraint hit for {event.transaction_id} "
                "but no ledger entry found"
            )
        logger.info(
            "Concurrent delivery of %s lost the race; returning entry %d",
            event.transaction_id, existing.id,
        )
        return self._duplicate_result(existing)

    @staticmethod
    def _duplicate_result(existing: LedgerEntry) -> ProcessResult:
        return ProcessResult(
            accepted=True,
            duplicate=True,
            ledger_id=existing.id,
            account_id=existing.account_id,
            is_guest=existing.account_id is None,
        )

    @staticmethod
    def _note(event: PaymentEventBase) -> str:
        if event.message:
            return event.message
        payer = event.display_name or "Anonymous"
        return f"{event.provider} {event.payment_kind.value} from {payer}"

    def _build_outbox(
        self,
        event: PaymentEventBase,
        resolution: Resolution,
        tier: RankTierInfo | None,
        days: int,
        outcome: Grant | None,
        old_role_id: str | None,
    ) -> Outbox:
        # Capture plain values only: the side effects run after the
        # session has moved on, possibly on another thread.
        account = resolution.account
        outbox = Outbox()

        if outcome is not None and outcome.rank_changed and tier is not None:
            if account.discord_user_id:
                outbox.add(
                    "role_sync",
                    self.notifier.sync_roles,
                    account.discord_user_id,
                    add_role_id=tier.discord_role_id,
                    remove_role_id=old_role_id,
                )
            else:
                logger.debug("Account %d has no linked Discord user", account.id)

        if account is not None:
            donor_name = account.display_name
            minecraft_username = account.minecraft_username
        else:
            donor_name = event.display_name or "Anonymous"
            minecraft_username = event.minecraft_username

        rank_name = tier.name if tier is not None and days > 0 else None
        outbox.add(
            "donation_announcement",
            self.notifier.announce_donation,
            DonationAnnouncement(
                donor_name=donor_name,
                amount=event.amount,
                currency=event.currency,
                payment_kind=event.payment_kind,
                rank_name=rank_name,
                days=days if rank_name else None,
                message=event.message,
                minecraft_username=minecraft_username,
            ),
        )

        alert = f"New {event.provider} donation: {donor_name} paid {event.amount} {event.currency}"
        if rank_name:
            alert += f" for {rank_name} ({days} days)"
        if resolution.is_guest:
            alert += " [guest]"
        outbox.add("operator_alert", self.notifier.alert_operators, alert)
        return outbox
