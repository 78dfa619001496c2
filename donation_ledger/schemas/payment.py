"""
Pydantic schemas for inbound payment events.

Provider adapters verify a webhook's authenticity, then
translate its native payload into one of these models. The
provider field is the discriminator, so an event can never
carry another provider's fields or flags.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, Field, RootModel, field_validator

from donation_ledger.models.enums import PaymentKind, PaymentProvider


class PaymentEventBase(BaseModel):
    """Fields common to every provider's payment notification."""

    # Providers that never let the payer pick a tier set this,
    # so the tier is derived from the amount instead.
    amount_matched: ClassVar[bool] = False

    transaction_id: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, decimal_places=4)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    payment_kind: PaymentKind = PaymentKind.ONE_TIME

    # Pre-selected at checkout, when the provider supports it
    rank_tier_id: str | None = Field(default=None, max_length=32)
    days: int | None = Field(default=None, ge=0, le=3650)

    # Identity hints, untrusted
    account_id: int | None = None
    email: str | None = Field(default=None, max_length=255)
    display_name: str | None = Field(default=None, max_length=255)
    minecraft_username: str | None = Field(default=None, max_length=16)
    message: str | None = Field(default=None, max_length=2000)

    subscription_id: str | None = Field(default=None, max_length=255)

    @field_validator("transaction_id")
    @classmethod
    def transaction_id_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("transaction_id must not be blank")
        return v

    @field_validator("currency")
    @classmethod
    def currency_upper(cls, v: str) -> str:
        return v.upper()

    @field_validator("rank_tier_id")
    @classmethod
    def rank_tier_id_lower(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip().lower() or None

    @property
    def provider_kind(self) -> PaymentProvider:
        return PaymentProvider(self.provider)


class StripePaymentEvent(PaymentEventBase):
    """Card processor A: checkout sessions and subscription invoices."""
    provider: Literal["stripe"] = "stripe"


class SquarePaymentEvent(PaymentEventBase):
    """Card processor B: subscription plans and one-off payments."""
    provider: Literal["square"] = "square"


class KofiPaymentEvent(PaymentEventBase):
    """Tip jar: the payer types a free-form message and an amount."""
    amount_matched: ClassVar[bool] = True

    provider: Literal["kofi"] = "kofi"


PaymentEvent = Annotated[
    Union[StripePaymentEvent, SquarePaymentEvent, KofiPaymentEvent],
    Field(discriminator="provider"),
]


class PaymentEventPayload(RootModel[PaymentEvent]):
    """Request body wrapper so the union can be posted directly."""


class ProcessResult(BaseModel):
    """Outcome of reconciling one payment event."""
    accepted: bool
    duplicate: bool = False
    ledger_id: int
    account_id: int | None = None
    is_guest: bool = True
    rank_applied: str | None = None
    days_granted: int | None = None
    rank_expires_at: datetime | None = None
