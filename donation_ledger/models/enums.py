"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. An unknown provider or
donation status is caught at the database level, not just
in Python validation.
"""

import enum


class PaymentProvider(str, enum.Enum):
    """Payment processors that notify us of donations."""
    STRIPE = "stripe"
    SQUARE = "square"
    KOFI = "kofi"


class PaymentKind(str, enum.Enum):
    """How the payment relates to a recurring subscription."""
    ONE_TIME = "one_time"
    SUBSCRIPTION = "subscription"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"


class DonationStatus(str, enum.Enum):
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"


class SubscriptionStatus(str, enum.Enum):
    """Lifecycle of a provider-managed recurring subscription."""
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    PAUSED = "paused"
    TRIALING = "trialing"
