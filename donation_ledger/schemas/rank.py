"""
Pydantic schemas for the rank catalog and account entitlement.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from donation_ledger.models.enums import SubscriptionStatus


class RankTierCreate(BaseModel):
    id: str = Field(min_length=1, max_length=32, pattern=r"^[a-z0-9_-]+$")
    name: str = Field(min_length=1, max_length=100)
    min_amount: Decimal = Field(ge=0, decimal_places=4)
    duration_days: int = Field(default=30, gt=0, le=3650)
    discord_role_id: str | None = Field(default=None, max_length=32)

    @field_validator("id", mode="before")
    @classmethod
    def id_lower(cls, v):
        return v.lower() if isinstance(v, str) else v


class RankTierResponse(BaseModel):
    id: str
    name: str
    min_amount: Decimal
    duration_days: int
    discord_role_id: str | None

    model_config = {"from_attributes": True}


class RankConvertRequest(BaseModel):
    new_rank_tier_id: str = Field(min_length=1, max_length=32)


class SubscriptionStatusUpdate(BaseModel):
    status: SubscriptionStatus
    revoke_rank: bool = False


class RankStatusResponse(BaseModel):
    account_id: int
    has_rank: bool
    rank_tier_id: str | None = None
    expires_at: datetime | None = None
    days_remaining: int = 0
    subscription_status: SubscriptionStatus | None = None


class ExpirySweepResponse(BaseModel):
    removed: int
    accounts: list[int]
