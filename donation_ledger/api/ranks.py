"""
Rank catalog and account entitlement endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from donation_ledger.api.deps import (
    get_catalog,
    get_catalog_cache,
    get_entitlement_service,
)
from donation_ledger.models.base import get_db
from donation_ledger.services.entitlement import EntitlementService
from donation_ledger.services.rank_catalog import CatalogCache, RankCatalog
from donation_ledger.schemas.rank import (
    ExpirySweepResponse,
    RankConvertRequest,
    RankStatusResponse,
    RankTierCreate,
    RankTierResponse,
    SubscriptionStatusUpdate,
)

router = APIRouter(tags=["Ranks"])


# --- Catalog ---

@router.get("/ranks", response_model=list[RankTierResponse])
def list_ranks(catalog: RankCatalog = Depends(get_catalog)):
    """All rank tiers, most expensive first."""
    return catalog.all_tiers()


@router.post("/ranks", response_model=RankTierResponse, status_code=201)
def create_rank(
    request: RankTierCreate,
    db: Session = Depends(get_db),
    catalog: RankCatalog = Depends(get_catalog),
):
    try:
        tier = catalog.create_tier(request)
        db.commit()
        return tier
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/ranks/cache/invalidate", status_code=204)
def invalidate_rank_cache(cache: CatalogCache = Depends(get_catalog_cache)):
    """Make catalog edits made outside this service visible now."""
    cache.invalidate()


@router.post("/ranks/expire", response_model=ExpirySweepResponse)
def expire_ranks(
    service: EntitlementService = Depends(get_entitlement_service),
):
    """Remove expired ranks. Meant to be called by a scheduler."""
    return service.expire_ranks()


# --- Account entitlement ---

@router.get("/accounts/{account_id}/rank", response_model=RankStatusResponse)
def get_rank_status(
    account_id: int,
    service: EntitlementService = Depends(get_entitlement_service),
):
    try:
        return service.rank_status(account_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "/accounts/{account_id}/rank/convert",
    response_model=RankStatusResponse,
)
def convert_rank(
    account_id: int,
    request: RankConvertRequest,
    service: EntitlementService = Depends(get_entitlement_service),
):
    """
    Move an account to another tier.

    Remaining time is converted at the two tiers' prices per day.
    """
    try:
        service.convert_rank(account_id, request.new_rank_tier_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return service.rank_status(account_id)


@router.put(
    "/accounts/{account_id}/subscription",
    response_model=RankStatusResponse,
)
def update_subscription_status(
    account_id: int,
    request: SubscriptionStatusUpdate,
    service: EntitlementService = Depends(get_entitlement_service),
):
    try:
        service.set_subscription_status(
            account_id, request.status, revoke_rank=request.revoke_rank
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return service.rank_status(account_id)
