"""
Ledger API endpoints.

Read access to recorded donations and the one permitted
mutation: a status change such as a refund. The API layer is
thin — it handles HTTP concerns and delegates to LedgerService.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from donation_ledger.models.account import Account
from donation_ledger.models.base import get_db
from donation_ledger.models.enums import PaymentProvider
from donation_ledger.services.ledger_service import LedgerService
from donation_ledger.schemas.ledger import (
    LedgerEntryResponse,
    LedgerStatusUpdate,
)

router = APIRouter(tags=["Ledger"])


@router.get(
    "/ledger/{provider}/{transaction_id}",
    response_model=LedgerEntryResponse,
)
def get_entry_by_transaction(
    provider: PaymentProvider,
    transaction_id: str,
    db: Session = Depends(get_db),
):
    """Look up the ledger entry for a provider transaction."""
    entry = LedgerService(db).find_by_transaction_id(provider, transaction_id)
    if not entry:
        raise HTTPException(
            status_code=404,
            detail=f"No ledger entry for {provider.value}:{transaction_id}",
        )
    return entry


@router.patch(
    "/ledger/{entry_id}/status",
    response_model=LedgerEntryResponse,
)
def change_entry_status(
    entry_id: int,
    request: LedgerStatusUpdate,
    db: Session = Depends(get_db),
):
    """
    Change a ledger entry's status.

    Only completed → refunded is allowed.
    """
    service = LedgerService(db)
    try:
        entry = service.change_status(entry_id, request)
        db.commit()
        return entry
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get(
    "/accounts/{account_id}/donations",
    response_model=list[LedgerEntryResponse],
)
def get_account_donations(
    account_id: int,
    db: Session = Depends(get_db),
):
    """All donations recorded for an account, newest first."""
    if not db.get(Account, account_id):
        raise HTTPException(
            status_code=404, detail=f"Account {account_id} not found"
        )
    return LedgerService(db).get_entries_by_account(account_id)
