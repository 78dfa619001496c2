"""
Payment event intake.

Provider adapters post verified, normalized events here. The
status code tells the provider's retry logic what to do:
2xx stop (including replays), 4xx stop (the event is bad),
5xx retry later (safe, the ledger is idempotent).
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from donation_ledger.api.deps import get_catalog, get_dispatcher, get_notifier
from donation_ledger.models.base import get_db
from donation_ledger.schemas.payment import PaymentEventPayload, ProcessResult
from donation_ledger.services.notifications import NotificationSink
from donation_ledger.services.outbox import OutboxDispatcher
from donation_ledger.services.rank_catalog import RankCatalog
from donation_ledger.services.reconciliation_service import (
    LedgerWriteError,
    MalformedPaymentEvent,
    ReconciliationService,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/events", response_model=ProcessResult, status_code=201)
def ingest_payment_event(
    payload: PaymentEventPayload,
    response: Response,
    db: Session = Depends(get_db),
    catalog: RankCatalog = Depends(get_catalog),
    notifier: NotificationSink = Depends(get_notifier),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
):
    """
    Reconcile one payment event.

    Returns 201 when a new ledger entry was written and 200
    when the transaction had already been processed.
    """
    service = ReconciliationService(db, catalog, notifier, dispatcher)
    try:
        result = service.process(payload.root)
    except MalformedPaymentEvent as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LedgerWriteError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if result.duplicate:
        response.status_code = 200
    return result
