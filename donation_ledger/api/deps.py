"""
Shared FastAPI dependencies.

The catalog cache, notifier and outbox dispatcher are created
once in main.py and kept on app.state. Routes receive them
through these dependencies so tests can override each one.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from donation_ledger.models.base import get_db
from donation_ledger.services.entitlement import EntitlementService
from donation_ledger.services.notifications import NotificationSink
from donation_ledger.services.outbox import OutboxDispatcher
from donation_ledger.services.rank_catalog import CatalogCache, RankCatalog


def get_catalog_cache(request: Request) -> CatalogCache:
    return request.app.state.catalog_cache


def get_notifier(request: Request) -> NotificationSink:
    return request.app.state.notifier


def get_dispatcher(request: Request) -> OutboxDispatcher:
    return request.app.state.dispatcher


def get_catalog(
    db: Session = Depends(get_db),
    cache: CatalogCache = Depends(get_catalog_cache),
) -> RankCatalog:
    return RankCatalog(db, cache)


def get_entitlement_service(
    db: Session = Depends(get_db),
    catalog: RankCatalog = Depends(get_catalog),
    notifier: NotificationSink = Depends(get_notifier),
    dispatcher: OutboxDispatcher = Depends(get_dispatcher),
) -> EntitlementService:
    return EntitlementService(db, catalog, notifier, dispatcher)
