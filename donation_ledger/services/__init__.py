"""Business logic services."""

from donation_ledger.services.ledger_service import LedgerService
from donation_ledger.services.rank_catalog import CatalogCache, RankCatalog
from donation_ledger.services.identity_resolver import IdentityResolver
from donation_ledger.services.entitlement import EntitlementService
from donation_ledger.services.reconciliation_service import ReconciliationService

__all__ = [
    "LedgerService",
    "CatalogCache",
    "RankCatalog",
    "IdentityResolver",
    "EntitlementService",
    "ReconciliationService",
]
