"""
Donation Ledger — FastAPI Application.

This is the entry point for the application.
All routers are registered here, and the process-wide
collaborators (rank catalog cache, Discord notifier, side
effect dispatcher) are created once and kept on app.state.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from donation_ledger.config import get_settings
from donation_ledger.models import Base
from donation_ledger.models.base import engine
from donation_ledger.services.notifications import DiscordNotifier
from donation_ledger.services.outbox import build_dispatcher
from donation_ledger.services.rank_catalog import CatalogCache
from donation_ledger.api.health import router as health_router
from donation_ledger.api.ledger import router as ledger_router
from donation_ledger.api.payments import router as payments_router
from donation_ledger.api.ranks import router as ranks_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info(
        "%s %s started (%s)",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    yield
    # Let queued role syncs and announcements finish
    app.state.dispatcher.shutdown(wait=True)
    app.state.notifier.close()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Reconciles donation payments into ranks and Discord roles",
    lifespan=lifespan,
)

app.state.catalog_cache = CatalogCache(settings.RANK_CATALOG_TTL_SECONDS)
app.state.notifier = DiscordNotifier.from_settings(settings)
app.state.dispatcher = build_dispatcher(settings)

# Register routers
app.include_router(health_router)
app.include_router(payments_router)
app.include_router(ledger_router)
app.include_router(ranks_router)
