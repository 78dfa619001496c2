"""
Rank catalog — read access to the donation rank tiers.

Tiers change rarely (an admin edits prices a few times a year)
but are read on every payment, so lookups are served from an
in-memory snapshot. The snapshot lives in a CatalogCache that
the application creates once and injects; a short TTL bounds
staleness and invalidate() makes admin edits visible at once.
"""

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from donation_ledger.config import get_settings
from donation_ledger.models.rank_tier import RankTier
from donation_ledger.schemas.rank import RankTierCreate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankTierInfo:
    """Detached, immutable copy of a RankTier row."""
    id: str
    name: str
    min_amount: Decimal
    duration_days: int
    discord_role_id: str | None = None

    @property
    def price_per_day(self) -> Decimal | None:
        if self.duration_days <= 0:
            return None
        return self.min_amount / self.duration_days

    @classmethod
    def from_model(cls, tier: RankTier) -> "RankTierInfo":
        return cls(
            id=tier.id,
            name=tier.name,
            min_amount=Decimal(str(tier.min_amount)),
            duration_days=tier.duration_days,
            discord_role_id=tier.discord_role_id,
        )


class CatalogCache:
    """
    Thread-safe snapshot of the tier catalog with a TTL.

    Usage:
        cache = CatalogCache(ttl_seconds=60)
        tiers = cache.get(loader)   # loader() -> iterable of RankTierInfo
        cache.invalidate()          # after an admin edit
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._tiers: dict[str, RankTierInfo] | None = None
        self._loaded_at = 0.0

    def get(
        self, loader: Callable[[], Iterable[RankTierInfo]]
    ) -> dict[str, RankTierInfo]:
        with self._lock:
            now = self._clock()
            if self._tiers is None or now - self._loaded_at >= self._ttl:
                self._tiers = {tier.id: tier for tier in loader()}
                self._loaded_at = now
                logger.debug("Rank catalog reloaded: %d tiers", len(self._tiers))
            return self._tiers

    def invalidate(self) -> None:
        with self._lock:
            self._tiers = None
            self._loaded_at = 0.0
        logger.info("Rank catalog cache invalidated")


class RankCatalog:
    """Lookups over the tier catalog, backed by a CatalogCache."""

    def __init__(self, db: Session, cache: CatalogCache | None = None):
        self.db = db
        if cache is None:
            cache = CatalogCache(get_settings().RANK_CATALOG_TTL_SECONDS)
        self.cache = cache

    def _load(self) -> list[RankTierInfo]:
        tiers = self.db.execute(select(RankTier)).scalars().all()
        return [RankTierInfo.from_model(t) for t in tiers]

    def all_tiers(self) -> list[RankTierInfo]:
        """All tiers, most expensive first."""
        tiers = self.cache.get(self._load).values()
        return sorted(tiers, key=lambda t: (-t.min_amount, t.id))

    def find_by_id(self, tier_id: str | None) -> RankTierInfo | None:
        if not tier_id:
            return None
        return self.cache.get(self._load).get(tier_id.lower())

    def find_best_for_amount(self, amount: Decimal) -> RankTierInfo | None:
        """
        Return the most expensive tier the amount qualifies for.

        Tiers sharing the same minimum price are ordered by id, so
        the answer depends only on the catalog and the amount.
        """
        for tier in self.all_tiers():
            if tier.min_amount <= amount:
                return tier
        return None

    def create_tier(self, request: RankTierCreate) -> RankTier:
        """
        Add a tier to the catalog.

        Raises ValueError if the id is already taken. The caller
        commits; the cache is invalidated immediately so the next
        lookup after the commit sees the new tier.
        """
        if self.db.get(RankTier, request.id) is not None:
            raise ValueError(f"Rank tier '{request.id}' already exists")

        tier = RankTier(
            id=request.id,
            name=request.name,
            min_amount=request.min_amount,
            duration_days=request.duration_days,
            discord_role_id=request.discord_role_id,
        )
        self.db.add(tier)
        self.db.flush()
        self.cache.invalidate()
        return tier
