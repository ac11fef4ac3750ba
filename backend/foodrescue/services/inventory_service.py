import os
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional

from filelock import FileLock, Timeout
from sqlalchemy import update
from sqlalchemy.orm import Session

from foodrescue.config import settings
from foodrescue.models.listing import ListingRef, is_available
from foodrescue.repositories.listing_repo import ListingRepository, model_for
from foodrescue.utils.clock import as_utc, utcnow
from foodrescue.utils.logging import get_logger

log = get_logger("inventory")


class InventoryException(Exception):
    pass


class InsufficientInventoryError(InventoryException):
    def __init__(self, ref: ListingRef, requested: int, available: int, reason: str = ""):
        msg = f"Not enough stock for {ref}: requested={requested} available={available}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.ref = ref
        self.requested = requested
        self.available = available


class InventoryLockTimeout(InventoryException):
    pass


class InventoryService:
    """
    Read-check-decrement of listing quantities.

    Placements touching the same listing serialise on a per-listing file lock
    (shared by every worker process using the same LOCKS_DIR), on a row lock
    where the database has one, and finally on a guarded UPDATE that only
    succeeds while enough quantity is left.
    """

    def __init__(self, db: Session, locks_dir: Optional[str] = None, lock_timeout: Optional[float] = None):
        self.db = db
        self.listing_repo = ListingRepository(db)
        self.locks_dir = locks_dir or settings.LOCKS_DIR
        self.lock_timeout = settings.LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout

    def _now(self) -> datetime:
        return utcnow()

    @contextmanager
    def hold(self, refs: Iterable[ListingRef]) -> Iterator[None]:
        """
        Hold the placement locks for ``refs`` for the duration of the block.
        Locks are taken in sorted order so overlapping carts cannot deadlock.
        """
        os.makedirs(self.locks_dir, exist_ok=True)
        keys = sorted({ref.lock_key for ref in refs})
        with ExitStack() as stack:
            for key in keys:
                lock = FileLock(os.path.join(self.locks_dir, f"listing_{key}.lock"))
                try:
                    stack.enter_context(lock.acquire(timeout=self.lock_timeout))
                except Timeout:
                    log.warning("lock timeout on %s after %.1fs", key, self.lock_timeout)
                    raise InventoryLockTimeout(f"Could not lock {key}; try again")
            yield

    def available_quantity(self, ref: ListingRef, now: Optional[datetime] = None) -> int:
        """Quantity a buyer could take right now; 0 when sold out, expired or missing."""
        listing = self.listing_repo.get(ref)
        if listing is None:
            return 0
        now = as_utc(now) if now else self._now()
        return listing.available_quantity if is_available(listing, now) else 0

    def check(self, ref: ListingRef, qty: int, now: Optional[datetime] = None):
        """Fresh read of the listing; raise unless ``qty`` can be taken at ``now``."""
        now = as_utc(now) if now else self._now()
        listing = self.listing_repo.get_for_update(ref)
        if listing is None:
            raise InsufficientInventoryError(ref, qty, 0, "listing no longer exists")
        if not is_available(listing, now):
            reason = "sold out" if listing.available_quantity <= 0 else "expired"
            raise InsufficientInventoryError(ref, qty, max(listing.available_quantity, 0), reason)
        if qty > listing.available_quantity:
            raise InsufficientInventoryError(ref, qty, listing.available_quantity)
        return listing

    def reserve(self, ref: ListingRef, qty: int, now: Optional[datetime] = None):
        """
        Decrement ``ref`` by ``qty`` inside the caller's transaction and return
        the refreshed listing. Call under ``hold`` for the same ref.
        """
        if qty <= 0:
            raise InventoryException("Quantity must be positive")
        now = as_utc(now) if now else self._now()
        self.check(ref, qty, now)

        model = model_for(ref.kind)
        result = self.db.execute(
            update(model)
            .where(
                model.id == ref.id,
                model.available_quantity >= qty,
                model.expires_at > now,
            )
            .values(available_quantity=model.available_quantity - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # only reachable when another writer bypassed the placement locks
            fresh = self.listing_repo.get_for_update(ref)
            raise InsufficientInventoryError(
                ref, qty, fresh.available_quantity if fresh else 0, "concurrent update"
            )
        listing = self.listing_repo.get_for_update(ref)
        log.debug("reserved %d of %s, %d left", qty, ref, listing.available_quantity)
        return listing

    def restock(self, ref: ListingRef, qty: int) -> bool:
        """Give ``qty`` back to a listing. Returns False when the listing is gone."""
        model = model_for(ref.kind)
        result = self.db.execute(
            update(model)
            .where(model.id == ref.id)
            .values(available_quantity=model.available_quantity + qty)
            .execution_options(synchronize_session=False)
        )
        restored = result.rowcount == 1
        if restored:
            log.debug("restocked %d of %s", qty, ref)
        return restored
