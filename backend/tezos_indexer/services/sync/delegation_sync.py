"""Delegation sync engine.

Each cycle reads the stored watermark (highest block level) and picks a mode:

- historical: offset-paginated backfill from the first delegation, used when
  the store is empty or the previous incremental batch came back full
- incremental: one bounded fetch of delegations above the watermark

Only applied operations are written, in sub-batches of ``save_batch_size``
rows per transaction. Pauses between pages and sub-batches are plain
``asyncio.sleep`` calls, so cancelling the cycle task unwinds it at any of
them.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import structlog

from tezos_indexer.core.errors import StoreError, SyncError, TzktError, is_end_of_data
from tezos_indexer.core.metrics import MetricsAdapter
from tezos_indexer.schemas.delegation import AccountRecord, DelegationRecord
from tezos_indexer.services.data.base import DelegationSource
from tezos_indexer.services.data.response_models import TzktDelegation
from tezos_indexer.storage.base import DelegationStore

logger = structlog.get_logger(usecase="sync_delegations")

MODE_HISTORICAL = "historical"
MODE_INCREMENTAL = "incremental"

HISTORICAL_PAGE_SIZE = 1000
INCREMENTAL_PAGE_SIZE = 150
SAVE_BATCH_SIZE = 100
HISTORICAL_PAGE_PAUSE = 0.1  # seconds, upstream back-pressure
SAVE_BATCH_PAUSE = 0.05

# Historical progress is logged every this many pages
PROGRESS_LOG_EVERY = 10


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""
    mode: str
    fetched: int = 0
    processed: int = 0
    skipped: int = 0
    pages: int = 0
    last_level: int = 0
    gap_detected: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "fetched": self.fetched,
            "processed": self.processed,
            "skipped": self.skipped,
            "pages": self.pages,
            "last_level": self.last_level,
            "gap_detected": self.gap_detected,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class DelegationSyncService:
    """State machine that keeps the store in step with TzKT.

    ``is_historical_sync_done`` is process-local and only touched from the
    cycle the poller drives, one at a time.
    """

    def __init__(
        self,
        source: DelegationSource,
        store: DelegationStore,
        metrics: Optional[MetricsAdapter] = None,
        historical_page_size: int = HISTORICAL_PAGE_SIZE,
        incremental_page_size: int = INCREMENTAL_PAGE_SIZE,
        save_batch_size: int = SAVE_BATCH_SIZE,
        page_pause: float = HISTORICAL_PAGE_PAUSE,
        batch_pause: float = SAVE_BATCH_PAUSE,
    ):
        self.source = source
        self.store = store
        self.metrics = metrics
        self.historical_page_size = historical_page_size
        self.incremental_page_size = incremental_page_size
        self.save_batch_size = save_batch_size
        self.page_pause = page_pause
        self.batch_pause = batch_pause

        self.is_historical_sync_done = False

    # ==================== Entry points ====================

    async def sync(self) -> SyncResult:
        """Run one cycle, recorded as the ``SyncDelegations`` service operation."""
        start = time.monotonic()
        error: Optional[Exception] = None
        try:
            return await self._sync()
        except Exception as e:
            error = e
            raise
        finally:
            if self.metrics is not None:
                self.metrics.record_service_operation(
                    "SyncDelegations", "UseCase", time.monotonic() - start, error
                )

    async def get_highest_level(self) -> int:
        """Stored watermark; a failed read counts as an empty store."""
        try:
            return await self.store.get_highest_block_level()
        except StoreError as e:
            logger.warning("Failed to read highest block level, assuming empty store", error=str(e))
            return 0

    async def _sync(self) -> SyncResult:
        highest_level = await self.get_highest_level()

        if highest_level == 0 or not self.is_historical_sync_done:
            return await self.sync_historical()
        return await self.sync_incremental(highest_level)

    # ==================== Historical ====================

    async def sync_historical(self) -> SyncResult:
        """Backfill every delegation page by page until upstream runs dry."""
        result = SyncResult(mode=MODE_HISTORICAL)
        page_size = self.historical_page_size
        offset = 0

        logger.info("Starting historical delegations sync", page_size=page_size)

        while True:
            try:
                page = await self.source.fetch_page(page_size, offset)
            except TzktError as e:
                if is_end_of_data(e):
                    logger.info("Upstream reported end of data", offset=offset)
                    break
                raise SyncError(
                    f"error fetching historical delegations (offset {offset}): {e}",
                    mode=MODE_HISTORICAL,
                ) from e

            result.pages += 1
            if not page:
                break

            try:
                await self._process(page, result)
            except StoreError as e:
                raise SyncError(
                    f"error saving historical delegations (offset {offset}): {e}",
                    mode=MODE_HISTORICAL,
                ) from e

            if result.pages % PROGRESS_LOG_EVERY == 0:
                logger.info(
                    "Historical sync progress",
                    processed=result.processed,
                    offset=offset,
                    last_level=result.last_level,
                )

            if len(page) < page_size:
                break

            offset += page_size
            await asyncio.sleep(self.page_pause)

        self.is_historical_sync_done = True
        result.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Historical sync completed",
            total=result.processed,
            last_level=result.last_level,
            pages=result.pages,
        )
        return result

    # ==================== Incremental ====================

    async def sync_incremental(self, level: int) -> SyncResult:
        """Fetch one bounded batch above ``level``."""
        result = SyncResult(mode=MODE_INCREMENTAL)
        limit = self.incremental_page_size

        logger.info("Syncing incremental delegations", from_level=level)

        try:
            batch = await self.source.fetch_above_level(level, limit)
        except TzktError as e:
            if is_end_of_data(e):
                batch = []
            else:
                raise SyncError(
                    f"error fetching delegations from level {level}: {e}",
                    mode=MODE_INCREMENTAL,
                ) from e

        result.pages = 1
        try:
            await self._process(batch, result)
        except StoreError as e:
            raise SyncError(
                f"error saving delegations from level {level}: {e}", mode=MODE_INCREMENTAL
            ) from e

        if len(batch) >= limit:
            # Upstream may hold more than one page above the watermark
            self.is_historical_sync_done = False
            result.gap_detected = True
            logger.info(
                "Incremental batch full, switching to historical sync",
                from_level=level,
                batch_size=len(batch),
            )

        if result.processed:
            logger.info("Synced new delegations", count=result.processed, last_level=result.last_level)
        else:
            logger.info("No new delegations to sync", from_level=level)

        result.finished_at = datetime.now(timezone.utc)
        return result

    # ==================== Batch processing ====================

    async def _process(self, page: Sequence[TzktDelegation], result: SyncResult) -> None:
        """Filter, transform and persist one upstream page."""
        result.fetched += len(page)

        applied = [d for d in page if d.is_applied]
        result.skipped += len(page) - len(applied)
        if not applied:
            return

        records = [d.to_record() for d in applied]

        await self._save_accounts(applied)
        await self._save_delegations(records)

        result.processed += len(records)
        result.last_level = max(result.last_level, max(r.block_level for r in records))

    def _chunks(self, items: Sequence[Any]) -> List[Sequence[Any]]:
        size = self.save_batch_size
        return [items[i:i + size] for i in range(0, len(items), size)]

    async def _save_delegations(self, records: List[DelegationRecord]) -> None:
        for i, chunk in enumerate(self._chunks(records)):
            if i > 0:
                await asyncio.sleep(self.batch_pause)
            await self.store.save_delegations(chunk)

    async def _save_accounts(self, applied: Sequence[TzktDelegation]) -> None:
        """Persist sender and delegate accounts; failures are only warned about."""
        accounts: Dict[str, AccountRecord] = {}
        for d in applied:
            for account in d.to_accounts():
                if account.address:
                    accounts.setdefault(account.address, account)
        if not accounts:
            return

        for i, chunk in enumerate(self._chunks(list(accounts.values()))):
            if i > 0:
                await asyncio.sleep(self.batch_pause)
            try:
                await self.store.save_accounts(chunk)
            except StoreError as e:
                logger.warning("Failed to save accounts", count=len(chunk), error=str(e))

