"""Batch attribution over a date range.

WHAT:
    Attributes every not-yet-attributed payment of a user in a date range.

HOW:
    1. List transactions in range (failure here is fatal)
    2. Drop transaction ids that already have a verified conversion
    3. Split into chunks of batch_size and process chunks one after another
    4. Inside a chunk, a thread pool runs at most max_concurrent
       transactions at a time. Each attempt opens its own DB session.
    5. Failed transactions retry with backoff retry_delay_ms * attempt
    6. After every chunk, report progress with an ETA from the observed rate

WHY:
    Chunks stay sequential so progress only moves forward. Per-transaction
    failures are collected, never raised, so one bad payment cannot abort a
    backfill of thousands.

REFERENCES:
    - channelproof/services/factory.py (session-per-call attribute function)
    - channelproof/workers/arq_worker.py (background execution)
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence
from uuid import UUID

from ...exceptions import MalformedTransactionError
from ...telemetry import capture_exception, capture_message
from ..interfaces import SETTLED_PAYMENT_KINDS, ConversionRepository, TransactionSource
from .types import (
    BatchConfig,
    BatchError,
    BatchProgress,
    BatchResult,
    TransactionData,
    VerifiedConversionRecord,
)

logger = logging.getLogger(__name__)

AttributeFn = Callable[[Optional[UUID], TransactionData], VerifiedConversionRecord]
ProgressCallback = Callable[[BatchProgress], None]

# Per-transaction cost used for duration estimates
ESTIMATED_MS_PER_TRANSACTION = 100


def chunked(items: Sequence, size: int) -> List[Sequence]:
    if size <= 0:
        raise ValueError("batch_size must be positive")
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchAttributionProcessor:
    """Chunked, bounded-concurrency driver around a single-transaction attribute call.

    Usage:
        processor = BatchAttributionProcessor(transactions, conversions, attribute_fn)
        result = processor.run_batch(user_id, start, end, BatchConfig(batch_size=50))
        if not result.success:
            for err in result.errors:
                print(err.transaction_id, err.error)
    """

    def __init__(
        self,
        transactions: TransactionSource,
        conversions: ConversionRepository,
        attribute_fn: AttributeFn,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.transactions = transactions
        self.conversions = conversions
        self.attribute_fn = attribute_fn
        self.sleep = sleep
        self.clock = clock

    def run_batch(
        self,
        user_id: Optional[UUID],
        start: datetime,
        end: datetime,
        config: Optional[BatchConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """Attribute all unattributed transactions in [start, end].

        Args:
            user_id: Owner of the transactions (None lists all users)
            start, end: Transaction time range
            config: Chunking, concurrency and retry settings
            on_progress: Called after each chunk with a progress snapshot
            cancel_event: When set, no further chunks are scheduled

        Returns:
            BatchResult; success is True only when no transaction failed
        """
        config = config or BatchConfig()
        started_at = self.clock()

        transactions = self.transactions.list_transactions(
            user_id, SETTLED_PAYMENT_KINDS, start, end
        )
        if not transactions:
            logger.info("[BATCH] No transactions for user %s in range", user_id)
            return BatchResult(success=True, progress=BatchProgress(started_at=started_at))

        already_done = self.conversions.existing_transaction_ids(
            t.id for t in transactions if t.id
        )
        pending = [t for t in transactions if t.id not in already_done]
        chunks = chunked(pending, config.batch_size)

        progress = BatchProgress(
            total=len(pending),
            started_at=started_at,
            total_batches=len(chunks),
        )
        result = BatchResult(success=True, progress=progress)

        logger.info(
            "[BATCH] Starting batch for user %s: %d pending (%d already attributed), %d chunks",
            user_id, len(pending), len(transactions) - len(pending), len(chunks),
        )

        for index, chunk in enumerate(chunks, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("[BATCH] Cancelled before chunk %d/%d", index, len(chunks))
                result.cancelled = True
                break

            progress.current_batch = index
            conversions, errors = self._process_chunk(user_id, chunk, config)

            result.conversions.extend(conversions)
            result.errors.extend(errors)
            progress.processed += len(chunk)
            progress.successful += len(conversions)
            progress.failed += len(errors)
            progress.estimated_completion = self._estimate_completion(progress)

            logger.info(
                "[BATCH] Chunk %d/%d done: %d/%d processed, %d failed",
                index, len(chunks), progress.processed, progress.total, progress.failed,
            )
            if on_progress:
                on_progress(progress)

        result.success = progress.failed == 0
        if not result.success:
            capture_message(
                "Batch attribution finished with failures",
                level="warning",
                extra={"user_id": str(user_id), "failed": progress.failed, "total": progress.total},
            )
        return result

    def estimate_batch_duration(
        self,
        user_id: Optional[UUID],
        start: datetime,
        end: datetime,
        config: Optional[BatchConfig] = None,
    ) -> int:
        """Rough duration in milliseconds for attributing the range."""
        config = config or BatchConfig()
        count = len(self.transactions.list_transactions(user_id, SETTLED_PAYMENT_KINDS, start, end))
        return round(count * (ESTIMATED_MS_PER_TRANSACTION / config.max_concurrent))

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _process_chunk(self, user_id, chunk: Sequence[TransactionData], config: BatchConfig):
        outcomes: Dict[int, object] = {}

        with ThreadPoolExecutor(max_workers=config.max_concurrent) as executor:
            futures = {
                executor.submit(self._attribute_with_retry, user_id, txn, config): position
                for position, txn in enumerate(chunk)
            }
            for future in as_completed(futures):
                position = futures[future]
                txn = chunk[position]
                try:
                    outcomes[position] = future.result()
                except Exception as e:
                    logger.error("[BATCH] Transaction %s failed: %s", txn.id, e)
                    capture_exception(e, extra={
                        "operation": "batch_attribution",
                        "transaction_id": txn.id,
                        "user_id": str(user_id),
                    })
                    outcomes[position] = BatchError(transaction_id=txn.id, error=str(e))

        conversions: List[VerifiedConversionRecord] = []
        errors: List[BatchError] = []
        for position in range(len(chunk)):
            outcome = outcomes[position]
            if isinstance(outcome, BatchError):
                errors.append(outcome)
            else:
                conversions.append(outcome)
        return conversions, errors

    def _attribute_with_retry(
        self, user_id: Optional[UUID], txn: TransactionData, config: BatchConfig
    ) -> VerifiedConversionRecord:
        attempts = max(1, config.retry_attempts)
        attempt = 1
        while True:
            try:
                return self.attribute_fn(user_id, txn)
            except MalformedTransactionError:
                raise
            except Exception as e:
                if attempt >= attempts:
                    raise
                delay_seconds = config.retry_delay_ms * attempt / 1000
                logger.warning(
                    "[BATCH] Attempt %d/%d for %s failed (%s), retrying in %.1fs",
                    attempt, attempts, txn.id, e, delay_seconds,
                )
                self.sleep(delay_seconds)
                attempt += 1

    def _estimate_completion(self, progress: BatchProgress) -> datetime:
        now = self.clock()
        elapsed = (now - progress.started_at).total_seconds()
        remaining = progress.total - progress.processed
        if remaining <= 0 or elapsed <= 0 or progress.processed == 0:
            return now
        rate = progress.processed / elapsed
        return now + timedelta(seconds=remaining / rate)
