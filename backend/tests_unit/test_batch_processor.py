"""
Batch Attribution Tests (Unit)
==============================

WHAT: Chunking, concurrency limit, retry/backoff, progress and cancellation
      of BatchAttributionProcessor with in-memory collaborators.
WHY: A backfill must attribute every pending payment exactly once and report
     failures per transaction without aborting the run.

REFERENCES:
- backend/channelproof/services/attribution/batch.py
"""

import threading
import time
import uuid
from datetime import datetime, timedelta

import pytest

from channelproof.exceptions import MalformedTransactionError
from channelproof.services.attribution.batch import BatchAttributionProcessor, chunked
from channelproof.services.attribution.types import BatchConfig, TransactionData, VerifiedConversionRecord

START = datetime(2025, 3, 10)
END = START + timedelta(days=1)
USER_ID = uuid.uuid4()


def _txn(i: int) -> TransactionData:
    return TransactionData(
        id=f"ch_{i}",
        email="buyer@example.com",
        amount=100.0,
        currency="PHP",
        timestamp=START + timedelta(minutes=i),
        platform="stripe",
    )


def _conversion(txn: TransactionData) -> VerifiedConversionRecord:
    return VerifiedConversionRecord(
        transaction_id=txn.id,
        email=txn.email,
        amount=txn.amount,
        currency=txn.currency,
        attributed_channel="direct",
        confidence_score=0,
        confidence_level="low",
        attribution_method="uncertain",
        timestamp=txn.timestamp,
    )


class _FakeTransactions:
    def __init__(self, transactions, fail: bool = False):
        self.transactions = transactions
        self.fail = fail

    def list_transactions(self, user_id, event_kinds, start, end):
        if self.fail:
            raise RuntimeError("raw events unavailable")
        return list(self.transactions)


class _FakeConversions:
    def __init__(self, existing=()):
        self.existing = set(existing)

    def existing_transaction_ids(self, transaction_ids):
        return {t for t in transaction_ids if t in self.existing}


class _Clock:
    """Advances one second per call."""

    def __init__(self):
        self.now = START

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def _processor(transactions, attribute_fn, existing=(), sleeps=None, fail_listing=False):
    return BatchAttributionProcessor(
        transactions=_FakeTransactions(transactions, fail=fail_listing),
        conversions=_FakeConversions(existing),
        attribute_fn=attribute_fn,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
        clock=_Clock(),
    )


def test_chunked_splits_and_rejects_bad_size() -> None:
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    with pytest.raises(ValueError):
        chunked([1], 0)


def test_all_pending_transactions_are_attributed_in_order() -> None:
    txns = [_txn(i) for i in range(7)]
    processor = _processor(txns, lambda user_id, txn: _conversion(txn))

    result = processor.run_batch(USER_ID, START, END, BatchConfig(batch_size=3, max_concurrent=2))

    assert result.success is True
    assert [c.transaction_id for c in result.conversions] == [t.id for t in txns]
    assert result.progress.total == 7
    assert result.progress.processed == 7
    assert result.progress.successful == 7
    assert result.progress.total_batches == 3
    assert result.progress.current_batch == 3


def test_already_attributed_transactions_are_excluded() -> None:
    seen = []

    def attribute(user_id, txn):
        seen.append(txn.id)
        return _conversion(txn)

    processor = _processor([_txn(i) for i in range(4)], attribute, existing={"ch_0", "ch_2"})

    result = processor.run_batch(USER_ID, START, END)

    assert sorted(seen) == ["ch_1", "ch_3"]
    assert result.progress.total == 2


def test_empty_range_succeeds_with_zero_progress() -> None:
    result = _processor([], lambda u, t: _conversion(t)).run_batch(USER_ID, START, END)

    assert result.success is True
    assert result.progress.total == 0
    assert result.progress.started_at is not None


def test_listing_failure_is_fatal() -> None:
    processor = _processor([], lambda u, t: _conversion(t), fail_listing=True)

    with pytest.raises(RuntimeError):
        processor.run_batch(USER_ID, START, END)


def test_transient_failure_is_retried_with_linear_backoff() -> None:
    attempts = {}
    sleeps = []

    def flaky(user_id, txn):
        attempts[txn.id] = attempts.get(txn.id, 0) + 1
        if txn.id == "ch_1" and attempts[txn.id] < 3:
            raise ConnectionError("db blip")
        return _conversion(txn)

    processor = _processor([_txn(0), _txn(1)], flaky, sleeps=sleeps)

    result = processor.run_batch(USER_ID, START, END, BatchConfig(retry_attempts=3, retry_delay_ms=500))

    assert result.success is True
    assert attempts["ch_1"] == 3
    assert sleeps == [0.5, 1.0]


def test_exhausted_retries_record_an_error() -> None:
    sleeps = []

    def always_fails(user_id, txn):
        if txn.id == "ch_1":
            raise ConnectionError("db down")
        return _conversion(txn)

    processor = _processor([_txn(0), _txn(1), _txn(2)], always_fails, sleeps=sleeps)

    result = processor.run_batch(USER_ID, START, END, BatchConfig(retry_attempts=2, retry_delay_ms=100))

    assert result.success is False
    assert result.progress.successful == 2
    assert result.progress.failed == 1
    assert result.errors[0].transaction_id == "ch_1"
    assert "db down" in result.errors[0].error
    assert sleeps == [0.1]


def test_malformed_transaction_is_not_retried() -> None:
    calls = []

    def reject(user_id, txn):
        calls.append(txn.id)
        raise MalformedTransactionError("missing buyer email", transaction_id=txn.id)

    processor = _processor([_txn(0)], reject, sleeps=[])

    result = processor.run_batch(USER_ID, START, END, BatchConfig(retry_attempts=3))

    assert calls == ["ch_0"]
    assert result.progress.failed == 1


def test_concurrency_never_exceeds_max_concurrent() -> None:
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def slow(user_id, txn):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.01)
        with lock:
            state["active"] -= 1
        return _conversion(txn)

    processor = _processor([_txn(i) for i in range(12)], slow)

    processor.run_batch(USER_ID, START, END, BatchConfig(batch_size=6, max_concurrent=2))

    assert 1 <= state["peak"] <= 2


def test_progress_is_reported_after_each_chunk() -> None:
    snapshots = []
    processor = _processor([_txn(i) for i in range(5)], lambda u, t: _conversion(t))

    processor.run_batch(
        USER_ID, START, END, BatchConfig(batch_size=2),
        on_progress=lambda p: snapshots.append((p.current_batch, p.processed, p.estimated_completion)),
    )

    assert [(batch, processed) for batch, processed, _ in snapshots] == [(1, 2), (2, 4), (3, 5)]
    assert all(eta is not None for _, _, eta in snapshots)


def test_cancel_stops_scheduling_new_chunks() -> None:
    cancel = threading.Event()

    def attribute(user_id, txn):
        cancel.set()
        return _conversion(txn)

    processor = _processor([_txn(i) for i in range(6)], attribute)

    result = processor.run_batch(
        USER_ID, START, END, BatchConfig(batch_size=2, max_concurrent=1), cancel_event=cancel
    )

    assert result.cancelled is True
    assert result.progress.processed == 2
    assert len(result.conversions) == 2


def test_estimate_batch_duration() -> None:
    processor = _processor([_txn(i) for i in range(10)], lambda u, t: _conversion(t))

    assert processor.estimate_batch_duration(USER_ID, START, END, BatchConfig(max_concurrent=5)) == 200
    assert processor.estimate_batch_duration(USER_ID, START, END, BatchConfig(max_concurrent=3)) == 333


def test_batch_config_from_partial_dict() -> None:
    config = BatchConfig.from_dict({"batch_size": "20"})

    assert config.to_dict() == {"batch_size": 20, "max_concurrent": 5, "retry_attempts": 3, "retry_delay_ms": 1000}
