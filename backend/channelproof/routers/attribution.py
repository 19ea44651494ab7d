"""Attribution endpoints.

WHAT:
    - Attribute a single transaction
    - Enqueue batch attribution for a user/date range and poll its job
    - Estimate batch duration
    - Attribution summary statistics

WHY:
    Sync pipelines push new payments one at a time; backfills go through the
    arq worker so the request returns immediately with a trackable job id.

REFERENCES:
    - channelproof/services/attribution/orchestrator.py
    - channelproof/workers/arq_enqueue.py
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..exceptions import JobEnqueueError, MalformedTransactionError, UserNotFoundError
from ..schemas import (
    AttributeRequest,
    AttributionStatsOut,
    BatchEstimateResponse,
    BatchRequest,
    JobResponse,
    VerifiedConversionOut,
)
from ..services.attribution.batch import BatchAttributionProcessor
from ..services.attribution.types import BatchConfig, TransactionData
from ..services.factory import build_attribution_service
from ..services.stores import SqlConversionRepository, SqlTransactionSource, SqlUserDirectory
from ..utils.dates import to_utc_naive
from ..workers import arq_enqueue

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/attribution",
    tags=["Attribution"],
)


def _require_user(db: Session, user_id: UUID) -> None:
    try:
        SqlUserDirectory(db).require(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.to_user_message())


def _validate_range(start: datetime, end: datetime):
    start, end = to_utc_naive(start), to_utc_naive(end)
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start must be before end",
        )
    return start, end


@router.post(
    "/attribute",
    response_model=VerifiedConversionOut,
    summary="Attribute a transaction",
)
def attribute_transaction(payload: AttributeRequest, db: Session = Depends(get_db)):
    """Attribute one payment and return its verified conversion.

    Re-posting the same transaction id returns the stored conversion.
    """
    if payload.user_id is not None:
        _require_user(db, payload.user_id)

    txn = payload.transaction
    transaction = TransactionData(
        id=txn.id,
        email=str(txn.email),
        amount=txn.amount,
        currency=txn.currency,
        timestamp=to_utc_naive(txn.timestamp),
        platform=txn.platform,
        metadata=txn.metadata,
    )
    try:
        conversion = build_attribution_service(db).attribute(payload.user_id, transaction)
    except MalformedTransactionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_user_message())

    return VerifiedConversionOut.model_validate(conversion)


@router.post(
    "/users/{user_id}/batch",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue batch attribution",
)
async def enqueue_batch(user_id: UUID, payload: BatchRequest, db: Session = Depends(get_db)):
    _require_user(db, user_id)
    start, end = _validate_range(payload.start, payload.end)
    config = payload.config.model_dump() if payload.config else None

    try:
        job = await arq_enqueue.enqueue_batch_attribution_job(user_id, start, end, config)
    except JobEnqueueError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_user_message())

    return JobResponse(**job)


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get batch job status",
)
async def get_batch_job(job_id: str):
    job = await arq_enqueue.get_job_status(job_id)
    if job["status"] == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return JobResponse(**job)


@router.get(
    "/users/{user_id}/batch/estimate",
    response_model=BatchEstimateResponse,
    summary="Estimate batch duration",
)
def estimate_batch(
    user_id: UUID,
    start: datetime = Query(...),
    end: datetime = Query(...),
    max_concurrent: int = Query(5, ge=1, le=20),
    db: Session = Depends(get_db),
):
    _require_user(db, user_id)
    start, end = _validate_range(start, end)

    # Estimation only lists transactions; it never attributes
    processor = BatchAttributionProcessor(
        transactions=SqlTransactionSource(db),
        conversions=SqlConversionRepository(db),
        attribute_fn=build_attribution_service(db).attribute,
    )
    duration = processor.estimate_batch_duration(
        user_id, start, end, BatchConfig(max_concurrent=max_concurrent)
    )
    return BatchEstimateResponse(estimated_duration_ms=duration)


@router.get(
    "/users/{user_id}/stats",
    response_model=AttributionStatsOut,
    summary="Attribution statistics",
)
def get_attribution_stats(
    user_id: UUID,
    start: datetime = Query(...),
    end: datetime = Query(...),
    db: Session = Depends(get_db),
):
    _require_user(db, user_id)
    start, end = _validate_range(start, end)
    stats = build_attribution_service(db).get_stats(user_id, start, end)
    return AttributionStatsOut.model_validate(stats)
