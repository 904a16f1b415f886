import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.dependencies import get_current_operator, get_queue
from app.errors import JobNotFoundError, JobNotRetriableError
from app.models.operator import Operator
from app.schemas.queue import (
    CleanableStatus,
    FailedJobListResponse,
    FailedJobResponse,
    QueueActionResponse,
    QueueHealthResponse,
)
from app.services.queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/health", response_model=QueueHealthResponse)
async def get_queue_health(
    queue: JobQueue = Depends(get_queue),
    operator: Operator = Depends(get_current_operator),
):
    """Connectivity and job counts per state."""
    return queue.health()


@router.get("/failed", response_model=FailedJobListResponse)
async def get_failed_jobs(
    limit: int = Query(default=10, ge=1, le=100),
    queue: JobQueue = Depends(get_queue),
    operator: Operator = Depends(get_current_operator),
):
    """Most recent jobs that exhausted their retries."""
    jobs = queue.list_failed(limit)
    return FailedJobListResponse(
        jobs=[
            FailedJobResponse(
                id=job.id,
                data=job.payload,
                failed_reason=job.failed_reason,
                attempts_made=job.attempts_made,
                timestamp=job.created_at,
                processed_on=job.processed_on,
                finished_on=job.finished_on,
            )
            for job in jobs
        ]
    )


@router.post("/retry/{job_id}", response_model=QueueActionResponse)
async def retry_failed_job(
    job_id: int,
    queue: JobQueue = Depends(get_queue),
    operator: Operator = Depends(get_current_operator),
):
    try:
        requeued = queue.retry(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except JobNotRetriableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if requeued:
        logger.info(f"Job {job_id} retried by operator {operator.id}")
        return QueueActionResponse(message="Job queued for retry")
    return QueueActionResponse(message="Job is already queued")


@router.post("/clean", response_model=QueueActionResponse)
async def clean_queue(
    job_status: CleanableStatus = Query(default=CleanableStatus.COMPLETED, alias="type"),
    grace: int = Query(default=3600000, ge=0, description="Age threshold in milliseconds"),
    queue: JobQueue = Depends(get_queue),
    operator: Operator = Depends(get_current_operator),
):
    """Remove jobs in a state that are older than the grace period."""
    cleaned = queue.clean(grace / 1000, job_status.value)
    logger.info(f"Cleaned {len(cleaned)} {job_status.value} jobs older than {grace}ms (operator {operator.id})")
    return QueueActionResponse(message=f"Cleaned {len(cleaned)} {job_status.value} jobs", count=len(cleaned))


@router.post("/pause", response_model=QueueActionResponse)
async def pause_queue(
    queue: JobQueue = Depends(get_queue),
    operator: Operator = Depends(get_current_operator),
):
    queue.pause()
    logger.info(f"Queue paused by operator {operator.id}")
    return QueueActionResponse(message="Queue paused successfully")


@router.post("/resume", response_model=QueueActionResponse)
async def resume_queue(
    queue: JobQueue = Depends(get_queue),
    operator: Operator = Depends(get_current_operator),
):
    queue.resume()
    logger.info(f"Queue resumed by operator {operator.id}")
    return QueueActionResponse(message="Queue resumed successfully")
