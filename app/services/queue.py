import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import settings
from app.db import SessionLocal
from app.errors import JobNotFoundError, JobNotRetriableError, JobPayloadError
from app.models.notification_job import NotificationJob, QueueState
from app.schemas.job import NotificationJobPayload
from app.schemas.queue import QueueCounts, QueueHealthResponse

logger = logging.getLogger(__name__)

WAITING = "waiting"
ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"
DELAYED = "delayed"  # waiting with run_at in the future; not stored

STALLED_REASON = "job stalled more than allowable limit"


def utc_now():
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """Snapshot of a job row, safe to use after its session is closed."""

    id: int
    queue: str
    payload: dict[str, Any]
    status: str
    attempts_made: int
    max_attempts: int
    backoff_delay: float
    stalled_count: int = 0
    failed_reason: Optional[str] = None
    return_value: Any = None
    created_at: Optional[datetime] = None
    run_at: Optional[datetime] = None
    processed_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None
    locked_by: Optional[str] = None

    @classmethod
    def from_row(cls, row: NotificationJob) -> "Job":
        return cls(
            id=row.id,
            queue=row.queue,
            payload=dict(row.payload or {}),
            status=row.status,
            attempts_made=row.attempts_made,
            max_attempts=row.max_attempts,
            backoff_delay=row.backoff_delay,
            stalled_count=row.stalled_count,
            failed_reason=row.failed_reason,
            return_value=row.return_value,
            created_at=row.created_at,
            run_at=row.run_at,
            processed_on=row.processed_on,
            finished_on=row.finished_on,
            locked_by=row.locked_by,
        )


@dataclass
class JobOutcome:
    """What happened to a job after one processing attempt."""

    job_id: int
    status: str  # "completed", "retrying" or "failed"
    attempts_made: int
    error: Optional[str] = None
    return_value: Any = None
    retry_at: Optional[datetime] = None
    payload: dict[str, Any] = field(default_factory=dict)


class JobQueue:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        name: Optional[str] = None,
        *,
        max_attempts: Optional[int] = None,
        backoff_delay: Optional[float] = None,
        backoff_max: Optional[float] = None,
        lock_duration: Optional[float] = None,
        max_stalled_count: Optional[int] = None,
        keep_completed: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self.name = name or settings.queue_name
        self.max_attempts = max_attempts if max_attempts is not None else settings.queue_max_attempts
        self.backoff_delay = backoff_delay if backoff_delay is not None else settings.queue_backoff_delay_seconds
        self.backoff_max = backoff_max if backoff_max is not None else settings.queue_backoff_max_seconds
        self.lock_duration = lock_duration if lock_duration is not None else settings.queue_lock_duration_seconds
        self.max_stalled_count = (
            max_stalled_count if max_stalled_count is not None else settings.queue_max_stalled_count
        )
        self.keep_completed = keep_completed if keep_completed is not None else settings.queue_keep_completed
        self._clock = clock

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(
        self,
        payload: Union[NotificationJobPayload, dict[str, Any]],
        session: Optional[Session] = None,
        *,
        max_attempts: Optional[int] = None,
        backoff_delay: Optional[float] = None,
    ) -> NotificationJob:
        """
        Validate the payload and add a waiting job.

        When `session` is given the job joins the caller's transaction and is
        only visible once the caller commits.
        """
        if not isinstance(payload, NotificationJobPayload):
            try:
                payload = NotificationJobPayload.model_validate(payload)
            except ValidationError as e:
                raise JobPayloadError(f"Invalid notification job payload: {e}") from e

        job = NotificationJob(
            queue=self.name,
            payload=payload.model_dump(mode="json"),
            status=WAITING,
            attempts_made=0,
            max_attempts=max_attempts or self.max_attempts,
            backoff_delay=backoff_delay if backoff_delay is not None else self.backoff_delay,
            run_at=self._clock(),
        )

        if session is not None:
            session.add(job)
            session.flush()
            return job

        with self._session_factory() as db:
            db.add(job)
            db.commit()
            db.refresh(job)
            db.expunge(job)
        return job

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def claim(self, worker_id: str) -> Optional[Job]:
        """Lock the oldest runnable job for `worker_id`. None when idle or paused."""
        with self._session_factory() as db:
            if self._is_paused(db):
                return None

            now = self._clock()
            candidate = (
                db.query(NotificationJob.id)
                .filter(
                    NotificationJob.queue == self.name,
                    NotificationJob.status == WAITING,
                    NotificationJob.run_at <= now,
                )
                .order_by(NotificationJob.run_at.asc(), NotificationJob.id.asc())
                .with_for_update(skip_locked=True)
                .first()
            )
            if candidate is None:
                return None

            # Conditional flip so two workers can never both own the job
            updated = (
                db.query(NotificationJob)
                .filter(NotificationJob.id == candidate.id, NotificationJob.status == WAITING)
                .update(
                    {
                        NotificationJob.status: ACTIVE,
                        NotificationJob.processed_on: now,
                        NotificationJob.locked_at: now,
                        NotificationJob.locked_by: worker_id,
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                db.rollback()
                return None
            db.commit()

            row = db.get(NotificationJob, candidate.id)
            logger.info(f"Job {row.id} started processing (attempt {row.attempts_made + 1}/{row.max_attempts})")
            return Job.from_row(row)

    def complete(self, job_id: int, return_value: Any = None) -> JobOutcome:
        with self._session_factory() as db:
            row = self._get_row(db, job_id)
            if row.status != ACTIVE:
                logger.warning(f"Job {job_id} completed while in state {row.status}")
            now = self._clock()
            row.status = COMPLETED
            row.attempts_made += 1
            row.return_value = return_value
            row.failed_reason = None
            row.finished_on = now
            row.locked_at = None
            row.locked_by = None
            db.commit()
            outcome = JobOutcome(
                job_id=row.id,
                status=COMPLETED,
                attempts_made=row.attempts_made,
                return_value=return_value,
                payload=dict(row.payload or {}),
            )
            self._trim_completed(db)

        logger.info(f"Job {job_id} completed")
        return outcome

    def fail(self, job_id: int, error: Union[BaseException, str]) -> JobOutcome:
        """Record a failed attempt; reschedule with backoff or dead-letter the job."""
        reason = str(error)
        with self._session_factory() as db:
            row = self._get_row(db, job_id)
            if row.status != ACTIVE:
                logger.warning(f"Job {job_id} reported failure while in state {row.status}")
            now = self._clock()
            row.attempts_made += 1
            row.failed_reason = reason
            row.locked_at = None
            row.locked_by = None

            if row.attempts_made < row.max_attempts:
                delay = self.backoff_for(row.attempts_made, row.backoff_delay)
                row.status = WAITING
                row.run_at = now + timedelta(seconds=delay)
                db.commit()
                logger.warning(
                    f"Job {job_id} failed (attempt {row.attempts_made}/{row.max_attempts}), "
                    f"retrying in {delay:.1f}s: {reason}"
                )
                return JobOutcome(
                    job_id=row.id,
                    status="retrying",
                    attempts_made=row.attempts_made,
                    error=reason,
                    retry_at=row.run_at,
                    payload=dict(row.payload or {}),
                )

            row.status = FAILED
            row.finished_on = now
            db.commit()
            logger.error(f"Job {job_id} failed after {row.attempts_made} attempts: {reason}")
            return JobOutcome(
                job_id=row.id,
                status=FAILED,
                attempts_made=row.attempts_made,
                error=reason,
                payload=dict(row.payload or {}),
            )

    def release(self, job_id: int) -> bool:
        """Return an active job to waiting without counting an attempt."""
        with self._session_factory() as db:
            updated = (
                db.query(NotificationJob)
                .filter(
                    NotificationJob.id == job_id,
                    NotificationJob.queue == self.name,
                    NotificationJob.status == ACTIVE,
                )
                .update(
                    {
                        NotificationJob.status: WAITING,
                        NotificationJob.run_at: self._clock(),
                        NotificationJob.processed_on: None,
                        NotificationJob.locked_at: None,
                        NotificationJob.locked_by: None,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
        return updated == 1

    def backoff_for(self, attempts_made: int, base_delay: Optional[float] = None) -> float:
        """Exponential delay before the next attempt: base * 2^(attempts - 1), capped."""
        base = self.backoff_delay if base_delay is None else base_delay
        return min(base * (2 ** max(attempts_made - 1, 0)), self.backoff_max)

    def recover_stalled(self) -> list[int]:
        """
        Requeue active jobs whose lock expired (their worker died).

        A job that stalls more than `max_stalled_count` times is failed instead.
        Returns the ids of the jobs that were touched.
        """
        now = self._clock()
        cutoff = now - timedelta(seconds=self.lock_duration)
        touched = []
        with self._session_factory() as db:
            stalled = (
                db.query(NotificationJob)
                .filter(
                    NotificationJob.queue == self.name,
                    NotificationJob.status == ACTIVE,
                    NotificationJob.locked_at < cutoff,
                )
                .all()
            )
            for row in stalled:
                row.stalled_count += 1
                row.locked_at = None
                row.locked_by = None
                if row.stalled_count > self.max_stalled_count:
                    row.status = FAILED
                    row.failed_reason = STALLED_REASON
                    row.finished_on = now
                    logger.error(f"Job {row.id} {STALLED_REASON}")
                else:
                    row.status = WAITING
                    row.run_at = now
                    logger.warning(f"Job {row.id} has stalled, requeued ({row.stalled_count}/{self.max_stalled_count})")
                touched.append(row.id)
            db.commit()
        return touched

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def get_job(self, job_id: int) -> Job:
        with self._session_factory() as db:
            return Job.from_row(self._get_row(db, job_id))

    def health(self) -> QueueHealthResponse:
        try:
            with self._session_factory() as db:
                now = self._clock()
                is_paused = self._is_paused(db)
                rows = (
                    db.query(NotificationJob.status, func.count(NotificationJob.id))
                    .filter(NotificationJob.queue == self.name)
                    .group_by(NotificationJob.status)
                    .all()
                )
                by_status = {status: count for status, count in rows}
                delayed = (
                    db.query(func.count(NotificationJob.id))
                    .filter(
                        NotificationJob.queue == self.name,
                        NotificationJob.status == WAITING,
                        NotificationJob.run_at > now,
                    )
                    .scalar()
                )
        except OperationalError as e:
            logger.error(f"Queue store unreachable: {e}")
            return QueueHealthResponse(
                status="disconnected",
                message="Queue is not connected to the database",
                counts=QueueCounts(),
            )
        except SQLAlchemyError as e:
            logger.error(f"Error getting queue health: {e}")
            return QueueHealthResponse(status="error", message=str(e), counts=QueueCounts())

        waiting = by_status.get(WAITING, 0) - delayed
        paused = 0
        if is_paused:
            paused, waiting = waiting, 0
        counts = QueueCounts(
            waiting=waiting,
            active=by_status.get(ACTIVE, 0),
            completed=by_status.get(COMPLETED, 0),
            failed=by_status.get(FAILED, 0),
            delayed=delayed,
            paused=paused,
        )
        counts.total = counts.waiting + counts.active + counts.completed + counts.failed + counts.delayed + paused
        return QueueHealthResponse(
            status="connected",
            message="Queue is paused" if is_paused else "Queue is healthy and operational",
            is_paused=is_paused,
            counts=counts,
        )

    def list_failed(self, limit: int = 10) -> list[Job]:
        with self._session_factory() as db:
            rows = (
                db.query(NotificationJob)
                .filter(NotificationJob.queue == self.name, NotificationJob.status == FAILED)
                .order_by(NotificationJob.finished_on.desc(), NotificationJob.id.desc())
                .limit(limit)
                .all()
            )
            return [Job.from_row(row) for row in rows]

    def retry(self, job_id: int) -> bool:
        """
        Send a failed job back to the queue with a fresh attempt budget.

        Returns False without changes when the job is already queued or running.
        """
        with self._session_factory() as db:
            row = self._get_row(db, job_id)
            if row.status in (WAITING, ACTIVE):
                return False
            if row.status != FAILED:
                raise JobNotRetriableError(f"Job {job_id} is {row.status}; only failed jobs can be retried")

            row.status = WAITING
            row.attempts_made = 0
            row.stalled_count = 0
            row.failed_reason = None
            row.processed_on = None
            row.finished_on = None
            row.run_at = self._clock()
            db.commit()
        logger.info(f"Job {job_id} queued for retry")
        return True

    def clean(self, grace_seconds: float, status: str = COMPLETED) -> list[int]:
        """Delete jobs in `status` that are older than the grace period."""
        now = self._clock()
        cutoff = now - timedelta(seconds=grace_seconds)
        with self._session_factory() as db:
            query = db.query(NotificationJob).filter(NotificationJob.queue == self.name)
            if status in (COMPLETED, FAILED):
                query = query.filter(NotificationJob.status == status, NotificationJob.finished_on < cutoff)
            elif status == WAITING:
                query = query.filter(
                    NotificationJob.status == WAITING,
                    NotificationJob.run_at <= now,
                    NotificationJob.created_at < cutoff,
                )
            elif status == DELAYED:
                query = query.filter(
                    NotificationJob.status == WAITING,
                    NotificationJob.run_at > now,
                    NotificationJob.created_at < cutoff,
                )
            else:
                raise ValueError(f"Cannot clean jobs in state {status}")

            ids = [row.id for row in query.all()]
            if ids:
                db.query(NotificationJob).filter(NotificationJob.id.in_(ids)).delete(synchronize_session=False)
            db.commit()

        logger.info(f"Cleaned {len(ids)} {status} jobs older than {grace_seconds}s")
        return ids

    def pause(self) -> None:
        self._set_paused(True)
        logger.info(f"Queue {self.name} paused")

    def resume(self) -> None:
        self._set_paused(False)
        logger.info(f"Queue {self.name} resumed")

    def is_paused(self) -> bool:
        with self._session_factory() as db:
            return self._is_paused(db)

    # ------------------------------------------------------------------

    def _get_row(self, db: Session, job_id: int) -> NotificationJob:
        row = db.get(NotificationJob, job_id)
        if row is None or row.queue != self.name:
            raise JobNotFoundError(f"Job {job_id} not found")
        return row

    def _is_paused(self, db: Session) -> bool:
        state = db.get(QueueState, self.name)
        return bool(state and state.is_paused)

    def _set_paused(self, paused: bool) -> None:
        with self._session_factory() as db:
            state = db.get(QueueState, self.name)
            if state is None:
                state = QueueState(queue=self.name)
                db.add(state)
            state.is_paused = paused
            db.commit()

    def _trim_completed(self, db: Session) -> None:
        keep = (
            db.query(NotificationJob.id)
            .filter(NotificationJob.queue == self.name, NotificationJob.status == COMPLETED)
            .order_by(NotificationJob.finished_on.desc(), NotificationJob.id.desc())
            .limit(self.keep_completed)
            .subquery()
        )
        db.query(NotificationJob).filter(
            NotificationJob.queue == self.name,
            NotificationJob.status == COMPLETED,
            NotificationJob.id.notin_(select(keep.c.id)),
        ).delete(synchronize_session=False)
        db.commit()
