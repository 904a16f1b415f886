from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class CleanableStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING = "waiting"
    DELAYED = "delayed"


class QueueCounts(BaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    paused: int = 0
    total: int = 0


class QueueHealthResponse(BaseModel):
    status: str  # "connected", "disconnected" or "error"
    message: str
    is_paused: bool = False
    counts: QueueCounts


class FailedJobResponse(BaseModel):
    id: int
    data: dict[str, Any]
    failed_reason: Optional[str] = None
    attempts_made: int
    timestamp: Optional[datetime] = None
    processed_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None


class FailedJobListResponse(BaseModel):
    jobs: list[FailedJobResponse]


class QueueActionResponse(BaseModel):
    message: str
    count: Optional[int] = None
