"""Data models for jobs, generations and pings."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field

TRANSPORT_ERROR = "transport-error"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Derived job states. Never stored."""
    NEW = "new"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Generation(BaseModel):
    """One render-and-store attempt."""
    attempted_at: datetime = Field(default_factory=utcnow)
    success: bool
    error: Optional[str] = None
    location: Optional[Dict[str, Any]] = None


class Ping(BaseModel):
    """One webhook delivery attempt."""
    id: str
    url: str
    method: str = "POST"
    status: Union[int, str]
    sent_at: datetime = Field(default_factory=utcnow)
    response: Any = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    error: bool = False


class Job(BaseModel):
    """A queued request to render a URL to a PDF."""
    id: str
    url: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    generations: List[Generation] = Field(default_factory=list)
    pings: List[Ping] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def successful_generation(self) -> Optional[Generation]:
        for generation in self.generations:
            if generation.success:
                return generation
        return None

    @property
    def has_successful_ping(self) -> bool:
        return any(not ping.error for ping in self.pings)

    def is_completed(self) -> bool:
        return self.completed_at is not None or self.successful_generation is not None

    def is_failed(self, max_tries: int) -> bool:
        return not self.is_completed() and len(self.generations) >= max_tries

    def status(self, max_tries: int) -> JobStatus:
        if self.is_completed():
            return JobStatus.COMPLETED
        if self.is_failed(max_tries):
            return JobStatus.FAILED
        if not self.generations:
            return JobStatus.NEW
        return JobStatus.PROCESSING


class QueueDocument(BaseModel):
    """The whole persisted queue: every job plus the batch-run lock."""
    jobs: List[Job] = Field(default_factory=list)
    is_busy: bool = False

    def find(self, job_id: str) -> Optional[Job]:
        for job in self.jobs:
            if job.id == job_id:
                return job
        return None
