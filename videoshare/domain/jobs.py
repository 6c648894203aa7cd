from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Lifecycle states for transcode jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    # processing -> processing carries progress updates
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PROCESSING, JobStatus.DONE, JobStatus.ERROR}
    ),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return True when ``current -> target`` is a legal status write."""

    return target in _ALLOWED_TRANSITIONS[current]


class TargetFormat(str, Enum):
    MP4 = "mp4"
    WEBM = "webm"
    AVI = "avi"


class TargetResolution(str, Enum):
    P480 = "480p"
    P720 = "720p"
    P1080 = "1080p"
    P1440 = "1440p"
    UHD_4K = "4k"


class Requester(BaseModel):
    """Identity resolved by the authentication layer before reaching the core."""

    identity: str
    is_privileged: bool = False


class JobCreate(BaseModel):
    source_id: UUID
    target_format: TargetFormat
    target_resolution: Optional[TargetResolution] = None
    output_path: str


class Job(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    source_id: UUID
    target_format: TargetFormat
    target_resolution: Optional[TargetResolution] = None
    output_path: str
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    error_detail: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(from_attributes=True)

    @property
    def dedup_key(self) -> tuple[UUID, TargetFormat, Optional[TargetResolution]]:
        return (self.source_id, self.target_format, self.target_resolution)


class TranscodeRequest(BaseModel):
    video_id: UUID
    format: str
    resolution: Optional[str] = None


class SubmitResult(BaseModel):
    job_id: UUID
    status: JobStatus
    created: bool = True


class JobStatusPayload(BaseModel):
    id: UUID
    status: JobStatus
    progress: int
    error_detail: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusPayload":
        return cls(
            id=job.id,
            status=job.status,
            progress=job.progress,
            error_detail=job.error_detail,
        )


class BulkTranscodeRequest(BaseModel):
    video_ids: list[UUID]
    format: str
    resolution: Optional[str] = None
    count: Optional[int] = None


class BulkItemResult(BaseModel):
    source_id: str
    job_id: Optional[UUID] = None
    status: Optional[JobStatus] = None
    created: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BulkResult(BaseModel):
    """``accepted`` counts successful submissions; ``started`` only new jobs."""

    items: list[BulkItemResult]
    accepted: int
    started: int

    @property
    def message(self) -> str:
        message = f"Started {self.started} transcode jobs"
        reused = self.accepted - self.started
        if reused:
            message += f" ({reused} already queued or done)"
        return message


class VideoVersion(BaseModel):
    id: str
    format: str
    resolution: str
    size: int
    status: JobStatus


class VideoVersions(BaseModel):
    original: VideoVersion
    transcoded: list[VideoVersion]
