"""Pydantic models for enhancement (upscaling) jobs.

This module defines the job state machine and the data structures passed
between the enhancement repositories, service, worker and API.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Enhancement job states.

    State transitions:
        queued → processing      (process() picks the job up)
        queued → failed          (job cannot start, e.g. segment gone)
        processing → done        (provider returned an output URL)
        processing → failed      (provider or lookup failure)

    done and failed are terminal.
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)

    def can_transition(self, target: "JobStatus") -> bool:
        return JobStatus(target) in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.DONE, JobStatus.FAILED},
    JobStatus.DONE: set(),
    JobStatus.FAILED: set(),
}


class UpscalerModel(BaseModel):
    """Registry entry for one upscaling model."""

    id: str
    provider: str
    display_name: str
    description: Optional[str] = None
    scale_factors: List[int] = Field(default_factory=lambda: [2])
    supports_video: bool = True
    quality_score: int = 0
    cost_per_second: float = 0.0
    credits_per_use: int = 0
    is_active: bool = True
    priority: int = 0

    def supports_scale(self, factor: int) -> bool:
        return factor in self.scale_factors

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "displayName": self.display_name,
            "description": self.description,
            "scaleFactors": self.scale_factors,
            "supportsVideo": self.supports_video,
            "qualityScore": self.quality_score,
            "costPerSecond": self.cost_per_second,
            "creditsPerUse": self.credits_per_use,
        }


class EnhancementRequest(BaseModel):
    """Caller input for queueing one segment enhancement."""

    segment_id: str = Field(..., description="Segment to enhance")
    timeline_id: Optional[str] = Field(default=None, description="Owning timeline (looked up if unset)")
    user_id: str = Field(..., description="Requesting user")
    model_id: str = Field(..., description="Upscaler model id")
    input_url: Optional[str] = Field(
        default=None, description="Video to enhance (segment video_url if unset)"
    )
    scale_factor: Optional[int] = Field(default=None, gt=0, description="Upscale factor")
    target_resolution: Optional[str] = Field(default=None, description="e.g. 1080p, 4k")
    preserve_audio: bool = Field(default=True)


class EnhancementJob(BaseModel):
    """Stored enhancement job."""

    id: str
    segment_id: str
    timeline_id: str
    user_id: str
    model_id: str
    provider: str
    input_url: str
    output_url: Optional[str] = None
    scale_factor: int = 2
    target_resolution: Optional[str] = None
    preserve_audio: bool = True
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    processing_time_sec: Optional[float] = None
    created_at: str
    updated_at: str


class EnhancementResult(BaseModel):
    """Processing outcome returned by EnhancementService.process."""

    job_id: str
    success: bool
    output_url: Optional[str] = None
    processing_time_sec: float = Field(default=0.0, ge=0.0)
    error: Optional[str] = None


class StateTransition(BaseModel):
    """Audit log entry for job state changes."""

    id: Optional[int] = None
    job_id: str
    from_state: Optional[str] = None
    to_state: str
    timestamp: str
    error_snippet: Optional[str] = Field(default=None, description="First 200 chars of error")


class TimelineEnhancementBatch(BaseModel):
    """Result of queueing every eligible segment of a timeline."""

    timeline_id: str
    queued: int = 0
    job_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
