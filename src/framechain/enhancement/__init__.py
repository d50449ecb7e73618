"""Enhancement (upscaling) job system."""

from .models import (
    EnhancementJob,
    EnhancementRequest,
    EnhancementResult,
    JobStatus,
    StateTransition,
    TimelineEnhancementBatch,
    UpscalerModel,
)
from .repositories import EnhancementJobRepository, UpscalerRepository
from .service import EnhancementService
from .worker import EnhancementWorker

__all__ = [
    "EnhancementJob",
    "EnhancementRequest",
    "EnhancementResult",
    "JobStatus",
    "StateTransition",
    "TimelineEnhancementBatch",
    "UpscalerModel",
    "EnhancementJobRepository",
    "UpscalerRepository",
    "EnhancementService",
    "EnhancementWorker",
]
