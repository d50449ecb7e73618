"""Enhancement (upscaling) jobs: validation, queueing and processing.

Jobs are independent of the generation chain and never block it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import ConflictError, InvalidRequestError, NotFoundError
from ..logging_setup import log_context
from ..models import EnhanceStatus
from .models import (
    EnhancementJob,
    EnhancementRequest,
    EnhancementResult,
    JobStatus,
    TimelineEnhancementBatch,
    UpscalerModel,
)

if TYPE_CHECKING:
    from ..providers.backends import EnhancementProvider
    from ..store.repositories import SegmentRepository
    from .repositories import EnhancementJobRepository, UpscalerRepository

logger = logging.getLogger(__name__)


class EnhancementService:
    def __init__(
        self,
        segments: "SegmentRepository",
        jobs: "EnhancementJobRepository",
        upscalers: "UpscalerRepository",
        provider: "EnhancementProvider",
        default_scale_factor: int = 2,
    ):
        self.segments = segments
        self.jobs = jobs
        self.upscalers = upscalers
        self.provider = provider
        self.default_scale_factor = default_scale_factor

    # --- registry ---

    async def get_upscalers(self) -> List[UpscalerModel]:
        return await self.upscalers.get_all()

    async def get_upscaler(self, model_id: str) -> UpscalerModel:
        model = await self.upscalers.get_by_id(model_id)
        if model is None:
            raise NotFoundError(f"Upscaler model not found: {model_id}")
        return model

    async def get_upscalers_by_provider(self, provider: str) -> List[UpscalerModel]:
        return await self.upscalers.get_by_provider(provider)

    # --- jobs ---

    async def queue(self, request: EnhancementRequest) -> EnhancementJob:
        """Validate and queue one enhancement job.

        Raises:
            NotFoundError: segment does not exist
            InvalidRequestError: unknown model, unsupported scale factor or no input video
            ConflictError: the segment already has a queued or processing job
        """
        segment = await self.segments.get_by_id(request.segment_id)
        if segment is None:
            raise NotFoundError(f"Segment not found: {request.segment_id}")

        model = await self.upscalers.get_by_id(request.model_id)
        if model is None:
            raise InvalidRequestError(f"Upscaler model not found: {request.model_id}")

        scale_factor = request.scale_factor or self.default_scale_factor
        if not model.supports_scale(scale_factor):
            raise InvalidRequestError(
                f"Scale factor {scale_factor}x not supported by {model.display_name}"
            )

        input_url = request.input_url or segment.video_url
        if not input_url:
            raise InvalidRequestError("No video to enhance")

        active = [j for j in await self.jobs.get_by_segment(segment.id) if not j.status.is_terminal]
        if active:
            raise ConflictError(
                f"Segment {segment.id} already has enhancement job {active[0].id} in progress"
            )

        request = request.model_copy(
            update={"input_url": input_url, "timeline_id": segment.timeline_id}
        )
        job = await self.jobs.create(request, model.provider, scale_factor)
        logger.info("Queued enhancement job %s (%s %dx)", job.id, model.id, scale_factor)
        return job

    async def process(self, job_id: str) -> EnhancementResult:
        """Run one queued job to a terminal state.

        Raises:
            NotFoundError: job does not exist
            InvalidTransitionError: job is not queued
        """
        job = await self.jobs.get_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Enhancement job not found: {job_id}")

        with log_context(timeline_id=job.timeline_id, segment_id=job.segment_id, job_id=job.id):
            job = await self.jobs.transition(job, JobStatus.PROCESSING, progress=0)
            started = time.monotonic()
            try:
                model = await self.upscalers.get_by_id(job.model_id)
                if model is None:
                    raise InvalidRequestError(f"Upscaler model not found: {job.model_id}")
                output_url = await self.provider.enhance(
                    model,
                    job.input_url,
                    job.scale_factor,
                    target_resolution=job.target_resolution,
                    preserve_audio=job.preserve_audio,
                )
            except asyncio.CancelledError:
                await self.jobs.transition(
                    job,
                    JobStatus.FAILED,
                    error_message="Enhancement cancelled",
                    processing_time_sec=round(time.monotonic() - started, 3),
                )
                raise
            except Exception as e:
                elapsed = round(time.monotonic() - started, 3)
                message = str(e) or type(e).__name__
                logger.warning("Enhancement failed: %s", message)
                await self.jobs.transition(
                    job, JobStatus.FAILED, error_message=message, processing_time_sec=elapsed
                )
                return EnhancementResult(
                    job_id=job.id, success=False, error=message, processing_time_sec=elapsed
                )

            elapsed = round(time.monotonic() - started, 3)
            await self.jobs.transition(
                job,
                JobStatus.DONE,
                output_url=output_url,
                progress=100,
                processing_time_sec=elapsed,
            )
            logger.info("Enhancement done in %.1fs", elapsed)
            return EnhancementResult(
                job_id=job.id, success=True, output_url=output_url, processing_time_sec=elapsed
            )

    async def get_job(self, job_id: str) -> EnhancementJob:
        job = await self.jobs.get_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Enhancement job not found: {job_id}")
        return job

    async def pending_jobs(self, timeline_id: str) -> List[EnhancementJob]:
        return await self.jobs.get_pending_by_timeline(timeline_id)

    async def enhance_timeline(self, timeline_id: str, user_id: str) -> TimelineEnhancementBatch:
        """Queue every enabled, not yet enhanced segment of a timeline.

        Segments with a job already queued or processing are skipped. A
        segment that cannot be queued is reported in ``errors`` and the batch
        continues.
        """
        batch = TimelineEnhancementBatch(timeline_id=timeline_id)
        for segment in await self.segments.get_by_timeline(timeline_id):
            if not segment.enhance_enabled:
                continue
            if segment.enhance_status in (
                EnhanceStatus.DONE,
                EnhanceStatus.QUEUED,
                EnhanceStatus.PROCESSING,
            ):
                continue
            if not segment.enhance_model:
                batch.errors.append(f"Segment {segment.id}: No upscaler model selected")
                continue
            if not segment.video_url:
                batch.errors.append(f"Segment {segment.id}: No video to enhance")
                continue
            try:
                job = await self.queue(
                    EnhancementRequest(
                        segment_id=segment.id,
                        timeline_id=timeline_id,
                        user_id=user_id,
                        model_id=segment.enhance_model,
                        input_url=segment.video_url,
                    )
                )
            except (ConflictError, InvalidRequestError, NotFoundError) as e:
                batch.errors.append(f"Segment {segment.id}: {e}")
                continue
            batch.queued += 1
            batch.job_ids.append(job.id)
        return batch

    # --- segment selection ---

    async def enable(self, segment_id: str, model_id: str):
        segment = await self._require_segment(segment_id)
        await self.get_upscaler(model_id)
        return await self.segments.update(segment.id, enhance_enabled=True, enhance_model=model_id)

    async def enable_all(self, timeline_id: str, model_id: str) -> int:
        await self.get_upscaler(model_id)
        updated = await self.segments.enable_enhancement_for_timeline(timeline_id, model_id)
        logger.info("Enabled %s on %d segments of %s", model_id, updated, timeline_id)
        return updated

    async def disable(self, segment_id: str):
        segment = await self._require_segment(segment_id)
        if segment.enhance_status in (EnhanceStatus.QUEUED, EnhanceStatus.PROCESSING):
            raise ConflictError(f"Segment {segment_id} has an enhancement job in progress")
        return await self.segments.update(segment.id, enhance_enabled=False, enhance_model=None)

    async def segment_status(self, segment_id: str) -> Dict[str, Any]:
        segment = await self._require_segment(segment_id)
        jobs = await self.jobs.get_by_segment(segment_id)
        return {
            "segmentId": segment.id,
            "enabled": segment.enhance_enabled,
            "model": segment.enhance_model,
            "status": segment.enhance_status.value,
            "rawUrl": segment.video_url,
            "enhancedUrl": segment.enhanced_video_url,
            "error": segment.enhance_error,
            "jobs": [j.model_dump(mode="json") for j in jobs],
        }

    async def timeline_status(self, timeline_id: str) -> Dict[str, Any]:
        segments = await self.segments.get_by_timeline(timeline_id)
        pending = await self.jobs.get_pending_by_timeline(timeline_id)
        return {
            "timelineId": timeline_id,
            "totalSegments": len(segments),
            "enabledCount": sum(1 for s in segments if s.enhance_enabled),
            "enhancedCount": sum(1 for s in segments if s.enhance_status == EnhanceStatus.DONE),
            "failedCount": sum(1 for s in segments if s.enhance_status == EnhanceStatus.FAILED),
            "pendingCount": len(pending),
            "segments": [
                {
                    "segmentId": s.id,
                    "position": s.position,
                    "enabled": s.enhance_enabled,
                    "model": s.enhance_model,
                    "status": s.enhance_status.value,
                    "enhancedUrl": s.enhanced_video_url,
                }
                for s in segments
            ],
        }

    async def _require_segment(self, segment_id: str):
        segment = await self.segments.get_by_id(segment_id)
        if segment is None:
            raise NotFoundError(f"Segment not found: {segment_id}")
        return segment
