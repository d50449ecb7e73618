"""Generation lifecycle of a single segment.

validate → persist pending → lease + mark generating → provider call →
frame extraction → persist generated (or error). Provider failures are
recorded on the segment and returned as a failed GenerationResult.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from .chain import resolve_chain_input
from .errors import ConflictError, InvalidRequestError, NotFoundError
from .logging_setup import log_context
from .models import (
    EnhanceStatus,
    GenerationMode,
    GenerationResult,
    SegmentGenerationRequest,
    SegmentStatus,
)
from .modes import ensure_valid_mode, parse_mode

if TYPE_CHECKING:
    from .capabilities import ModelCapabilitiesService
    from .providers.backends import BlobStorage, FrameExtractor, GenerationProvider
    from .store.repositories import SegmentRepository

logger = logging.getLogger(__name__)

MODE_ENDPOINTS = {
    GenerationMode.TEXT_TO_VIDEO: "/video/text-to-video",
    GenerationMode.IMAGE_TO_VIDEO: "/video/image-to-video",
    GenerationMode.VIDEO_TO_VIDEO: "/video/video-to-video",
    # first-frame is image-to-video with the image pinned as frame 0
    GenerationMode.FIRST_FRAME_TO_VIDEO: "/video/image-to-video",
}


def model_endpoint(mode: GenerationMode) -> str:
    return MODE_ENDPOINTS[GenerationMode(mode)]


def build_generation_payload(request: SegmentGenerationRequest) -> Dict[str, Any]:
    """Build the provider request body for a segment.

    Image-to-video uses the caller's source image on the first segment and
    the chained last frame everywhere else.
    """
    payload: Dict[str, Any] = {
        "model_id": request.model_id,
        "duration": request.duration_sec,
    }
    if request.motion_profile:
        payload["motion_profile"] = request.motion_profile
    if request.camera_path:
        payload["camera_path"] = request.camera_path

    mode = GenerationMode(request.generation_mode)
    payload["prompt"] = request.prompt_text or ""

    if mode == GenerationMode.IMAGE_TO_VIDEO:
        payload["image_url"] = (
            request.source_image_url if request.is_first_segment else request.previous_last_frame_url
        )
    elif mode == GenerationMode.VIDEO_TO_VIDEO:
        payload["video_url"] = request.source_video_url
    elif mode == GenerationMode.FIRST_FRAME_TO_VIDEO:
        payload["image_url"] = request.source_image_url
        payload["use_as_first_frame"] = True

    return payload


def _check_inputs(request: SegmentGenerationRequest, mode: GenerationMode) -> None:
    if request.position > 0:
        if not request.previous_last_frame_url:
            raise InvalidRequestError(
                f"Segment at position {request.position} needs the previous segment's last frame"
            )
        return
    if mode == GenerationMode.TEXT_TO_VIDEO and not request.prompt_text:
        raise InvalidRequestError("text-to-video requires a prompt")
    if mode == GenerationMode.VIDEO_TO_VIDEO and not request.source_video_url:
        raise InvalidRequestError("video-to-video requires a source video URL")
    if (
        mode in (GenerationMode.IMAGE_TO_VIDEO, GenerationMode.FIRST_FRAME_TO_VIDEO)
        and not request.source_image_url
    ):
        raise InvalidRequestError(f"{mode.value} on the first segment requires a source image URL")


class SegmentGenerationService:
    def __init__(
        self,
        segments: "SegmentRepository",
        provider: "GenerationProvider",
        frames: "FrameExtractor",
        storage: "BlobStorage",
        capabilities: Optional["ModelCapabilitiesService"] = None,
    ):
        self.segments = segments
        self.provider = provider
        self.frames = frames
        self.storage = storage
        self.capabilities = capabilities

    async def generate(self, request: SegmentGenerationRequest) -> GenerationResult:
        """Generate one segment.

        Raises:
            InvalidRequestError: mode, capability or input check failed (nothing persisted)
            NotFoundError: ``request.segment_id`` does not exist
            ConflictError: the segment already has a generation in flight

        Provider and frame-extraction failures do not raise; they are stored
        on the segment and reported in the returned result.
        """
        started = time.monotonic()
        mode = ensure_valid_mode(request.position, request.generation_mode)
        _check_inputs(request, mode)
        if self.capabilities is not None:
            await self.capabilities.check_generation(request.model_id, mode, request.duration_sec)

        if request.segment_id:
            segment = await self.segments.get_by_id(request.segment_id)
            if segment is None:
                raise NotFoundError(f"Segment not found: {request.segment_id}")
        else:
            segment = await self.segments.create(
                timeline_id=request.timeline_id,
                position=request.position,
                model_id=request.model_id,
                duration_sec=request.duration_sec,
                generation_mode=mode,
                prompt_text=request.prompt_text,
                motion_profile=request.motion_profile,
                camera_path=request.camera_path,
                transition_type=request.transition_type,
            )

        source_url = None
        if request.position == 0:
            source_url = (
                request.source_video_url
                if mode == GenerationMode.VIDEO_TO_VIDEO
                else request.source_image_url
            )

        token = await self.segments.acquire_lease(
            segment.id, generation_mode=mode, source_url=source_url, prompt_text=request.prompt_text
        )
        if token is None:
            raise ConflictError(f"Segment {segment.id} already has a generation in progress")

        with log_context(timeline_id=request.timeline_id, segment_id=segment.id):
            return await self._run(request, segment.id, mode, token, started)

    async def _run(
        self,
        request: SegmentGenerationRequest,
        segment_id: str,
        mode: GenerationMode,
        token: str,
        started: float,
    ) -> GenerationResult:
        chained = request.position > 0
        try:
            payload = build_generation_payload(request)
            logger.info("Generating segment %d (%s)", request.position, mode.value)
            video_url = await self.provider.generate(request.model_id, mode, payload)

            first_key = self.storage.key(
                "frames", request.user_id, request.timeline_id, f"{segment_id}_first.jpg"
            )
            last_key = self.storage.key(
                "frames", request.user_id, request.timeline_id, f"{segment_id}_last.jpg"
            )
            frames = await self.frames.extract(video_url, first_key, last_key)
        except asyncio.CancelledError:
            await self.segments.finish_lease(
                segment_id,
                token,
                status=SegmentStatus.ERROR,
                error_message="Generation cancelled",
                generation_time_sec=round(time.monotonic() - started, 3),
            )
            raise
        except Exception as e:
            elapsed = round(time.monotonic() - started, 3)
            message = str(e) or type(e).__name__
            logger.warning("Segment %d generation failed: %s", request.position, message)
            await self.segments.finish_lease(
                segment_id,
                token,
                status=SegmentStatus.ERROR,
                error_message=message,
                generation_time_sec=elapsed,
            )
            return GenerationResult.failure(segment_id, request.position, mode, message, elapsed)

        elapsed = round(time.monotonic() - started, 3)
        await self.segments.finish_lease(
            segment_id,
            token,
            status=SegmentStatus.GENERATED,
            video_url=video_url,
            first_frame_url=frames.first_frame_url,
            last_frame_url=frames.last_frame_url,
            thumbnail_url=frames.first_frame_url,
            generation_time_sec=elapsed,
            error_message=None,
            chained_from_url=request.previous_last_frame_url if chained else None,
            enhance_status=EnhanceStatus.NONE,
            enhanced_video_url=None,
            enhance_error=None,
        )
        logger.info("Segment %d generated in %.1fs", request.position, elapsed)
        return GenerationResult(
            segment_id=segment_id,
            position=request.position,
            generation_mode=mode,
            video_url=video_url,
            first_frame_url=frames.first_frame_url,
            last_frame_url=frames.last_frame_url,
            thumbnail_url=frames.first_frame_url,
            generation_time_sec=elapsed,
            success=True,
            frame_chained=chained,
            previous_frame_used=request.previous_last_frame_url if chained else None,
        )

    async def regenerate(
        self,
        segment_id: str,
        user_id: str,
        override_mode: Optional[str] = None,
        override_source_url: Optional[str] = None,
        override_prompt: Optional[str] = None,
    ) -> GenerationResult:
        """Regenerate an existing segment.

        The chain input is re-resolved from the segment currently in front of
        this one, so a regenerate after a reorder picks up the new neighbour.

        Raises:
            NotFoundError: segment does not exist
            ChainBrokenError: the previous segment has no generated last frame
        """
        segment = await self.segments.get_by_id(segment_id)
        if segment is None:
            raise NotFoundError(f"Segment not found: {segment_id}")

        mode = parse_mode(override_mode) if override_mode else segment.generation_mode
        if mode is None:
            raise InvalidRequestError(f"Unknown generation mode: {override_mode}")

        previous_last_frame_url = None
        if segment.position > 0:
            timeline_segments = await self.segments.get_by_timeline(segment.timeline_id)
            index = next(i for i, s in enumerate(timeline_segments) if s.id == segment.id)
            previous_last_frame_url = resolve_chain_input(timeline_segments, index)

        source = override_source_url or segment.source_url
        request = SegmentGenerationRequest(
            segment_id=segment.id,
            timeline_id=segment.timeline_id,
            user_id=user_id,
            position=segment.position,
            is_first_segment=segment.position == 0,
            generation_mode=mode,
            prompt_text=override_prompt or segment.prompt_text,
            source_image_url=source if mode != GenerationMode.VIDEO_TO_VIDEO else None,
            source_video_url=source if mode == GenerationMode.VIDEO_TO_VIDEO else None,
            previous_last_frame_url=previous_last_frame_url,
            model_id=segment.model_id,
            duration_sec=segment.duration_sec,
            motion_profile=segment.motion_profile,
            camera_path=segment.camera_path,
            transition_type=segment.transition_type,
        )
        return await self.generate(request)
