"""Sequential, fail-fast generation of a whole timeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from .chain import CancellationToken, ChainState
from .errors import ConflictError, FrameChainError, InvalidRequestError
from .logging_setup import log_context
from .models import GenerationMode, GenerationResult, SegmentGenerationRequest, TimelineStatus
from .modes import ensure_valid_mode

if TYPE_CHECKING:
    from .generation import SegmentGenerationService
    from .store.repositories import SegmentRepository, TimelineRepository

logger = logging.getLogger(__name__)


@dataclass
class TimelineRunResult:
    timeline_id: str
    total_segments: int
    first_segment_mode: GenerationMode
    results: List[GenerationResult] = field(default_factory=list)
    stopped_early: bool = False
    cancelled: bool = False
    cancel_reason: Optional[str] = None

    @property
    def segments_generated(self) -> int:
        return sum(1 for r in self.results if r.success)

    def to_dict(self) -> Dict:
        return {
            "timelineId": self.timeline_id,
            "segmentsGenerated": self.segments_generated,
            "totalSegments": self.total_segments,
            "results": [r.model_dump(mode="json") for r in self.results],
            "frameChaining": {
                "enabled": True,
                "firstSegmentMode": self.first_segment_mode.value,
                "subsequentMode": GenerationMode.IMAGE_TO_VIDEO.value,
            },
            "stoppedEarly": self.stopped_early,
            "cancelled": self.cancelled,
        }


class RunRegistry:
    """Cancellation tokens of in-flight timeline runs, one run per timeline."""

    def __init__(self):
        self._runs: Dict[str, CancellationToken] = {}

    def start(self, timeline_id: str, token: Optional[CancellationToken] = None) -> CancellationToken:
        if timeline_id in self._runs:
            raise ConflictError(f"Timeline {timeline_id} is already being generated")
        token = token or CancellationToken()
        self._runs[timeline_id] = token
        return token

    def finish(self, timeline_id: str, token: CancellationToken) -> None:
        if self._runs.get(timeline_id) is token:
            del self._runs[timeline_id]

    def cancel(self, timeline_id: str, reason: str = "Generation cancelled") -> bool:
        token = self._runs.get(timeline_id)
        if token is None:
            return False
        token.cancel(reason)
        return True

    def is_running(self, timeline_id: str) -> bool:
        return timeline_id in self._runs


class TimelineOrchestrator:
    def __init__(
        self,
        timelines: "TimelineRepository",
        segments: "SegmentRepository",
        generation: "SegmentGenerationService",
        registry: Optional[RunRegistry] = None,
    ):
        self.timelines = timelines
        self.segments = segments
        self.generation = generation
        self.registry = registry or RunRegistry()

    async def generate_timeline(
        self,
        timeline_id: str,
        user_id: str,
        first_segment_mode: Optional[str] = None,
        first_segment_source: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TimelineRunResult:
        """Generate every segment in position order, chaining last frames.

        Stops at the first failed segment; earlier segments keep their
        results. Per-segment failures never raise.

        Raises:
            InvalidRequestError: timeline has no segments or the first mode is illegal
            ConflictError: a run for this timeline is already in flight
        """
        segments = await self.segments.get_by_timeline(timeline_id)
        if not segments:
            raise InvalidRequestError("No segments in timeline")
        first_mode = ensure_valid_mode(0, first_segment_mode or segments[0].generation_mode)

        token = self.registry.start(timeline_id, cancel_token)
        run = TimelineRunResult(
            timeline_id=timeline_id, total_segments=len(segments), first_segment_mode=first_mode
        )
        state = ChainState()

        with log_context(timeline_id=timeline_id):
            try:
                await self.timelines.update_status(timeline_id, TimelineStatus.GENERATING)
                logger.info("Generating %d segments (first mode %s)", len(segments), first_mode.value)

                for index, segment in enumerate(segments):
                    if token.cancelled:
                        run.cancelled = True
                        run.cancel_reason = token.reason
                        logger.info("Run cancelled before segment %d: %s", index, token.reason)
                        break

                    request = self._request_for(
                        segment, index, user_id, first_mode, first_segment_source, state
                    )
                    try:
                        result = await self.generation.generate(request)
                    except FrameChainError as e:
                        result = GenerationResult.failure(
                            segment.id, index, request.generation_mode, str(e)
                        )
                    run.results.append(result)

                    if not result.success:
                        run.stopped_early = index < len(segments) - 1
                        logger.warning(
                            "Segment %d failed, stopping timeline: %s", index, result.error
                        )
                        break
                    state.advance(result)
            finally:
                if run.cancelled:
                    await self.segments.mark_abandoned(timeline_id, token.reason or "Generation cancelled")
                self.registry.finish(timeline_id, token)
                if await self.timelines.get_by_id(timeline_id) is not None:
                    await self.timelines.update_status(timeline_id, TimelineStatus.READY)

        logger.info(
            "Timeline run finished: %d/%d generated", run.segments_generated, run.total_segments
        )
        return run

    @staticmethod
    def _request_for(
        segment,
        index: int,
        user_id: str,
        first_mode: GenerationMode,
        first_source: Optional[str],
        state: ChainState,
    ) -> SegmentGenerationRequest:
        if index == 0:
            mode = first_mode
            source = first_source or segment.source_url
        else:
            mode = GenerationMode.IMAGE_TO_VIDEO
            source = None

        return SegmentGenerationRequest(
            segment_id=segment.id,
            timeline_id=segment.timeline_id,
            user_id=user_id,
            position=index,
            is_first_segment=index == 0,
            generation_mode=mode,
            prompt_text=segment.prompt_text,
            source_image_url=source if mode != GenerationMode.VIDEO_TO_VIDEO else None,
            source_video_url=source if mode == GenerationMode.VIDEO_TO_VIDEO else None,
            previous_last_frame_url=state.previous_last_frame_url,
            model_id=segment.model_id,
            duration_sec=segment.duration_sec,
            motion_profile=segment.motion_profile,
            camera_path=segment.camera_path,
            transition_type=segment.transition_type,
        )
