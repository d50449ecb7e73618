from typing import Optional

from fastapi import APIRouter, Depends

from framechain.api.deps import get_services, get_user_id, owned_segment
from framechain.api.schemas import (
    GenerateTimelineRequest,
    SegmentCreate,
    SegmentGenerate,
    SegmentPatch,
    UpdateModeRequest,
    ValidateModeRequest,
    ok,
)
from framechain.chain import describe_chain
from framechain.container import Services
from framechain.errors import ConflictError, InvalidRequestError
from framechain.models import SegmentStatus
from framechain.modes import ensure_valid_mode, get_mode_descriptors, validate_generation_mode

router = APIRouter(prefix="/segments", tags=["segments"])


def _ensure_idle(services: Services, timeline_id: str) -> None:
    if services.registry.is_running(timeline_id):
        raise ConflictError(f"Timeline {timeline_id} is being generated")


@router.get("/modes")
async def list_modes():
    return ok(get_mode_descriptors())


@router.get("/modes/{position}")
async def modes_for_position(position: int):
    if position < 0:
        raise InvalidRequestError("Segment position must be zero or greater")
    return ok(
        {
            "position": position,
            "isFirstSegment": position == 0,
            "frameChaining": position > 0,
            "modes": get_mode_descriptors(position),
        }
    )


@router.post("/validate")
async def validate_mode(body: ValidateModeRequest):
    return ok(validate_generation_mode(body.position, body.mode).model_dump())


@router.post("/create", status_code=201)
async def create_segment(
    body: SegmentCreate,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    """Create a pending segment. Inserting before existing segments shifts them back."""
    mode = ensure_valid_mode(
        body.position, body.generation_mode or services.config.generation.default_mode
    )
    await services.timelines.require(body.timeline_id, user_id)
    _ensure_idle(services, body.timeline_id)

    segment = await services.segments.create(
        timeline_id=body.timeline_id,
        position=body.position,
        model_id=body.model_id,
        duration_sec=body.duration_sec or services.config.generation.default_duration_sec,
        generation_mode=mode,
        prompt_text=body.prompt_text,
        source_url=body.source_url,
        motion_profile=body.motion_profile,
        camera_path=body.camera_path,
        transition_type=body.transition_type,
    )
    return ok(segment.model_dump(mode="json", exclude={"lease_token"}))


@router.post("/generate-timeline")
async def generate_timeline(
    body: GenerateTimelineRequest,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await services.timelines.require(body.timeline_id, user_id)
    run = await services.orchestrator.generate_timeline(
        body.timeline_id,
        user_id,
        first_segment_mode=body.first_segment_mode,
        first_segment_source=body.first_segment_source,
    )
    return ok(run.to_dict())


@router.get("/{timeline_id}")
async def list_segments(
    timeline_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await services.timelines.require(timeline_id, user_id)
    segments = await services.segments.get_by_timeline(timeline_id)
    return ok({"timelineId": timeline_id, "segments": describe_chain(segments)})


@router.post("/{segment_id}/generate")
async def generate_segment(
    segment_id: str,
    body: Optional[SegmentGenerate] = None,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    """Regenerate one segment, chaining from the segment currently in front of it."""
    body = body or SegmentGenerate()
    segment = await owned_segment(services, segment_id, user_id)
    _ensure_idle(services, segment.timeline_id)

    result = await services.generation.regenerate(
        segment.id,
        user_id,
        override_mode=body.override_mode,
        override_source_url=body.override_source_url,
        override_prompt=body.override_prompt,
    )
    return {"success": result.success, "data": result.model_dump(mode="json"), "error": result.error}


@router.post("/{segment_id}/update-mode")
async def update_mode(
    segment_id: str,
    body: UpdateModeRequest,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    segment = await owned_segment(services, segment_id, user_id)
    mode = ensure_valid_mode(segment.position, body.mode)
    updated = await services.segments.update_mode(segment.id, mode, body.source_url)
    return ok(updated.model_dump(mode="json", exclude={"lease_token"}))


@router.patch("/{segment_id}")
async def patch_segment(
    segment_id: str,
    body: SegmentPatch,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    segment = await owned_segment(services, segment_id, user_id)
    fields = body.model_dump(exclude_unset=True)
    updated = await services.segments.update(segment.id, **fields)
    return ok(updated.model_dump(mode="json", exclude={"lease_token"}))


@router.delete("/{segment_id}")
async def delete_segment(
    segment_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    segment = await owned_segment(services, segment_id, user_id)
    _ensure_idle(services, segment.timeline_id)
    if segment.status == SegmentStatus.GENERATING:
        raise ConflictError(f"Segment {segment_id} is being generated")

    await services.segments.delete_and_shift(segment.id)
    remaining = await services.segments.get_by_timeline(segment.timeline_id)
    return ok({"deleted": segment.id, "segments": describe_chain(remaining)})
