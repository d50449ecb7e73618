from fastapi import APIRouter, Depends

from framechain.api.deps import get_services, get_user_id
from framechain.api.schemas import ReorderRequest, TimelineCreate, ok
from framechain.chain import describe_chain
from framechain.container import Services
from framechain.errors import ConflictError

router = APIRouter(prefix="/timelines", tags=["timelines"])


@router.post("", status_code=201)
async def create_timeline(
    body: TimelineCreate,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    timeline = await services.timelines.create(user_id, body.name)
    return ok(timeline.model_dump(mode="json"))


@router.get("")
async def list_timelines(
    services: Services = Depends(get_services), user_id: str = Depends(get_user_id)
):
    timelines = await services.timelines.list_for_user(user_id)
    return ok([t.model_dump(mode="json") for t in timelines])


@router.get("/{timeline_id}")
async def get_timeline(
    timeline_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    timeline = await services.timelines.require(timeline_id, user_id)
    segments = await services.segments.get_by_timeline(timeline_id)
    data = timeline.model_dump(mode="json")
    data["segments"] = describe_chain(segments)
    data["isGenerating"] = services.registry.is_running(timeline_id)
    return ok(data)


@router.delete("/{timeline_id}")
async def delete_timeline(
    timeline_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    """Delete a timeline; an in-flight generation run stops before its next segment."""
    await services.timelines.require(timeline_id, user_id)
    cancelled = services.registry.cancel(timeline_id, "Timeline deleted")
    await services.timelines.delete(timeline_id)
    return ok({"deleted": timeline_id, "runCancelled": cancelled})


@router.patch("/{timeline_id}/segments/reorder")
async def reorder_segments(
    timeline_id: str,
    body: ReorderRequest,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await services.timelines.require(timeline_id, user_id)
    if services.registry.is_running(timeline_id):
        raise ConflictError(f"Timeline {timeline_id} is being generated")
    segments = await services.segments.reorder(timeline_id, body.order)
    return ok({"timelineId": timeline_id, "segments": describe_chain(segments)})
