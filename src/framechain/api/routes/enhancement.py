import logging
from typing import Iterable

from fastapi import APIRouter, BackgroundTasks, Depends

from framechain.api.deps import get_services, get_user_id, owned_segment
from framechain.api.schemas import EnableEnhancementRequest, QueueEnhancementRequest, ok
from framechain.container import Services
from framechain.enhancement import EnhancementRequest
from framechain.errors import FrameChainError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enhancement", tags=["enhancement"])


async def process_jobs_task(services: Services, job_ids: Iterable[str]) -> None:
    """Background processing of freshly queued jobs."""
    for job_id in job_ids:
        try:
            await services.enhancement.process(job_id)
        except FrameChainError as e:
            logger.warning("Background processing of %s skipped: %s", job_id, e)


def _schedule(services: Services, background_tasks: BackgroundTasks, job_ids) -> bool:
    if not job_ids or not services.config.enhancement.process_on_queue:
        return False
    background_tasks.add_task(process_jobs_task, services, list(job_ids))
    return True


@router.get("/upscalers")
async def list_upscalers(services: Services = Depends(get_services)):
    models = await services.enhancement.get_upscalers()
    return ok([m.to_api() for m in models])


@router.get("/upscalers/provider/{provider}")
async def list_upscalers_by_provider(provider: str, services: Services = Depends(get_services)):
    models = await services.enhancement.get_upscalers_by_provider(provider)
    return ok([m.to_api() for m in models])


@router.get("/upscalers/{model_id}")
async def get_upscaler(model_id: str, services: Services = Depends(get_services)):
    model = await services.enhancement.get_upscaler(model_id)
    return ok(model.to_api())


@router.get("/segment/{segment_id}")
async def segment_status(
    segment_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await owned_segment(services, segment_id, user_id)
    return ok(await services.enhancement.segment_status(segment_id))


@router.post("/segment/{segment_id}/enable")
async def enable_enhancement(
    segment_id: str,
    body: EnableEnhancementRequest,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await owned_segment(services, segment_id, user_id)
    model_id = body.model_id or services.config.enhancement.default_model
    segment = await services.enhancement.enable(segment_id, model_id)
    return ok({"segmentId": segment.id, "enabled": segment.enhance_enabled, "model": segment.enhance_model})


@router.post("/segment/{segment_id}/disable")
async def disable_enhancement(
    segment_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await owned_segment(services, segment_id, user_id)
    segment = await services.enhancement.disable(segment_id)
    return ok({"segmentId": segment.id, "enabled": segment.enhance_enabled, "model": segment.enhance_model})


@router.post("/segment/{segment_id}/queue", status_code=201)
async def queue_enhancement(
    segment_id: str,
    body: QueueEnhancementRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    segment = await owned_segment(services, segment_id, user_id)
    job = await services.enhancement.queue(
        EnhancementRequest(
            segment_id=segment.id,
            timeline_id=segment.timeline_id,
            user_id=user_id,
            model_id=body.model_id
            or segment.enhance_model
            or services.config.enhancement.default_model,
            input_url=body.input_url,
            scale_factor=body.scale_factor,
            target_resolution=body.target_resolution,
            preserve_audio=body.preserve_audio,
        )
    )
    data = job.model_dump(mode="json")
    data["jobId"] = job.id
    data["processingScheduled"] = _schedule(services, background_tasks, [job.id])
    return ok(data)


@router.get("/jobs/pending/{timeline_id}")
async def pending_jobs(
    timeline_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await services.timelines.require(timeline_id, user_id)
    jobs = await services.enhancement.pending_jobs(timeline_id)
    return ok([j.model_dump(mode="json") for j in jobs])


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    job = await services.enhancement.get_job(job_id)
    await services.timelines.require(job.timeline_id, user_id)
    data = job.model_dump(mode="json")
    data["transitions"] = [t.model_dump() for t in await services.jobs.get_transitions(job_id)]
    return ok(data)


@router.post("/jobs/{job_id}/process")
async def process_job(
    job_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    job = await services.enhancement.get_job(job_id)
    await services.timelines.require(job.timeline_id, user_id)
    result = await services.enhancement.process(job_id)
    return {"success": result.success, "data": result.model_dump(), "error": result.error}


@router.get("/timeline/{timeline_id}")
async def timeline_status(
    timeline_id: str,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await services.timelines.require(timeline_id, user_id)
    return ok(await services.enhancement.timeline_status(timeline_id))


@router.post("/timeline/{timeline_id}/enable-all")
async def enable_all_enhancement(
    timeline_id: str,
    body: EnableEnhancementRequest,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await services.timelines.require(timeline_id, user_id)
    model_id = body.model_id or services.config.enhancement.default_model
    updated = await services.enhancement.enable_all(timeline_id, model_id)
    return ok({"timelineId": timeline_id, "model": model_id, "updated": updated})


@router.post("/timeline/{timeline_id}/enhance-all")
async def enhance_timeline(
    timeline_id: str,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    user_id: str = Depends(get_user_id),
):
    await services.timelines.require(timeline_id, user_id)
    batch = await services.enhancement.enhance_timeline(timeline_id, user_id)
    data = batch.model_dump()
    data["processingScheduled"] = _schedule(services, background_tasks, batch.job_ids)
    return ok(data)
