"""Upscaler registry and enhancement job storage.

Every job state change is written together with the segment's enhancement
projection and an audit row, in one transaction.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from databases import Database
from sqlalchemy import insert, select, update

from ..errors import InvalidTransitionError, NotFoundError
from ..models import EnhanceStatus
from ..store import db_models as tables
from ..store.db_models import utcnow_iso
from ..store.repositories import new_id, row_to_dict
from .models import EnhancementJob, EnhancementRequest, JobStatus, StateTransition, UpscalerModel

if TYPE_CHECKING:
    from ..providers.backends import Cache

UPSCALERS_CACHE_KEY = "upscalers:list"


def _upscaler_from_row(row) -> UpscalerModel:
    data = row_to_dict(row)
    data["scale_factors"] = json.loads(data.get("scale_factors") or "[]")
    return UpscalerModel(**data)


class UpscalerRepository:
    def __init__(self, database: Database, cache: Optional["Cache"] = None, ttl_s: int = 3600):
        self.db = database
        self.cache = cache
        self.ttl_s = ttl_s

    async def get_all(self) -> List[UpscalerModel]:
        """Active upscalers, highest priority first."""
        if self.cache is not None:
            cached = await self.cache.get(UPSCALERS_CACHE_KEY)
            if cached is not None:
                return [UpscalerModel(**m) for m in cached]

        rows = await self.db.fetch_all(
            select(tables.UpscalerModel)
            .where(tables.UpscalerModel.is_active == 1)
            .order_by(tables.UpscalerModel.priority.desc())
        )
        models = [_upscaler_from_row(r) for r in rows]
        if self.cache is not None:
            await self.cache.set(UPSCALERS_CACHE_KEY, [m.model_dump() for m in models], self.ttl_s)
        return models

    async def get_by_id(self, model_id: str) -> Optional[UpscalerModel]:
        return next((m for m in await self.get_all() if m.id == model_id), None)

    async def get_by_provider(self, provider: str) -> List[UpscalerModel]:
        return [m for m in await self.get_all() if m.provider == provider]

    async def get_recommended(self) -> Optional[UpscalerModel]:
        models = await self.get_all()
        return models[0] if models else None


class EnhancementJobRepository:
    def __init__(self, database: Database):
        self.db = database

    async def create(self, request: EnhancementRequest, provider: str, scale_factor: int) -> EnhancementJob:
        """Insert a queued job and mirror it onto the segment."""
        now = utcnow_iso()
        job_id = new_id("enhance")
        async with self.db.transaction():
            await self.db.execute(
                insert(tables.EnhancementJob).values(
                    id=job_id,
                    segment_id=request.segment_id,
                    timeline_id=request.timeline_id,
                    user_id=request.user_id,
                    model_id=request.model_id,
                    provider=provider,
                    input_url=request.input_url,
                    scale_factor=scale_factor,
                    target_resolution=request.target_resolution,
                    preserve_audio=int(request.preserve_audio),
                    status=JobStatus.QUEUED.value,
                    progress=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            await self.db.execute(
                update(tables.Segment)
                .where(tables.Segment.id == request.segment_id)
                .values(
                    enhance_enabled=1,
                    enhance_model=request.model_id,
                    enhance_status=EnhanceStatus.QUEUED.value,
                    enhance_error=None,
                    updated_at=now,
                )
            )
            await self._audit(job_id, None, JobStatus.QUEUED, None, now)
        return await self.get_by_id(job_id)

    async def get_by_id(self, job_id: str) -> Optional[EnhancementJob]:
        row = await self.db.fetch_one(
            select(tables.EnhancementJob).where(tables.EnhancementJob.id == job_id)
        )
        return EnhancementJob(**row_to_dict(row)) if row else None

    async def get_by_segment(self, segment_id: str) -> List[EnhancementJob]:
        """Jobs of a segment, newest first."""
        rows = await self.db.fetch_all(
            select(tables.EnhancementJob)
            .where(tables.EnhancementJob.segment_id == segment_id)
            .order_by(tables.EnhancementJob.created_at.desc())
        )
        return [EnhancementJob(**row_to_dict(r)) for r in rows]

    async def get_pending_by_timeline(self, timeline_id: str) -> List[EnhancementJob]:
        rows = await self.db.fetch_all(
            select(tables.EnhancementJob)
            .where(
                tables.EnhancementJob.timeline_id == timeline_id,
                tables.EnhancementJob.status.in_(
                    [JobStatus.QUEUED.value, JobStatus.PROCESSING.value]
                ),
            )
            .order_by(tables.EnhancementJob.created_at.asc())
        )
        return [EnhancementJob(**row_to_dict(r)) for r in rows]

    async def list_queued(self, limit: Optional[int] = None) -> List[EnhancementJob]:
        query = (
            select(tables.EnhancementJob)
            .where(tables.EnhancementJob.status == JobStatus.QUEUED.value)
            .order_by(tables.EnhancementJob.created_at.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return [EnhancementJob(**row_to_dict(r)) for r in await self.db.fetch_all(query)]

    async def get_transitions(self, job_id: str) -> List[StateTransition]:
        rows = await self.db.fetch_all(
            select(tables.EnhancementTransition)
            .where(tables.EnhancementTransition.job_id == job_id)
            .order_by(tables.EnhancementTransition.id)
        )
        return [StateTransition(**row_to_dict(r)) for r in rows]

    async def transition(
        self,
        job: EnhancementJob,
        target: JobStatus,
        *,
        output_url: Optional[str] = None,
        progress: Optional[int] = None,
        error_message: Optional[str] = None,
        processing_time_sec: Optional[float] = None,
    ) -> EnhancementJob:
        """Move ``job`` to ``target`` and update the segment projection.

        The segment only follows the job while it is the segment's newest job
        and the projection still shows the job's previous state. A regenerated
        segment, whose projection was reset, is left alone.

        Raises:
            InvalidTransitionError: illegal transition, or the job changed state concurrently
        """
        target = JobStatus(target)
        current = JobStatus(job.status)
        if not current.can_transition(target):
            raise InvalidTransitionError(
                f"Enhancement job {job.id} cannot move from {current.value} to {target.value}"
            )

        now = utcnow_iso()
        job_values: Dict[str, Any] = {"status": target.value, "updated_at": now}
        segment_values: Dict[str, Any] = {"enhance_status": target.value, "updated_at": now}
        if progress is not None:
            job_values["progress"] = progress
        if target == JobStatus.PROCESSING:
            job_values["started_at"] = now
            segment_values["enhance_error"] = None
        if target.is_terminal:
            job_values["completed_at"] = now
            job_values["processing_time_sec"] = processing_time_sec
        if target == JobStatus.DONE:
            job_values["output_url"] = output_url
            job_values["error_message"] = None
            segment_values["enhanced_video_url"] = output_url
            segment_values["enhance_error"] = None
        if target == JobStatus.FAILED:
            job_values["error_message"] = error_message
            segment_values["enhance_error"] = error_message

        async with self.db.transaction():
            await self.db.execute(
                update(tables.EnhancementJob)
                .where(
                    tables.EnhancementJob.id == job.id,
                    tables.EnhancementJob.status == current.value,
                )
                .values(**job_values)
            )
            updated = await self.get_by_id(job.id)
            if updated is None:
                raise NotFoundError(f"Enhancement job not found: {job.id}")
            if updated.status != target:
                raise InvalidTransitionError(
                    f"Enhancement job {job.id} changed state concurrently ({updated.status.value})"
                )
            newer_job = (
                select(tables.EnhancementJob.id)
                .where(
                    tables.EnhancementJob.segment_id == job.segment_id,
                    tables.EnhancementJob.created_at > job.created_at,
                )
                .exists()
            )
            await self.db.execute(
                update(tables.Segment)
                .where(
                    tables.Segment.id == job.segment_id,
                    tables.Segment.enhance_status == current.value,
                    ~newer_job,
                )
                .values(**segment_values)
            )
            await self._audit(job.id, current, target, error_message, now)
        return updated

    async def _audit(
        self,
        job_id: str,
        from_state: Optional[JobStatus],
        to_state: JobStatus,
        error: Optional[str],
        timestamp: str,
    ) -> None:
        await self.db.execute(
            insert(tables.EnhancementTransition).values(
                job_id=job_id,
                from_state=from_state.value if from_state else None,
                to_state=to_state.value,
                timestamp=timestamp,
                error_snippet=error[:200] if error else None,
            )
        )
