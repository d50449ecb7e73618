"""Async repositories over the timelines and segments tables.

All queries are SQLAlchemy Core statements executed through ``databases``.
Structural edits (insert, delete, reorder) run in one transaction and
re-derive positions, the first-segment flag and the timeline totals.
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from databases import Database
from sqlalchemy import delete, func, insert, select, update

from ..errors import ForbiddenError, InvalidRequestError, NotFoundError
from ..models import GenerationMode, Segment, SegmentStatus, Timeline, TimelineStatus
from . import db_models as tables
from .db_models import utcnow_iso

UPDATABLE_SEGMENT_FIELDS = frozenset(
    {
        "duration_sec",
        "model_id",
        "generation_mode",
        "prompt_text",
        "source_url",
        "motion_profile",
        "camera_path",
        "transition_type",
        "status",
        "video_url",
        "first_frame_url",
        "last_frame_url",
        "thumbnail_url",
        "generation_time_sec",
        "error_message",
        "chained_from_url",
        "enhance_enabled",
        "enhance_model",
    }
)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def row_to_dict(record) -> Dict[str, Any]:
    return dict(record._mapping)


def to_db_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convert enums and booleans to their column representation."""
    values = {}
    for key, value in fields.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, bool):
            value = int(value)
        values[key] = value
    return values


async def refresh_timeline_totals(db: Database, timeline_id: str) -> None:
    """Recompute the denormalized segment_count / total_duration_sec."""
    query = select(
        func.count(tables.Segment.id).label("segment_count"),
        func.coalesce(func.sum(tables.Segment.duration_sec), 0).label("total_duration_sec"),
    ).where(tables.Segment.timeline_id == timeline_id)
    totals = row_to_dict(await db.fetch_one(query))
    await db.execute(
        update(tables.Timeline)
        .where(tables.Timeline.id == timeline_id)
        .values(
            segment_count=int(totals["segment_count"] or 0),
            total_duration_sec=int(totals["total_duration_sec"] or 0),
            updated_at=utcnow_iso(),
        )
    )


class TimelineRepository:
    def __init__(self, database: Database):
        self.db = database

    async def create(self, user_id: str, name: Optional[str] = None) -> Timeline:
        now = utcnow_iso()
        timeline_id = new_id("timeline")
        await self.db.execute(
            insert(tables.Timeline).values(
                id=timeline_id,
                user_id=user_id,
                name=name,
                segment_count=0,
                total_duration_sec=0,
                status=TimelineStatus.DRAFT.value,
                created_at=now,
                updated_at=now,
            )
        )
        return await self.get_by_id(timeline_id)

    async def get_by_id(self, timeline_id: str, user_id: Optional[str] = None) -> Optional[Timeline]:
        query = select(tables.Timeline).where(tables.Timeline.id == timeline_id)
        if user_id is not None:
            query = query.where(tables.Timeline.user_id == user_id)
        row = await self.db.fetch_one(query)
        return Timeline(**row_to_dict(row)) if row else None

    async def require(self, timeline_id: str, user_id: str) -> Timeline:
        """Fetch a timeline owned by ``user_id`` or raise NotFoundError/ForbiddenError."""
        timeline = await self.get_by_id(timeline_id)
        if timeline is None:
            raise NotFoundError(f"Timeline not found: {timeline_id}")
        if timeline.user_id != user_id:
            raise ForbiddenError("Timeline belongs to another user")
        return timeline

    async def list_for_user(self, user_id: str) -> List[Timeline]:
        query = (
            select(tables.Timeline)
            .where(tables.Timeline.user_id == user_id)
            .order_by(tables.Timeline.created_at.desc())
        )
        rows = await self.db.fetch_all(query)
        return [Timeline(**row_to_dict(r)) for r in rows]

    async def update_status(self, timeline_id: str, status: TimelineStatus) -> None:
        await self.db.execute(
            update(tables.Timeline)
            .where(tables.Timeline.id == timeline_id)
            .values(status=TimelineStatus(status).value, updated_at=utcnow_iso())
        )

    async def refresh_totals(self, timeline_id: str) -> Optional[Timeline]:
        await refresh_timeline_totals(self.db, timeline_id)
        return await self.get_by_id(timeline_id)

    async def delete(self, timeline_id: str) -> None:
        """Delete a timeline with its segments, enhancement jobs and their audit rows."""
        job_ids = select(tables.EnhancementJob.id).where(
            tables.EnhancementJob.timeline_id == timeline_id
        )
        async with self.db.transaction():
            await self.db.execute(
                delete(tables.EnhancementTransition).where(
                    tables.EnhancementTransition.job_id.in_(job_ids)
                )
            )
            await self.db.execute(
                delete(tables.EnhancementJob).where(tables.EnhancementJob.timeline_id == timeline_id)
            )
            await self.db.execute(
                delete(tables.Segment).where(tables.Segment.timeline_id == timeline_id)
            )
            await self.db.execute(delete(tables.Timeline).where(tables.Timeline.id == timeline_id))


class SegmentRepository:
    def __init__(self, database: Database):
        self.db = database

    async def create(
        self,
        timeline_id: str,
        position: int,
        model_id: str,
        duration_sec: int = 5,
        generation_mode: GenerationMode = GenerationMode.IMAGE_TO_VIDEO,
        prompt_text: Optional[str] = None,
        source_url: Optional[str] = None,
        motion_profile: Optional[str] = None,
        camera_path: Optional[str] = None,
        transition_type: Optional[str] = None,
    ) -> Segment:
        """Insert a pending segment at ``position``, shifting later segments up.

        The caller validates the mode for the position; segments displaced
        away from position 0 are forced back to image-to-video.
        """
        now = utcnow_iso()
        segment_id = new_id("segment")
        async with self.db.transaction():
            existing = [s.id for s in await self.get_by_timeline(timeline_id)]
            if position < 0 or position > len(existing):
                raise InvalidRequestError(
                    f"Segment position must be between 0 and {len(existing)}"
                )
            await self.db.execute(
                insert(tables.Segment).values(
                    id=segment_id,
                    timeline_id=timeline_id,
                    position=position,
                    is_first_segment=int(position == 0),
                    duration_sec=duration_sec,
                    model_id=model_id,
                    generation_mode=GenerationMode(generation_mode).value,
                    prompt_text=prompt_text,
                    source_url=source_url,
                    motion_profile=motion_profile,
                    camera_path=camera_path,
                    transition_type=transition_type,
                    status=SegmentStatus.PENDING.value,
                    version=0,
                    enhance_enabled=0,
                    enhance_status="none",
                    created_at=now,
                    updated_at=now,
                )
            )
            if position < len(existing):
                order = existing[:position] + [segment_id] + existing[position:]
                await self._apply_order(timeline_id, existing, order)
            await refresh_timeline_totals(self.db, timeline_id)
        return await self.get_by_id(segment_id)

    async def get_by_id(self, segment_id: str) -> Optional[Segment]:
        row = await self.db.fetch_one(select(tables.Segment).where(tables.Segment.id == segment_id))
        return Segment(**row_to_dict(row)) if row else None

    async def get_by_timeline(self, timeline_id: str) -> List[Segment]:
        query = (
            select(tables.Segment)
            .where(tables.Segment.timeline_id == timeline_id)
            .order_by(tables.Segment.position, tables.Segment.created_at)
        )
        rows = await self.db.fetch_all(query)
        return [Segment(**row_to_dict(r)) for r in rows]

    async def update(self, segment_id: str, **fields) -> Optional[Segment]:
        """Partial update restricted to UPDATABLE_SEGMENT_FIELDS."""
        unknown = set(fields) - UPDATABLE_SEGMENT_FIELDS
        if unknown:
            raise InvalidRequestError(f"Cannot update segment fields: {', '.join(sorted(unknown))}")
        if not fields:
            return await self.get_by_id(segment_id)

        values = to_db_values(fields)
        values["updated_at"] = utcnow_iso()
        await self.db.execute(
            update(tables.Segment).where(tables.Segment.id == segment_id).values(**values)
        )
        segment = await self.get_by_id(segment_id)
        if segment is not None and "duration_sec" in fields:
            await refresh_timeline_totals(self.db, segment.timeline_id)
        return segment

    async def update_mode(
        self, segment_id: str, mode: GenerationMode, source_url: Optional[str] = None
    ) -> Optional[Segment]:
        return await self.update(segment_id, generation_mode=mode, source_url=source_url)

    async def enable_enhancement_for_timeline(self, timeline_id: str, model_id: str) -> int:
        """Turn enhancement on for every segment of a timeline. Returns the number updated."""
        count_query = select(func.count(tables.Segment.id)).where(
            tables.Segment.timeline_id == timeline_id
        )
        async with self.db.transaction():
            count = await self.db.fetch_val(count_query)
            await self.db.execute(
                update(tables.Segment)
                .where(tables.Segment.timeline_id == timeline_id)
                .values(enhance_enabled=1, enhance_model=model_id, updated_at=utcnow_iso())
            )
        return count or 0

    async def delete_and_shift(self, segment_id: str) -> Optional[Segment]:
        """Delete a segment and close the gap it leaves.

        Returns:
            The deleted segment, or None if it did not exist
        """
        async with self.db.transaction():
            segment = await self.get_by_id(segment_id)
            if segment is None:
                return None
            old_order = [s.id for s in await self.get_by_timeline(segment.timeline_id)]

            job_ids = select(tables.EnhancementJob.id).where(
                tables.EnhancementJob.segment_id == segment_id
            )
            await self.db.execute(
                delete(tables.EnhancementTransition).where(
                    tables.EnhancementTransition.job_id.in_(job_ids)
                )
            )
            await self.db.execute(
                delete(tables.EnhancementJob).where(tables.EnhancementJob.segment_id == segment_id)
            )
            await self.db.execute(delete(tables.Segment).where(tables.Segment.id == segment_id))

            new_order = [i for i in old_order if i != segment_id]
            await self._apply_order(segment.timeline_id, old_order, new_order)
            await refresh_timeline_totals(self.db, segment.timeline_id)
        return segment

    async def reorder(self, timeline_id: str, ordered_ids: Sequence[str]) -> List[Segment]:
        ordered_ids = list(ordered_ids)
        async with self.db.transaction():
            old_order = [s.id for s in await self.get_by_timeline(timeline_id)]
            if len(set(ordered_ids)) != len(ordered_ids) or set(ordered_ids) != set(old_order):
                raise InvalidRequestError(
                    "Reorder must list every segment of the timeline exactly once"
                )
            await self._apply_order(timeline_id, old_order, ordered_ids)
        return await self.get_by_timeline(timeline_id)

    async def _apply_order(
        self, timeline_id: str, old_order: Sequence[str], new_order: Sequence[str]
    ) -> None:
        """Rewrite positions to match ``new_order``.

        Positions become 0..n-1, only position 0 is flagged first, later
        segments are forced to image-to-video, and a segment whose upstream
        neighbour changed loses its recorded chain input.
        """
        old_previous = {
            seg_id: (old_order[i - 1] if i > 0 else None) for i, seg_id in enumerate(old_order)
        }
        rows = {s.id: s for s in await self.get_by_timeline(timeline_id)}
        now = utcnow_iso()

        for index, segment_id in enumerate(new_order):
            segment = rows[segment_id]
            values: Dict[str, Any] = {}
            if segment.position != index:
                values["position"] = index
            if segment.is_first_segment != (index == 0):
                values["is_first_segment"] = int(index == 0)
            if index > 0 and segment.generation_mode != GenerationMode.IMAGE_TO_VIDEO:
                values["generation_mode"] = GenerationMode.IMAGE_TO_VIDEO.value
                values["source_url"] = None
            new_previous = new_order[index - 1] if index > 0 else None
            if old_previous.get(segment_id) != new_previous and segment.chained_from_url:
                values["chained_from_url"] = None
            if values:
                values["updated_at"] = now
                await self.db.execute(
                    update(tables.Segment).where(tables.Segment.id == segment_id).values(**values)
                )

    # --- generation lease ---

    async def acquire_lease(self, segment_id: str, **fields) -> Optional[str]:
        """Claim the segment for one generation and mark it ``generating``.

        Uses the version column as an optimistic lock: the update only lands
        if nobody else bumped the version in between.

        Returns:
            Lease token, or None if the segment is missing or already generating
        """
        segment = await self.get_by_id(segment_id)
        if segment is None or segment.status == SegmentStatus.GENERATING:
            return None

        token = uuid.uuid4().hex
        values = to_db_values(fields)
        values.update(
            version=segment.version + 1,
            lease_token=token,
            status=SegmentStatus.GENERATING.value,
            error_message=None,
            updated_at=utcnow_iso(),
        )
        await self.db.execute(
            update(tables.Segment)
            .where(
                tables.Segment.id == segment_id,
                tables.Segment.version == segment.version,
                tables.Segment.status != SegmentStatus.GENERATING.value,
            )
            .values(**values)
        )
        claimed = await self.get_by_id(segment_id)
        if claimed is None or claimed.lease_token != token:
            return None
        return token

    async def finish_lease(self, segment_id: str, token: str, **fields) -> Optional[Segment]:
        """Write the generation outcome and drop the lease, if ``token`` still holds it."""
        values = to_db_values(fields)
        values.update(lease_token=None, updated_at=utcnow_iso())
        await self.db.execute(
            update(tables.Segment)
            .where(tables.Segment.id == segment_id, tables.Segment.lease_token == token)
            .values(**values)
        )
        return await self.get_by_id(segment_id)

    async def mark_abandoned(self, timeline_id: str, message: str = "Generation cancelled") -> int:
        """Move any ``generating`` segments of a timeline to ``error``."""
        query = select(tables.Segment.id).where(
            tables.Segment.timeline_id == timeline_id,
            tables.Segment.status == SegmentStatus.GENERATING.value,
        )
        stuck = [row_to_dict(r)["id"] for r in await self.db.fetch_all(query)]
        if stuck:
            await self.db.execute(
                update(tables.Segment)
                .where(tables.Segment.id.in_(stuck))
                .values(
                    status=SegmentStatus.ERROR.value,
                    error_message=message,
                    lease_token=None,
                    updated_at=utcnow_iso(),
                )
            )
        return len(stuck)
